"""GitHub releases source.

Each non-draft release becomes one BuildRecord; each downloadable asset
becomes a variant whose platform/arch are guessed from the asset name.
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import replace
from typing import Any, Dict, List, Optional

import aiohttp

from buildvault.common.http_client import fetch_json
from buildvault.constants import Constants
from buildvault.errors import FetchError
from buildvault.versioning.models import BuildRecord, BuildVariant, parse_timestamp
from .artifacts import coerce_version, detect_arch, detect_platform, split_extension

_SHA_RE = re.compile(r"^[0-9a-f]{7,40}$")


def releases_url(url: str) -> str:
    """Normalize ``owner/name``, a github.com URL or an API URL to the releases endpoint."""
    if url.startswith(Constants.GITHUB_API_BASE):
        return url
    path = urllib.parse.urlsplit(url).path if "://" in url else url
    parts = [p for p in path.strip("/").split("/") if p]
    if len(parts) < 2:
        raise ValueError(f"cannot read owner/name from {url!r}")
    owner, name = parts[0], parts[1]
    if name.endswith(".git"):
        name = name[:-4]
    return f"{Constants.GITHUB_API_BASE}/repos/{owner}/{name}/releases"


async def fetch_raw(session: aiohttp.ClientSession, repo, auth=None) -> Any:
    """Download the release list for ``repo``, authenticating when credentials are set."""
    try:
        url = releases_url(repo.url)
    except ValueError as exc:
        raise FetchError(repo.repo_id, str(exc)) from exc
    basic = aiohttp.BasicAuth(auth.user, auth.token) if auth else None
    return await fetch_json(
        session,
        url,
        context=repo.repo_id,
        headers={"Accept": "application/vnd.github+json"},
        auth=basic,
    )


def _variants(assets: List[Dict[str, Any]]) -> tuple:
    checksum_urls: Dict[str, str] = {}
    variants = []
    for asset in assets:
        if not isinstance(asset, dict):
            continue
        name = str(asset.get("name") or "")
        url = asset.get("browser_download_url")
        if not name or not url:
            continue
        stem, ext = split_extension(name)
        if ext == "sha256":
            checksum_urls[stem] = str(url)
            continue
        variants.append(
            BuildVariant(
                platform=detect_platform(name),
                arch=detect_arch(name),
                download_url=str(url),
                file_name=name,
                file_extension=ext,
                file_size=asset.get("size"),
            )
        )
    return tuple(replace(v, checksum_url=checksum_urls.get(v.file_name)) for v in variants)


def _release_hash(release: Dict[str, Any]) -> Optional[str]:
    commitish = str(release.get("target_commitish") or "").lower()
    if _SHA_RE.match(commitish):
        return commitish
    if release.get("id") is not None:
        return str(release["id"])
    return None


def parse_builds(repo_id: str, raw: Any) -> List[BuildRecord]:
    """Turn a GitHub release list into BuildRecords.

    Raises:
        FetchError: the payload is not a JSON list.
    """
    if not isinstance(raw, list):
        raise FetchError(repo_id, "unexpected payload: expected a list of releases")

    records: List[BuildRecord] = []
    for release in raw:
        if not isinstance(release, dict) or release.get("draft"):
            continue
        version = coerce_version(str(release.get("tag_name") or release.get("name") or ""))
        build_hash = _release_hash(release)
        published = release.get("published_at") or release.get("created_at")
        if version is None or build_hash is None or not published:
            continue
        try:
            commit_time = parse_timestamp(published)
        except ValueError:
            continue
        assets = release.get("assets") or []
        records.append(
            BuildRecord(
                repo=repo_id,
                version=version,
                build_hash=build_hash,
                commit_time=commit_time,
                branch="prerelease" if release.get("prerelease") else "stable",
                variants=_variants(assets if isinstance(assets, list) else []),
            )
        )
    return records
