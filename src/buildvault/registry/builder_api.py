"""Official builder JSON API source.

The endpoint returns a flat JSON list, one entry per artifact::

    {"version": "4.2.0", "branch": "main", "release_cycle": "alpha",
     "hash": "a1b2c3d4e5f6", "platform": "linux", "architecture": "x86_64",
     "file_mtime": 1712345678, "url": "https://.../blender-4.2.0-...tar.xz",
     "file_name": "blender-4.2.0-...tar.xz", "file_size": 123, "file_extension": "xz"}

Artifacts of the same hash are grouped into one BuildRecord; ``.sha256``
side files become the ``checksum_url`` of the artifact they describe.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional

import aiohttp

from buildvault.common.http_client import fetch_json
from buildvault.errors import FetchError
from buildvault.versioning.models import BuildRecord, BuildVariant, parse_timestamp
from .artifacts import coerce_version, split_extension

logger = logging.getLogger(__name__)


async def fetch_raw(session: aiohttp.ClientSession, repo, auth=None) -> Any:
    """Download the raw artifact list for ``repo``."""
    return await fetch_json(session, repo.url, context=repo.repo_id)


def _variant(entry: Dict[str, Any]) -> BuildVariant:
    file_name = str(entry.get("file_name") or entry["url"].rsplit("/", 1)[-1])
    _, ext = split_extension(file_name)
    return BuildVariant(
        platform=str(entry.get("platform") or "unknown"),
        arch=str(entry.get("architecture") or "unknown"),
        download_url=str(entry["url"]),
        file_name=file_name,
        file_extension=ext or str(entry.get("file_extension") or ""),
        file_size=entry.get("file_size"),
    )


def parse_builds(repo_id: str, raw: Any) -> List[BuildRecord]:
    """Turn the artifact list into BuildRecords grouped by hash.

    Entries lacking a version, hash, url or timestamp are skipped.

    Raises:
        FetchError: the payload is not a JSON list.
    """
    if not isinstance(raw, list):
        raise FetchError(repo_id, "unexpected payload: expected a list of builds")

    checksum_urls: Dict[str, str] = {}
    grouped: Dict[str, Dict[str, Any]] = {}
    skipped = 0

    for entry in raw:
        if not isinstance(entry, dict):
            skipped += 1
            continue
        if str(entry.get("file_extension", "")).lower() == "sha256":
            name = str(entry.get("file_name") or "")
            if name and entry.get("url"):
                checksum_urls[split_extension(name)[0]] = str(entry["url"])
            continue
        try:
            version = coerce_version(str(entry["version"]))
            build_hash = str(entry["hash"]).strip()
            commit_time = parse_timestamp(entry["file_mtime"])
            variant = _variant(entry)
        except (KeyError, TypeError, ValueError, OverflowError):
            skipped += 1
            continue
        if version is None or not build_hash:
            skipped += 1
            continue

        group = grouped.get(build_hash)
        if group is None:
            grouped[build_hash] = {
                "version": version,
                "commit_time": commit_time,
                "branch": entry.get("release_cycle") or entry.get("branch") or None,
                "variants": [variant],
            }
        else:
            group["commit_time"] = min(group["commit_time"], commit_time)
            group["variants"].append(variant)

    if skipped:
        logger.debug("Skipped %d malformed entries from %s", skipped, repo_id)

    records: List[BuildRecord] = []
    for build_hash, group in grouped.items():
        variants = tuple(
            _with_checksum(v, checksum_urls.get(v.file_name)) for v in group["variants"]
        )
        records.append(
            BuildRecord(
                repo=repo_id,
                version=group["version"],
                build_hash=build_hash,
                commit_time=group["commit_time"],
                branch=group["branch"],
                variants=variants,
            )
        )
    return records


def _with_checksum(variant: BuildVariant, checksum_url: Optional[str]) -> BuildVariant:
    if not checksum_url:
        return variant
    return replace(variant, checksum_url=checksum_url)
