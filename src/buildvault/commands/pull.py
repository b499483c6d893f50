"""``pull``: download and install builds matching one or more queries."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence

from buildvault.catalog.platform import filter_variants
from buildvault.common.http_client import download_file, get_text
from buildvault.config import Config
from buildvault.constants import Constants, ExitCodes
from buildvault.errors import ChecksumMismatchError, ExtractError, InstallError, QueryResultEmptyError
from buildvault.library import LibraryState
from buildvault.library.extract import archive_kind
from buildvault.versioning import BuildRecord, BuildVariant, InstallRecord, Query, resolve, resolve_one
from .common import load_catalog, open_library, parse_queries, platform_filter_for

logger = logging.getLogger(__name__)

DOWNLOAD_DIR = ".downloads"

Downloader = Callable[..., int]


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def _installable(variant: BuildVariant) -> bool:
    try:
        archive_kind(Path(variant.file_name or variant.download_url.rsplit("/", 1)[-1]))
    except ExtractError:
        return False
    return True


def choose_variant(record: BuildRecord, all_platforms: bool = False) -> BuildVariant:
    """Pick the artifact to download for ``record``.

    Artifacts for the host come first; when none target the host every
    artifact is considered.

    Raises:
        InstallError: the build ships no archive that can be extracted.
    """
    candidates: Sequence[BuildVariant] = record.variants
    if not all_platforms:
        candidates = filter_variants(record.variants) or record.variants
    for variant in candidates:
        if _installable(variant):
            return variant
    raise InstallError(f"Build {record.build_hash} has no installable archive for this platform")


def expected_checksum(variant: BuildVariant, timeout: int = Constants.REQUEST_TIMEOUT) -> Optional[str]:
    """The published sha256 of ``variant``, fetching its side file when needed."""
    if variant.checksum:
        return variant.checksum.strip().lower()
    if variant.checksum_url:
        text = get_text(variant.checksum_url, context=variant.file_name, timeout=timeout)
        token = text.strip().split()
        return token[0].lower() if token else None
    return None


def select_builds(
    cfg: Config,
    queries: List[Query],
    candidates: List[BuildRecord],
    all_platforms: bool = False,
) -> List[BuildRecord]:
    """Resolve each query to one build.

    Raises:
        QueryResultEmptyError: naming every query that matched nothing.
    """
    platform_filter = platform_filter_for(cfg, all_platforms)
    chosen: List[BuildRecord] = []
    empty: List[str] = []
    for query in queries:
        matches = resolve(query, candidates, platform_filter)
        if not matches:
            empty.append(str(query))
            continue
        build = resolve_one(query, matches)
        if len(matches) > 1:
            logger.info(
                "%d builds match %s; picking the newest, %s", len(matches), query, build.to_query()
            )
        if build.key not in {b.key for b in chosen}:
            chosen.append(build)
    if empty:
        raise QueryResultEmptyError(empty)
    return chosen


def download_build(
    cfg: Config,
    record: BuildRecord,
    variant: BuildVariant,
    downloader: Downloader = download_file,
) -> Path:
    """Download ``variant`` into the library's download folder and verify it.

    The archive is written as ``<name>.part`` and renamed once complete.

    Raises:
        DownloadError: the download failed.
        ChecksumMismatchError: the archive does not match its published sha256.
    """
    file_name = variant.file_name or variant.download_url.rsplit("/", 1)[-1]
    dest = cfg.library / DOWNLOAD_DIR / file_name
    partial = dest.with_name(dest.name + Constants.PARTIAL_SUFFIX)
    logger.info("Downloading %s", file_name)
    try:
        downloader(variant.download_url, partial, context=record.repo, timeout=cfg.request_timeout)
        expected = expected_checksum(variant, cfg.request_timeout)
        if expected:
            actual = sha256_file(partial)
            if actual != expected:
                raise ChecksumMismatchError(
                    f"Checksum mismatch for {file_name}: expected {expected}, got {actual}"
                )
        os.replace(partial, dest)
    finally:
        if partial.exists():
            partial.unlink()
    return dest


def install_build(
    cfg: Config,
    library: LibraryState,
    record: BuildRecord,
    all_platforms: bool = False,
    downloader: Downloader = download_file,
) -> InstallRecord:
    variant = choose_variant(record, all_platforms or cfg.all_platforms)
    archive = download_build(cfg, record, variant, downloader)
    try:
        installed = library.install(record, archive, variant)
    finally:
        if archive.exists():
            archive.unlink()
    logger.info("Installed %s to %s", record.to_query(), installed.install_path)
    return installed


def pull(
    cfg: Config,
    query_texts: Sequence[str],
    all_platforms: bool = False,
    downloader: Downloader = download_file,
    library: Optional[LibraryState] = None,
    records: Optional[List[BuildRecord]] = None,
) -> List[InstallRecord]:
    """Install the builds selected by ``query_texts``, one after another.

    Only catalog builds that are not installed yet are considered.
    """
    queries = parse_queries(query_texts)
    if library is None:
        library = open_library(cfg)
    if records is None:
        catalog, _ = load_catalog(cfg)
        records = catalog.records()
    installed = {r.build_hash for r in library.list()}
    candidates = [r for r in records if r.build_hash not in installed]
    builds = select_builds(cfg, queries, candidates, all_platforms)
    return [install_build(cfg, library, b, all_platforms, downloader) for b in builds]


def run_pull(cfg: Config, args: Any) -> int:
    pull(cfg, getattr(args, "QUERIES", []), all_platforms=getattr(args, "ALL_PLATFORMS", False))
    return ExitCodes.SUCCESS.value
