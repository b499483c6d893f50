"""``verify``: reconcile the library index with the folders on disk."""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from buildvault.config import Config
from buildvault.constants import ExitCodes
from buildvault.library import LibraryState, VerifyReport
from buildvault.library.launching import probe_build
from .common import open_library

logger = logging.getLogger(__name__)


def verify(
    cfg: Config,
    repos: Optional[Sequence[str]] = None,
    library: Optional[LibraryState] = None,
    probe=probe_build,
) -> VerifyReport:
    if library is None:
        library = open_library(cfg)
    return library.verify(repos or None, probe=probe)


def run_verify(cfg: Config, args: Any) -> int:
    """Exits with FILE_ERROR when a folder could not be identified."""
    report = verify(cfg, getattr(args, "REPOS", None))
    for record in report.adopted:
        logger.info("Recovered %s at %s", record.build.to_query(), record.install_path)
    for folder, reason in report.broken:
        logger.warning("Could not identify build in %s: %s", folder, reason)
    logger.info(
        "Verified %d builds, recovered %d, %d unreadable",
        len(report.verified),
        len(report.adopted),
        len(report.broken),
    )
    return ExitCodes.SUCCESS.value if report.ok else ExitCodes.FILE_ERROR.value
