"""``fetch``: refresh the cached catalogs of the configured repositories."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from buildvault.catalog import RepositorySyncManager, SyncReport, SyncStatus
from buildvault.config import Config
from buildvault.constants import ExitCodes
from .common import load_catalog

logger = logging.getLogger(__name__)


def format_duration(delta: timedelta) -> str:
    """Render ``delta`` as ``1h 02m 03s`` (leading zero units omitted)."""
    total = max(0, int(delta.total_seconds()))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def fetch(
    cfg: Config,
    force: bool = False,
    parallel: bool = False,
    ignore_errors: bool = False,
    manager: Optional[RepositorySyncManager] = None,
) -> SyncReport:
    if manager is None:
        catalog, store = load_catalog(cfg)
        manager = RepositorySyncManager(
            catalog,
            store,
            max_concurrency=cfg.max_concurrency,
            github_auth=cfg.github_auth,
            timeout=cfg.request_timeout,
        )
    return manager.sync(cfg.repos, force=force, parallel=parallel, ignore_errors=ignore_errors)


def log_report(cfg: Config, report: SyncReport) -> None:
    names = {repo.repo_id: repo.display_name for repo in cfg.repos}
    for outcome in report.outcomes:
        name = names.get(outcome.repo_id, outcome.repo_id)
        if outcome.status is SyncStatus.SUCCESS:
            logger.info("Fetched %d builds from %s", outcome.count, name)
        elif outcome.status is SyncStatus.ABORTED:
            logger.info("Skipped %s after an earlier failure", name)
        elif outcome.status is SyncStatus.FAILURE and outcome.error is not report.first_error:
            logger.warning("%s", outcome.error)
        elif outcome.status is SyncStatus.FRESH:
            logger.debug("%s is up to date", name)

    if report.all_fresh:
        wait = min(o.retry_in or timedelta(0) for o in report.outcomes)
        logger.info(
            "All repositories are up to date; the next fetch is due in %s (use --force to fetch now)",
            format_duration(wait),
        )


def run_fetch(cfg: Config, args: Any) -> int:
    """Raises the first failure of the run after every outcome has been logged."""
    report = fetch(
        cfg,
        force=getattr(args, "FORCE", False),
        parallel=getattr(args, "PARALLEL", False),
        ignore_errors=getattr(args, "IGNORE_ERRORS", False),
    )
    log_report(cfg, report)
    if report.first_error is not None:
        raise report.first_error
    return ExitCodes.SUCCESS.value
