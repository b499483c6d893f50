"""Repository sync manager.

Refreshes the catalog of every configured repository whose cache is stale
(or all of them when forced), sequentially or concurrently.

Failure policy:

- ``ignore_errors=False``: the first failure stops any fetch that has not
  started yet; fetches already in flight finish and are merged.
- ``ignore_errors=True``: every due repository is attempted.

Either way the report keeps every outcome plus the first failure seen, which
drives the process exit status.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from buildvault.common.http_client import new_session
from buildvault.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from buildvault.constants import Constants
from buildvault.errors import FetchError
from buildvault.registry import fetch_builds
from buildvault.versioning.models import BuildRecord
from .catalog import BuildCatalog, RepoCatalog
from .store import CatalogStore

logger = logging.getLogger(__name__)

Fetcher = Callable[..., Awaitable[List[BuildRecord]]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncStatus(Enum):
    """Outcome of one repository within a sync run."""
    SUCCESS = "success"
    FAILURE = "failure"
    FRESH = "fresh"  # cache still within its fetch interval
    ABORTED = "aborted"  # not started because an earlier fetch failed


@dataclass
class SyncOutcome:
    repo_id: str
    status: SyncStatus
    count: int = 0
    error: Optional[Exception] = None
    retry_in: Optional[timedelta] = None


@dataclass
class SyncReport:
    """Every repository's outcome, in configuration order."""
    outcomes: List[SyncOutcome] = field(default_factory=list)
    first_error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.first_error is None

    def with_status(self, status: SyncStatus) -> List[SyncOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def all_fresh(self) -> bool:
        return bool(self.outcomes) and all(o.status is SyncStatus.FRESH for o in self.outcomes)

    def outcome(self, repo_id: str) -> Optional[SyncOutcome]:
        for o in self.outcomes:
            if o.repo_id == repo_id:
                return o
        return None


class RepositorySyncManager:
    """Fetches remote metadata and merges it into a BuildCatalog.

    ``fetcher`` replaces the network layer; it is awaited with a RepoConfig
    and must return that repository's BuildRecords or raise FetchError.
    """

    def __init__(
        self,
        catalog: BuildCatalog,
        store: Optional[CatalogStore] = None,
        fetcher: Optional[Fetcher] = None,
        max_concurrency: int = Constants.FETCH_MAX_CONCURRENCY,
        github_auth=None,
        timeout: int = Constants.REQUEST_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.catalog = catalog
        self.store = store
        self._fetcher = fetcher
        self._max_concurrency = max(1, max_concurrency)
        self._auth = github_auth
        self._timeout = timeout
        self._clock = clock

    def sync(
        self,
        repos: Sequence,
        force: bool = False,
        parallel: bool = False,
        ignore_errors: bool = False,
    ) -> SyncReport:
        """Blocking entry point; runs ``sync_async`` on a fresh event loop."""
        return asyncio.run(self.sync_async(repos, force, parallel, ignore_errors))

    async def sync_async(
        self,
        repos: Sequence,
        force: bool = False,
        parallel: bool = False,
        ignore_errors: bool = False,
    ) -> SyncReport:
        now = self._clock()
        outcomes: Dict[str, SyncOutcome] = {}
        failures: List[SyncOutcome] = []
        due = []

        for repo in repos:
            catalog = self.catalog.repo(repo.repo_id, repo.fetch_interval)
            if not force and not catalog.is_stale(now):
                outcomes[repo.repo_id] = SyncOutcome(
                    repo.repo_id, SyncStatus.FRESH, retry_in=catalog.time_until_stale(now)
                )
            else:
                due.append(repo)

        if due:
            if self._fetcher is not None:
                await self._run(due, self._fetcher, parallel, ignore_errors, outcomes, failures)
            else:
                async with new_session(self._timeout) as session:

                    async def fetch(repo):
                        return await fetch_builds(session, repo, self._auth)

                    await self._run(due, fetch, parallel, ignore_errors, outcomes, failures)

        return SyncReport(
            outcomes=[outcomes[r.repo_id] for r in repos],
            first_error=failures[0].error if failures else None,
        )

    async def _run(self, due, fetch, parallel, ignore_errors, outcomes, failures) -> None:
        if not parallel:
            for repo in due:
                if failures and not ignore_errors:
                    outcomes[repo.repo_id] = SyncOutcome(repo.repo_id, SyncStatus.ABORTED)
                    continue
                outcome = await self._sync_one(repo, fetch)
                outcomes[repo.repo_id] = outcome
                if outcome.status is SyncStatus.FAILURE:
                    failures.append(outcome)
            return

        semaphore = asyncio.Semaphore(self._max_concurrency)
        abort = asyncio.Event()

        async def task(repo) -> None:
            async with semaphore:
                if abort.is_set():
                    outcomes[repo.repo_id] = SyncOutcome(repo.repo_id, SyncStatus.ABORTED)
                    return
                outcome = await self._sync_one(repo, fetch)
                outcomes[repo.repo_id] = outcome
                if outcome.status is SyncStatus.FAILURE:
                    failures.append(outcome)
                    if not ignore_errors:
                        abort.set()

        await asyncio.gather(*(task(repo) for repo in due))

    async def _sync_one(self, repo, fetch) -> SyncOutcome:
        logger.info("Fetching builds from %s", safe_url(repo.url))
        with Timer() as t:
            try:
                records = await fetch(repo)
            except FetchError as exc:
                return SyncOutcome(repo.repo_id, SyncStatus.FAILURE, error=exc)

        # Merge into a staged copy and persist it before swapping it in, so the
        # in-memory catalog never gets ahead of the cache on disk.
        current = self.catalog.repo(repo.repo_id, repo.fetch_interval)
        staged = RepoCatalog(repo.repo_id, current.fetch_interval, last_fetched=self._clock())
        staged.ingest(current.builds)
        count = staged.ingest(records)
        if self.store is not None:
            try:
                self.store.save(staged)
            except OSError as exc:
                return SyncOutcome(repo.repo_id, SyncStatus.FAILURE, error=exc)
        self.catalog.add(staged)

        if is_debug_enabled(logger):
            logger.debug(
                "Repository synced",
                extra=extra_context(
                    event="sync",
                    component="sync_manager",
                    outcome="success",
                    target=repo.repo_id,
                    count=count,
                    duration_ms=t.duration_ms(),
                ),
            )
        return SyncOutcome(repo.repo_id, SyncStatus.SUCCESS, count=count)
