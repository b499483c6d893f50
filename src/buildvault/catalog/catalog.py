"""In-memory build catalog, one collection of records per repository."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Dict, Iterable, Iterator, List, Optional

from buildvault.constants import Constants
from buildvault.versioning.models import BuildRecord


class RepoCatalog:
    """Builds known for one repository, keyed by hash in insertion order.

    Tracks when the repository was last fetched so callers can decide
    whether a refetch is due.
    """

    def __init__(
        self,
        repo_id: str,
        fetch_interval: timedelta = Constants.FETCH_INTERVAL,
        last_fetched: Optional[datetime] = None,
    ):
        self.repo_id = repo_id
        self.fetch_interval = fetch_interval
        self.last_fetched = last_fetched
        self._builds: Dict[str, BuildRecord] = {}

    def ingest(self, records: Iterable[BuildRecord]) -> int:
        """Upsert ``records`` by hash and return how many were processed.

        Known hashes are replaced in place, unseen hashes are appended and
        hashes missing from ``records`` are kept: a build that vanished
        upstream may still be installed locally.
        """
        count = 0
        for record in records:
            if record.repo != self.repo_id:
                record = replace(record, repo=self.repo_id)
            self._builds[record.build_hash] = record
            count += 1
        return count

    def is_stale(self, now: datetime) -> bool:
        if self.last_fetched is None:
            return True
        return self.last_fetched + self.fetch_interval <= now

    def time_until_stale(self, now: datetime) -> timedelta:
        if self.last_fetched is None:
            return timedelta(0)
        return max(timedelta(0), self.last_fetched + self.fetch_interval - now)

    def get(self, build_hash: str) -> Optional[BuildRecord]:
        return self._builds.get(build_hash)

    @property
    def builds(self) -> List[BuildRecord]:
        return list(self._builds.values())

    def __contains__(self, build_hash: object) -> bool:
        return build_hash in self._builds

    def __len__(self) -> int:
        return len(self._builds)

    def __iter__(self) -> Iterator[BuildRecord]:
        return iter(list(self._builds.values()))


class BuildCatalog:
    """Merged view of every configured repository's builds."""

    def __init__(self) -> None:
        self._repos: Dict[str, RepoCatalog] = {}

    def repo(self, repo_id: str, fetch_interval: Optional[timedelta] = None) -> RepoCatalog:
        """Return the catalog for ``repo_id``, creating an empty one if needed."""
        catalog = self._repos.get(repo_id)
        if catalog is None:
            catalog = RepoCatalog(repo_id, fetch_interval or Constants.FETCH_INTERVAL)
            self._repos[repo_id] = catalog
        elif fetch_interval is not None:
            catalog.fetch_interval = fetch_interval
        return catalog

    def add(self, catalog: RepoCatalog) -> None:
        self._repos[catalog.repo_id] = catalog

    def ingest(
        self,
        repo_id: str,
        records: Iterable[BuildRecord],
        fetched_at: Optional[datetime] = None,
    ) -> int:
        """Merge freshly fetched ``records`` into ``repo_id``'s catalog."""
        catalog = self.repo(repo_id)
        count = catalog.ingest(records)
        if fetched_at is not None:
            catalog.last_fetched = fetched_at
        return count

    def is_stale(self, repo_id: str, now: datetime) -> bool:
        catalog = self._repos.get(repo_id)
        return catalog is None or catalog.is_stale(now)

    def get(self, repo_id: str, build_hash: str) -> Optional[BuildRecord]:
        catalog = self._repos.get(repo_id)
        return catalog.get(build_hash) if catalog else None

    def records(self, repo_id: Optional[str] = None) -> List[BuildRecord]:
        """All records, or only ``repo_id``'s when given."""
        if repo_id is not None:
            catalog = self._repos.get(repo_id)
            return catalog.builds if catalog else []
        out: List[BuildRecord] = []
        for catalog in self._repos.values():
            out.extend(catalog.builds)
        return out

    @property
    def repo_ids(self) -> List[str]:
        return list(self._repos)

    def __contains__(self, repo_id: object) -> bool:
        return repo_id in self._repos
