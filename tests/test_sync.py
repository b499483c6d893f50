"""Tests for the repository sync manager."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from buildvault.catalog.catalog import BuildCatalog
from buildvault.catalog.store import CatalogStore
from buildvault.catalog.sync import RepositorySyncManager, SyncStatus
from buildvault.config import RepoConfig
from buildvault.errors import FetchError
from buildvault.versioning.models import BuildRecord, Version

NOW = datetime(2024, 5, 1, 12, tzinfo=timezone.utc)


def rec(repo, build_hash, version=(4, 2, 0)):
    return BuildRecord(repo=repo, version=Version(*version), build_hash=build_hash, commit_time=NOW)


def repos(*ids):
    return [RepoConfig(repo_id, f"https://example.invalid/{repo_id}") for repo_id in ids]


class FakeFetcher:
    """Async fetcher returning canned records or raising FetchError."""

    def __init__(self, results, delays=None):
        self.results = results
        self.delays = delays or {}
        self.calls = []

    async def __call__(self, repo):
        self.calls.append(repo.repo_id)
        await asyncio.sleep(self.delays.get(repo.repo_id, 0))
        result = self.results[repo.repo_id]
        if isinstance(result, Exception):
            raise result
        return result


def manager(fetcher, store=None, catalog=None, max_concurrency=4):
    return RepositorySyncManager(
        catalog or BuildCatalog(),
        store,
        fetcher=fetcher,
        max_concurrency=max_concurrency,
        clock=lambda: NOW,
    )


class TestSequentialSync:
    """parallel=False."""

    def test_success_ingests_and_saves(self, tmp_path):
        store = CatalogStore(tmp_path)
        fetcher = FakeFetcher({"a": [rec("a", "h1"), rec("a", "h2")]})
        mgr = manager(fetcher, store)

        report = mgr.sync(repos("a"))

        assert report.ok
        assert report.outcome("a").status is SyncStatus.SUCCESS
        assert report.outcome("a").count == 2
        assert [r.build_hash for r in mgr.catalog.records("a")] == ["h1", "h2"]
        assert mgr.catalog.repo("a").last_fetched == NOW
        assert (tmp_path / "a.json").exists()

    def test_first_failure_aborts_remaining(self):
        error = FetchError("a", "boom")
        fetcher = FakeFetcher({"a": error, "b": [rec("b", "h")]})

        report = manager(fetcher).sync(repos("a", "b"))

        assert fetcher.calls == ["a"]
        assert report.first_error is error
        assert report.outcome("b").status is SyncStatus.ABORTED
        assert not report.ok

    def test_ignore_errors_attempts_all(self, tmp_path):
        """Repo a fails, repo b succeeds: b is stored and a's error is reported."""
        error = FetchError("a", "boom")
        store = CatalogStore(tmp_path)
        fetcher = FakeFetcher({"a": error, "b": [rec("b", "h1")]})
        mgr = manager(fetcher, store)

        report = mgr.sync(repos("a", "b"), ignore_errors=True)

        assert fetcher.calls == ["a", "b"]
        assert report.first_error is error
        assert report.outcome("a").status is SyncStatus.FAILURE
        assert report.outcome("b").status is SyncStatus.SUCCESS
        assert [r.build_hash for r in mgr.catalog.records("b")] == ["h1"]

        reloaded = CatalogStore(tmp_path).load(repos("a", "b"))
        assert [r.build_hash for r in reloaded.records("b")] == ["h1"]
        assert reloaded.records("a") == []

    def test_first_error_is_the_earliest_failure(self):
        first = FetchError("a", "first")
        second = FetchError("c", "second")
        fetcher = FakeFetcher({"a": first, "b": [], "c": second})

        report = manager(fetcher).sync(repos("a", "b", "c"), ignore_errors=True)

        assert report.first_error is first
        assert len(report.with_status(SyncStatus.FAILURE)) == 2


class TestStaleness:
    """Fresh repositories are skipped unless forced."""

    def _fresh_catalog(self):
        catalog = BuildCatalog()
        catalog.ingest("a", [rec("a", "old")], fetched_at=NOW - timedelta(minutes=10))
        return catalog

    def test_fresh_repo_is_skipped(self):
        fetcher = FakeFetcher({"a": [rec("a", "new")]})
        report = manager(fetcher, catalog=self._fresh_catalog()).sync(repos("a"))

        assert fetcher.calls == []
        assert report.all_fresh
        assert report.outcome("a").retry_in == timedelta(minutes=50)

    def test_force_refetches(self):
        fetcher = FakeFetcher({"a": [rec("a", "new")]})
        mgr = manager(fetcher, catalog=self._fresh_catalog())

        report = mgr.sync(repos("a"), force=True)

        assert fetcher.calls == ["a"]
        assert report.outcome("a").status is SyncStatus.SUCCESS
        # never shrinks: the old hash survives the refetch
        assert {r.build_hash for r in mgr.catalog.records("a")} == {"old", "new"}


class TestParallelSync:
    """parallel=True."""

    def test_all_repos_fetched(self):
        fetcher = FakeFetcher({"a": [rec("a", "1")], "b": [rec("b", "2")], "c": [rec("c", "3")]})
        mgr = manager(fetcher)

        report = mgr.sync(repos("a", "b", "c"), parallel=True)

        assert report.ok
        assert sorted(fetcher.calls) == ["a", "b", "c"]
        assert [o.repo_id for o in report.outcomes] == ["a", "b", "c"]
        assert {r.build_hash for r in mgr.catalog.records()} == {"1", "2", "3"}

    def test_failure_stops_unstarted_but_not_in_flight(self):
        """With one slot, a failing first repo prevents later ones from starting."""
        error = FetchError("a", "boom")
        fetcher = FakeFetcher({"a": error, "b": [rec("b", "1")], "c": [rec("c", "2")]})

        report = manager(fetcher, max_concurrency=1).sync(repos("a", "b", "c"), parallel=True)

        assert fetcher.calls == ["a"]
        assert report.first_error is error
        assert report.outcome("b").status is SyncStatus.ABORTED
        assert report.outcome("c").status is SyncStatus.ABORTED

    def test_in_flight_fetch_finishes_after_failure(self):
        error = FetchError("a", "boom")
        fetcher = FakeFetcher({"a": error, "b": [rec("b", "1")]}, delays={"b": 0.01})
        mgr = manager(fetcher, max_concurrency=2)

        report = mgr.sync(repos("a", "b"), parallel=True)

        assert report.first_error is error
        assert report.outcome("b").status is SyncStatus.SUCCESS
        assert [r.build_hash for r in mgr.catalog.records("b")] == ["1"]

    def test_ignore_errors_runs_everything(self):
        fetcher = FakeFetcher({"a": FetchError("a", "x"), "b": [rec("b", "1")]})
        report = manager(fetcher, max_concurrency=1).sync(repos("a", "b"), parallel=True, ignore_errors=True)
        assert fetcher.calls == ["a", "b"]
        assert report.outcome("b").status is SyncStatus.SUCCESS


class TestDefaultFetcher:
    """Without an injected fetcher the registry is used through an aiohttp session."""

    def test_uses_registry_fetch_builds(self):
        calls = []

        async def fake_fetch_builds(session, repo, auth=None):
            calls.append((repo.repo_id, auth))
            return [rec(repo.repo_id, "h")]

        mgr = RepositorySyncManager(BuildCatalog(), clock=lambda: NOW)
        with patch("buildvault.catalog.sync.fetch_builds", side_effect=fake_fetch_builds):
            report = mgr.sync(repos("a"))

        assert report.ok
        assert calls == [("a", None)]


class TestSaveFailure:
    """A failed cache write leaves the in-memory catalog untouched."""

    def test_store_error_is_a_failure(self, tmp_path):
        store = CatalogStore(tmp_path)
        fetcher = FakeFetcher({"a": [rec("a", "h")]})
        mgr = manager(fetcher, store)

        with patch.object(store, "save", side_effect=OSError("disk full")):
            report = mgr.sync(repos("a"))

        assert isinstance(report.first_error, OSError)
        assert mgr.catalog.records("a") == []
        assert mgr.catalog.repo("a").last_fetched is None


@pytest.mark.parametrize("parallel", [False, True])
def test_report_order_follows_configuration(parallel):
    fetcher = FakeFetcher({"b": [], "a": []}, delays={"b": 0.01})
    report = manager(fetcher).sync(repos("b", "a"), parallel=parallel)
    assert [o.repo_id for o in report.outcomes] == ["b", "a"]


def session_serving(bodies):
    """aiohttp-like session answering each URL with a canned status and body."""

    def get(url, **kwargs):
        status, body = bodies[url]
        response = MagicMock()
        response.status = status
        if isinstance(body, bytes):
            response.text = AsyncMock(side_effect=lambda: body.decode("utf-8"))
        else:
            response.text = AsyncMock(return_value=body)
        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=response)
        ctx.__aexit__ = AsyncMock(return_value=False)
        return ctx

    session = MagicMock()
    session.get.side_effect = get
    factory = MagicMock()
    factory.__aenter__ = AsyncMock(return_value=session)
    factory.__aexit__ = AsyncMock(return_value=False)
    return factory


class TestUndecodableResponse:
    """A repository serving a body that is not UTF-8 is recorded as a failure."""

    @pytest.mark.parametrize("parallel", [False, True])
    def test_other_repos_still_synced(self, parallel, tmp_path):
        entry = {
            "version": "4.2.0",
            "branch": "main",
            "release_cycle": "alpha",
            "hash": "a1b2c3d4e5f6",
            "platform": "linux",
            "architecture": "x86_64",
            "file_mtime": 1714560000,
            "url": "https://example.invalid/blender.tar.xz",
            "file_name": "blender.tar.xz",
            "file_extension": "xz",
        }
        bodies = {
            "https://example.invalid/a": (200, b"\xff\xfe[not utf-8"),
            "https://example.invalid/b": (200, json.dumps([entry])),
        }
        mgr = RepositorySyncManager(BuildCatalog(), CatalogStore(tmp_path), clock=lambda: NOW)

        with patch("buildvault.catalog.sync.new_session", return_value=session_serving(bodies)):
            report = mgr.sync(repos("a", "b"), parallel=parallel, ignore_errors=True)

        assert report.outcome("a").status is SyncStatus.FAILURE
        assert isinstance(report.first_error, FetchError)
        assert report.outcome("b").status is SyncStatus.SUCCESS
        assert [r.build_hash for r in mgr.catalog.records("b")] == ["a1b2c3d4e5f6"]
