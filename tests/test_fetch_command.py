"""Tests for the fetch command."""

import logging
from argparse import Namespace
from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest

from buildvault.catalog import SyncOutcome, SyncReport, SyncStatus
from buildvault.commands.fetch import fetch, format_duration, run_fetch
from buildvault.config import Config, RepoConfig
from buildvault.errors import FetchError

CFG = Config(
    repos=(
        RepoConfig("daily", "https://example.invalid/daily", nickname="Daily"),
        RepoConfig("patch", "https://example.invalid/patch"),
    )
)


class TestFormatDuration:
    """Human readable waits."""

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(seconds=5), "5s"),
            (timedelta(minutes=3, seconds=7), "3m 07s"),
            (timedelta(hours=1, minutes=2, seconds=3), "1h 02m 03s"),
            (timedelta(seconds=-4), "0s"),
        ],
    )
    def test_format(self, delta, expected):
        assert format_duration(delta) == expected


class TestFetch:
    """fetch() wiring."""

    def test_passes_flags_to_manager(self):
        manager = MagicMock()
        fetch(CFG, force=True, parallel=True, ignore_errors=True, manager=manager)
        manager.sync.assert_called_once_with(CFG.repos, force=True, parallel=True, ignore_errors=True)


class TestRunFetch:
    """Exit behaviour and logging."""

    @patch("buildvault.commands.fetch.fetch")
    def test_success(self, mock_fetch, caplog):
        mock_fetch.return_value = SyncReport(
            [SyncOutcome("daily", SyncStatus.SUCCESS, count=12), SyncOutcome("patch", SyncStatus.SUCCESS, count=0)]
        )
        with caplog.at_level(logging.INFO):
            assert run_fetch(CFG, Namespace(FORCE=False, PARALLEL=False, IGNORE_ERRORS=False)) == 0
        assert "Fetched 12 builds from Daily" in caplog.text
        assert "Fetched 0 builds from patch" in caplog.text

    @patch("buildvault.commands.fetch.fetch")
    def test_first_error_is_raised(self, mock_fetch, caplog):
        first = FetchError("daily", "request returned status 500")
        second = FetchError("patch", "timed out")
        mock_fetch.return_value = SyncReport(
            [
                SyncOutcome("daily", SyncStatus.FAILURE, error=first),
                SyncOutcome("patch", SyncStatus.FAILURE, error=second),
            ],
            first_error=first,
        )
        with caplog.at_level(logging.INFO):
            with pytest.raises(FetchError) as exc:
                run_fetch(CFG, Namespace(IGNORE_ERRORS=True))
        assert exc.value is first
        assert "Failed fetching from patch: timed out" in caplog.text
        assert "daily: request returned status 500" not in caplog.text

    @patch("buildvault.commands.fetch.fetch")
    def test_all_fresh_reports_next_fetch(self, mock_fetch, caplog):
        mock_fetch.return_value = SyncReport(
            [
                SyncOutcome("daily", SyncStatus.FRESH, retry_in=timedelta(minutes=50)),
                SyncOutcome("patch", SyncStatus.FRESH, retry_in=timedelta(minutes=20)),
            ]
        )
        with caplog.at_level(logging.INFO):
            assert run_fetch(CFG, Namespace()) == 0
        assert "next fetch is due in 20m 00s" in caplog.text
