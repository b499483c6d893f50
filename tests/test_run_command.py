"""Tests for the run command."""

from argparse import Namespace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from buildvault.catalog import BuildCatalog
from buildvault.commands.run import run_run, select_for_file, select_installed
from buildvault.config import Config
from buildvault.errors import (
    NoMatchingBuildError,
    NotEnoughInputError,
    QueryParseError,
    QueryResultEmptyError,
)
from buildvault.versioning.models import BuildRecord, InstallRecord, Version

T0 = datetime(2024, 6, 1, tzinfo=timezone.utc)


def rec(build_hash, version=(4, 2, 0), hours=0):
    return BuildRecord("daily", Version(*version), build_hash, T0 + timedelta(hours=hours), "main")


def inst(record):
    return InstallRecord(record.build_hash, Path("/lib/daily") / record.build_hash, T0, record)


def library_with(*records):
    library = MagicMock()
    library.list.return_value = [inst(r) for r in records]
    return library


CFG = Config(library=Path("/lib"))


class TestSelect:
    """Choosing the build to launch."""

    def test_newest_installed_match(self):
        library = library_with(rec("a", hours=1), rec("b", hours=3), rec("c", version=(3, 6, 0), hours=9))
        assert select_installed(library, "4.2").build_hash == "b"

    def test_nothing_installed_matches(self):
        with pytest.raises(QueryResultEmptyError):
            select_installed(library_with(rec("a")), "5.0")

    def test_file_opens_in_matching_build(self, tmp_path):
        blend = tmp_path / "scene.blend"
        blend.write_bytes(b"BLENDER-v402")
        library = library_with(rec("a", version=(4, 1, 0)), rec("b"))
        assert select_for_file(CFG, library, blend).build_hash == "b"

    @patch("buildvault.commands.run.load_catalog")
    def test_file_suggests_pull(self, mock_load, tmp_path):
        blend = tmp_path / "scene.blend"
        blend.write_bytes(b"BLENDER-v402")
        catalog = BuildCatalog()
        catalog.ingest("daily", [rec("remote")])
        mock_load.return_value = (catalog, None)

        with pytest.raises(NoMatchingBuildError) as exc:
            select_for_file(CFG, library_with(rec("a", version=(3, 6, 0))), blend)
        assert "buildvault pull daily/4.2.0-main#remote" in str(exc.value)


@patch("buildvault.commands.run.launch", return_value=0)
@patch("buildvault.commands.run.build_command", side_effect=lambda folder, extra: [str(folder / "blender"), *extra])
@patch("buildvault.commands.run.open_library")
class TestRunRun:
    """Dispatch of the run command."""

    def test_query_target(self, mock_open, _cmd, mock_launch):
        mock_open.return_value = library_with(rec("a"))
        args = Namespace(RUN_MODE=None, TARGET="4.2", ARGS=["--", "-b"])
        assert run_run(CFG, args) == 0
        mock_launch.assert_called_once_with([str(Path("/lib/daily/a/blender")), "-b"])

    def test_file_target(self, mock_open, _cmd, mock_launch, tmp_path):
        blend = tmp_path / "scene.blend"
        blend.write_bytes(b"BLENDER-v402")
        mock_open.return_value = library_with(rec("a"))
        run_run(CFG, Namespace(RUN_MODE=None, TARGET=str(blend), ARGS=[]))
        mock_launch.assert_called_once_with([str(Path("/lib/daily/a/blender")), str(blend)])

    def test_build_mode(self, mock_open, _cmd, mock_launch):
        mock_open.return_value = library_with(rec("a"))
        run_run(CFG, Namespace(RUN_MODE="build", QUERY="4.2", ARGS=[]))
        mock_launch.assert_called_once()

    def test_exit_status_passed_through(self, mock_open, _cmd, mock_launch):
        mock_open.return_value = library_with(rec("a"))
        mock_launch.return_value = 4
        assert run_run(CFG, Namespace(RUN_MODE=None, TARGET="4.2", ARGS=[])) == 4

    @pytest.mark.parametrize(
        "args",
        [
            Namespace(RUN_MODE=None, TARGET=None, ARGS=[]),
            Namespace(RUN_MODE="build", QUERY=None, ARGS=[]),
            Namespace(RUN_MODE="file", PATH=None, ARGS=[]),
        ],
    )
    def test_missing_input(self, _open, _cmd, _launch, args):
        with pytest.raises(NotEnoughInputError):
            run_run(CFG, args)

    def test_neither_query_nor_file(self, mock_open, _cmd, mock_launch):
        mock_open.return_value = library_with(rec("a"))
        with pytest.raises(QueryParseError):
            run_run(CFG, Namespace(RUN_MODE=None, TARGET="not-a-file.blend", ARGS=[]))
        mock_launch.assert_not_called()
