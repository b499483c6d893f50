"""Tests for executable lookup, launching and probing."""

import subprocess
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from buildvault.errors import LaunchError
from buildvault.library.launching import (
    build_command,
    executable_for,
    launch,
    parse_version_output,
    probe_build,
)
from buildvault.versioning.models import Version

VERSION_OUTPUT = """Blender 4.2.0
\tbuild date: 2024-07-16
\tbuild time: 23:52:29
\tbuild commit date: 2024-07-16
\tbuild commit time: 23:49
\tbuild hash: a51f293548ad
\tbuild branch: blender-v4.2-release
\tbuild platform: Linux
"""


class TestExecutable:
    """Executable paths per platform."""

    def test_per_platform(self, tmp_path):
        assert executable_for(tmp_path, "linux") == tmp_path / "blender"
        assert executable_for(tmp_path, "windows") == tmp_path / "blender.exe"
        assert executable_for(tmp_path, "darwin").name == "Blender"

    def test_unsupported_platform(self, tmp_path):
        with pytest.raises(LaunchError):
            executable_for(tmp_path, "unknown")

    def test_build_command(self, tmp_path):
        (tmp_path / "blender").write_text("")
        assert build_command(tmp_path, ["-b"], platform="linux") == [str(tmp_path / "blender"), "-b"]

    def test_build_command_missing_executable(self, tmp_path):
        with pytest.raises(LaunchError):
            build_command(tmp_path, platform="linux")


class TestLaunch:
    """Running the build."""

    @patch("buildvault.library.launching.subprocess.run")
    def test_returns_exit_status(self, mock_run):
        mock_run.return_value = MagicMock(returncode=3)
        assert launch(["/x/blender", "-b"]) == 3
        mock_run.assert_called_once_with(["/x/blender", "-b"], check=False)

    @patch("buildvault.library.launching.subprocess.run", side_effect=FileNotFoundError("nope"))
    def test_os_error_becomes_launch_error(self, _mock_run):
        with pytest.raises(LaunchError):
            launch(["/x/blender"])


class TestProbe:
    """Identifying a build from ``--version`` output."""

    def test_parse_version_output(self):
        build = parse_version_output(VERSION_OUTPUT, "daily")
        assert build.repo == "daily"
        assert build.version == Version(4, 2, 0)
        assert build.build_hash == "a51f293548ad"
        assert build.branch == "blender-v4.2-release"
        assert build.commit_time == datetime(2024, 7, 16, 23, 49, tzinfo=timezone.utc)

    def test_parse_without_hash(self):
        assert parse_version_output("Blender 4.2.0\n", "daily") is None
        assert parse_version_output("something else", "daily") is None

    @patch("buildvault.library.launching.get_target_setup")
    @patch("buildvault.library.launching.subprocess.run")
    def test_probe_build(self, mock_run, mock_target, tmp_path):
        mock_target.return_value = MagicMock(platform="linux")
        (tmp_path / "blender").write_text("")
        mock_run.return_value = MagicMock(returncode=0, stdout=VERSION_OUTPUT)

        build = probe_build(tmp_path, "daily")

        assert build.build_hash == "a51f293548ad"
        assert mock_run.call_args[0][0] == [str(tmp_path / "blender"), "--version"]

    @patch("buildvault.library.launching.get_target_setup")
    @patch("buildvault.library.launching.subprocess.run", side_effect=subprocess.TimeoutExpired("blender", 1))
    def test_probe_timeout(self, _mock_run, mock_target, tmp_path):
        mock_target.return_value = MagicMock(platform="linux")
        (tmp_path / "blender").write_text("")
        assert probe_build(tmp_path, "daily") is None

    def test_probe_without_executable(self, tmp_path):
        assert probe_build(tmp_path, "daily") is None
