"""Tests for the pull workflow."""

import hashlib
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from buildvault.catalog.platform import TargetSetup
from buildvault.commands.pull import (
    DOWNLOAD_DIR,
    choose_variant,
    download_build,
    expected_checksum,
    pull,
    select_builds,
)
from buildvault.config import Config
from buildvault.errors import (
    ChecksumMismatchError,
    DownloadError,
    InstallError,
    MissingQueryError,
    QueryParseError,
    QueryResultEmptyError,
)
from buildvault.library import LibraryState
from buildvault.versioning import parse_query
from buildvault.versioning.models import BuildRecord, BuildVariant, Version

T0 = datetime(2024, 4, 1, tzinfo=timezone.utc)
PAYLOAD = b"pretend this is an archive"
PAYLOAD_SHA = hashlib.sha256(PAYLOAD).hexdigest()


def variant(plat="linux", name="blender-linux.tar.xz", checksum=PAYLOAD_SHA):
    return BuildVariant(plat, "x86_64", f"https://example.invalid/{name}", file_name=name, checksum=checksum)


def rec(build_hash, version=(4, 2, 0), hours=0, variants=None):
    return BuildRecord(
        "daily",
        Version(*version),
        build_hash,
        T0 + timedelta(hours=hours),
        "main",
        tuple(variants if variants is not None else [variant()]),
    )


def fake_downloader(url, dest, *, context, timeout):
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(PAYLOAD)
    return len(PAYLOAD)


def fake_extract(archive, dest):
    dest.mkdir(parents=True)
    (dest / "blender").write_bytes(archive.read_bytes())
    return dest


@pytest.fixture(autouse=True)
def linux_host():
    with patch("buildvault.catalog.platform.get_target_setup", return_value=TargetSetup("linux", "x86_64")):
        yield


@pytest.fixture
def cfg(tmp_path):
    return Config(library=tmp_path / "lib")


class TestChooseVariant:
    """Artifact selection."""

    def test_prefers_host_variant(self):
        record = rec("a", variants=[variant("windows", "b.zip"), variant("linux", "b.tar.xz")])
        assert choose_variant(record).platform == "linux"

    def test_falls_back_to_any_variant(self):
        record = rec("a", variants=[variant("windows", "b.zip")])
        assert choose_variant(record).platform == "windows"

    def test_all_platforms_keeps_listing_order(self):
        record = rec("a", variants=[variant("windows", "b.zip"), variant("linux", "b.tar.xz")])
        assert choose_variant(record, all_platforms=True).platform == "windows"

    def test_no_installable_archive(self):
        record = rec("a", variants=[variant("linux", "b.dmg"), variant("windows", "b.msi")])
        with pytest.raises(InstallError):
            choose_variant(record)


class TestSelectBuilds:
    """Query resolution for pull."""

    def test_newest_match_per_query(self, cfg):
        records = [rec("old", hours=1), rec("new", hours=2), rec("other", version=(4, 1, 0))]
        chosen = select_builds(cfg, [parse_query("4.2.^")], records)
        assert [b.build_hash for b in chosen] == ["new"]

    def test_duplicates_collapse(self, cfg):
        records = [rec("a"), rec("b", version=(4, 1, 0))]
        chosen = select_builds(cfg, [parse_query("4.2.0"), parse_query("daily/4.2.0")], records)
        assert [b.build_hash for b in chosen] == ["a"]

    def test_empty_queries_are_all_named(self, cfg):
        with pytest.raises(QueryResultEmptyError) as exc:
            select_builds(cfg, [parse_query("4.2.0"), parse_query("9.9.9"), parse_query("8.0.0")], [rec("a")])
        assert exc.value.queries == ["9.9.9", "8.0.0"]

    def test_platform_pass_can_be_disabled(self, cfg):
        records = [rec("win", variants=[variant("windows", "b.zip")])]
        with pytest.raises(QueryResultEmptyError):
            select_builds(cfg, [parse_query("4.2.0")], records)
        assert [b.build_hash for b in select_builds(cfg, [parse_query("4.2.0")], records, all_platforms=True)] == ["win"]


class TestDownload:
    """Downloading and verifying archives."""

    def test_download_verified(self, cfg):
        path = download_build(cfg, rec("a"), variant(), downloader=fake_downloader)
        assert path == cfg.library / DOWNLOAD_DIR / "blender-linux.tar.xz"
        assert path.read_bytes() == PAYLOAD
        assert not path.with_name(path.name + ".part").exists()

    def test_checksum_mismatch_leaves_nothing(self, cfg):
        bad = variant(checksum="0" * 64)
        with pytest.raises(ChecksumMismatchError):
            download_build(cfg, rec("a"), bad, downloader=fake_downloader)
        assert list((cfg.library / DOWNLOAD_DIR).iterdir()) == []

    def test_download_failure_cleans_partial(self, cfg):
        def broken(url, dest, *, context, timeout):
            dest.parent.mkdir(parents=True, exist_ok=True)
            dest.write_bytes(b"half")
            raise DownloadError("connection reset")

        with pytest.raises(DownloadError):
            download_build(cfg, rec("a"), variant(), downloader=broken)
        assert list((cfg.library / DOWNLOAD_DIR).iterdir()) == []

    @patch("buildvault.commands.pull.get_text", return_value=PAYLOAD_SHA.upper() + "  blender.tar.xz\n")
    def test_checksum_side_file(self, mock_get):
        side = BuildVariant("linux", "x86_64", "https://example.invalid/b.tar.xz", checksum_url="https://example.invalid/b.sha256")
        assert expected_checksum(side) == PAYLOAD_SHA
        mock_get.assert_called_once()

    def test_no_checksum_published(self):
        assert expected_checksum(variant(checksum=None)) is None


class TestPull:
    """End to end pull with fakes."""

    def test_installs_and_cleans_downloads(self, cfg):
        library = LibraryState(cfg.library, extractor=fake_extract)
        installed = pull(cfg, ["4.2.^"], downloader=fake_downloader, library=library, records=[rec("a"), rec("b", hours=1)])

        assert [r.build_hash for r in installed] == ["b"]
        assert (installed[0].install_path / "blender").read_bytes() == PAYLOAD
        assert installed[0].variant.platform == "linux"
        assert list((cfg.library / DOWNLOAD_DIR).iterdir()) == []

    def test_installed_builds_are_not_candidates(self, cfg):
        library = LibraryState(cfg.library, extractor=fake_extract)
        records = [rec("a"), rec("b", hours=1)]
        pull(cfg, ["4.2.^"], downloader=fake_downloader, library=library, records=records)
        second = pull(cfg, ["4.2.^"], downloader=fake_downloader, library=library, records=records)
        assert [r.build_hash for r in second] == ["a"]

    def test_no_query(self, cfg):
        with pytest.raises(MissingQueryError):
            pull(cfg, [], library=MagicMock(), records=[])

    def test_bad_query_stops_before_download(self, cfg):
        downloader = MagicMock()
        with pytest.raises(QueryParseError):
            pull(cfg, ["4.2.0", "4.x"], downloader=downloader, library=MagicMock(), records=[rec("a")])
        downloader.assert_not_called()
