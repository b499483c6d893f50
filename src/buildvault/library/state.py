"""Library state: which builds are installed and where.

The index lives at ``<library>/installed.json`` and maps build hash to an
InstallRecord. Every install folder also carries a ``.build_info.json``
copy of its record so ``verify`` can rebuild a lost or damaged index.

Layout::

    <library>/<repo>/<version>[-<branch>]-<short hash>/
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from send2trash import send2trash

from buildvault.catalog.store import write_json_atomic
from buildvault.common.logging_utils import extra_context, is_debug_enabled
from buildvault.constants import Constants
from buildvault.errors import (
    AlreadyInstalledError,
    ExtractError,
    InstallError,
    NotInstalledError,
    RemoveError,
    TargetExistsError,
)
from buildvault.versioning.models import BuildRecord, BuildVariant, InstallRecord
from .extract import extract

logger = logging.getLogger(__name__)

Extractor = Callable[[Path, Path], object]
Trasher = Callable[[str], None]
Probe = Callable[[Path, str], Optional[BuildRecord]]

SHORT_HASH_LEN = 12
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def folder_name(record: BuildRecord) -> str:
    name = str(record.version)
    if record.branch:
        name += f"-{record.branch}"
    name += f"-{record.build_hash[:SHORT_HASH_LEN]}"
    return _UNSAFE_CHARS.sub("_", name)


@dataclass
class VerifyReport:
    """Result of scanning the library folders."""
    verified: List[InstallRecord] = field(default_factory=list)
    adopted: List[InstallRecord] = field(default_factory=list)
    broken: List[Tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.broken


class LibraryState:
    """Installed builds of one library folder and their on-disk index."""

    def __init__(
        self,
        library_root: Path,
        extractor: Extractor = extract,
        trasher: Trasher = send2trash,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.root = Path(library_root)
        self.index_path = self.root / Constants.INSTALLED_INDEX_FILE
        self._extractor = extractor
        self._trasher = trasher
        self._clock = clock
        self.load_error: Optional[str] = None
        self._records: Dict[str, InstallRecord] = self._load()

    # Persistence ----------------------------------------------------------

    def _load(self) -> Dict[str, InstallRecord]:
        if not self.index_path.exists():
            return {}
        try:
            with open(self.index_path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
            records = [InstallRecord.from_dict(item) for item in data.get("installed", [])]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            # verify can rebuild the index from the per-folder build info files
            logger.warning("Could not read library index %s: %s", self.index_path, exc)
            self.load_error = str(exc)
            return {}
        return {r.build_hash: r for r in records}

    def _commit(self, records: Dict[str, InstallRecord]) -> None:
        """Persist ``records`` and only then make them the in-memory index.

        Raises:
            OSError: the index could not be written; the in-memory index is unchanged.
        """
        write_json_atomic(
            self.index_path,
            {"installed": [r.to_dict() for r in records.values()]},
        )
        self._records = records

    @staticmethod
    def _write_build_info(record: InstallRecord) -> None:
        write_json_atomic(record.install_path / Constants.BUILD_INFO_FILE, record.to_dict())

    @staticmethod
    def read_build_info(folder: Path) -> InstallRecord:
        """Read the InstallRecord stored inside an install folder.

        Raises:
            OSError, ValueError, KeyError, TypeError: missing or corrupt file.
        """
        with open(Path(folder) / Constants.BUILD_INFO_FILE, "r", encoding="utf-8") as fh:
            record = InstallRecord.from_dict(json.load(fh))
        record.install_path = Path(folder)
        return record

    # Queries --------------------------------------------------------------

    def install_path_for(self, record: BuildRecord) -> Path:
        return self.root / record.repo / folder_name(record)

    def get(self, build_hash: str) -> Optional[InstallRecord]:
        return self._records.get(build_hash)

    def is_installed(self, build_hash: str) -> bool:
        return build_hash in self._records

    def list(self) -> List[InstallRecord]:
        """Installed builds; records whose folder vanished are dropped and the index saved.

        When the index cannot be rewritten the stale records stay tracked and
        are only left out of the result.
        """
        present = {h: r for h, r in self._records.items() if r.install_path.exists()}
        if len(present) != len(self._records):
            for build_hash in self._records.keys() - present.keys():
                logger.debug("Dropping install record for missing folder: %s", build_hash)
            try:
                self._commit(present)
            except OSError as exc:
                logger.warning("Could not update library index %s: %s", self.index_path, exc)
        return list(present.values())

    def records(self) -> List[BuildRecord]:
        """Snapshots of the installed builds, usable with the matcher."""
        return [r.build for r in self.list()]

    # Lifecycle ------------------------------------------------------------

    def install(
        self,
        record: BuildRecord,
        archive_path: Path,
        variant: Optional[BuildVariant] = None,
    ) -> InstallRecord:
        """Extract ``archive_path`` into the library and track it.

        Nothing is left behind when extraction or bookkeeping fails.

        Raises:
            AlreadyInstalledError: ``record``'s hash is already installed.
            TargetExistsError: the target folder holds untracked files.
            ExtractError: the archive could not be extracted.
            InstallError: the build info or index could not be written.
        """
        # a record whose folder vanished is replaced once the new install is committed
        existing = self._records.get(record.build_hash)
        if existing is not None and existing.install_path.exists():
            raise AlreadyInstalledError(
                f"Build {record.build_hash} is already installed at {existing.install_path}"
            )

        target = self.install_path_for(record)
        if target.exists():
            if any(target.iterdir()):
                raise TargetExistsError(f"Install folder already exists and is not empty: {target}")
            target.rmdir()

        try:
            self._extractor(Path(archive_path), target)
        except ExtractError:
            self._rollback(target)
            raise
        except OSError as exc:
            self._rollback(target)
            raise ExtractError(f"Could not extract {archive_path}: {exc}") from exc

        installed = InstallRecord(
            build_hash=record.build_hash,
            install_path=target,
            installed_at=self._clock(),
            build=record,
            variant=variant,
        )
        try:
            self._write_build_info(installed)
            self._commit({**self._records, record.build_hash: installed})
        except OSError as exc:
            self._rollback(target)
            raise InstallError(f"Could not record installation of {record.build_hash}: {exc}") from exc

        if is_debug_enabled(logger):
            logger.debug(
                "Build installed",
                extra=extra_context(
                    event="install",
                    component="library",
                    outcome="success",
                    target=str(target),
                    build_hash=record.build_hash,
                ),
            )
        return installed

    @staticmethod
    def _rollback(target: Path) -> None:
        if target.exists():
            shutil.rmtree(target, ignore_errors=True)

    def remove(self, build_hash: str, trash: bool = True) -> InstallRecord:
        """Remove an installed build and forget it.

        A folder that is already gone counts as removed. When deleting fails
        part way the record is kept.

        Raises:
            NotInstalledError: no record exists for ``build_hash``.
            RemoveError: the folder could not be trashed or deleted.
        """
        record = self._records.get(build_hash)
        if record is None:
            raise NotInstalledError(build_hash)

        path = record.install_path
        if path.is_symlink() or path.exists():
            try:
                if trash:
                    self._trasher(str(path))
                elif path.is_symlink():
                    path.unlink()
                else:
                    shutil.rmtree(path)
            except OSError as exc:
                raise RemoveError(f"Could not remove {path}: {exc}") from exc
        else:
            logger.debug("Install folder already gone: %s", path)

        remaining = {h: r for h, r in self._records.items() if h != build_hash}
        try:
            self._commit(remaining)
        except OSError as exc:
            raise RemoveError(f"Removed {path} but could not update the library index: {exc}") from exc
        return record

    def verify(self, repos: Optional[Iterable[str]] = None, probe: Optional[Probe] = None) -> VerifyReport:
        """Scan ``<library>/<repo>/`` folders and reconcile them with the index.

        Folders with a readable build info file that the index does not
        know are adopted. Folders without one are handed to ``probe`` (when
        given) to identify the build from its executable; the rest are
        reported as broken.
        """
        wanted = set(repos) if repos is not None else None
        report = VerifyReport()
        records = dict(self._records)

        if not self.root.is_dir():
            return report

        for repo_dir in sorted(self.root.iterdir()):
            if not repo_dir.is_dir() or repo_dir.name.startswith("."):
                continue
            if wanted is not None and repo_dir.name not in wanted:
                continue
            for folder in sorted(repo_dir.iterdir()):
                if not folder.is_dir() or folder.name.startswith("."):
                    continue
                try:
                    record = self.read_build_info(folder)
                except (OSError, ValueError, KeyError, TypeError) as exc:
                    record = self._probe(folder, repo_dir.name, probe)
                    if record is None:
                        report.broken.append((folder, str(exc)))
                        continue

                known = records.get(record.build_hash)
                if known is not None and known.install_path == folder:
                    report.verified.append(known)
                    continue
                records[record.build_hash] = record
                report.adopted.append(record)

        if report.adopted:
            self._commit(records)
        return report

    def _probe(self, folder: Path, repo_id: str, probe: Optional[Probe]) -> Optional[InstallRecord]:
        if probe is None:
            return None
        build = probe(folder, repo_id)
        if build is None:
            return None
        record = InstallRecord(
            build_hash=build.build_hash,
            install_path=folder,
            installed_at=self._clock(),
            build=build,
        )
        try:
            self._write_build_info(record)
        except OSError as exc:
            logger.debug("Could not write build info into %s: %s", folder, exc)
        return record
