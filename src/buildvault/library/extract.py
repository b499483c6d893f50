"""Archive extraction for downloaded builds.

Supports ``.tar.*`` and ``.zip``. Members that would land outside the target
folder (absolute paths, ``..`` parts, escaping links) are rejected before
anything is written. Archives that wrap everything in one top-level folder
are flattened so the install folder holds the build directly.
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath

from buildvault.common.logging_utils import Timer, extra_context, is_debug_enabled
from buildvault.errors import ExtractError

logger = logging.getLogger(__name__)


def is_relative_to(child: Path, parent: Path) -> bool:
    try:
        child.relative_to(parent)
        return True
    except ValueError:
        return False


def _check_member(name: str, base: Path) -> None:
    if not name:
        return
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise ExtractError(f"Unsafe archive member: {name}")
    if not is_relative_to((base / path).resolve(), base):
        raise ExtractError(f"Unsafe archive member (path traversal): {name}")


def _check_tar(tf: tarfile.TarFile, base: Path) -> None:
    for member in tf.getmembers():
        _check_member(member.name, base)
        if member.islnk() or member.issym():
            link = member.linkname or ""
            if link.startswith("/"):
                raise ExtractError(f"Unsafe link in archive: {member.name} -> {link}")
            # hard links are relative to the archive root, symlinks to their folder
            anchor = base if member.islnk() else (base / member.name).parent
            if not is_relative_to((anchor / link).resolve(), base):
                raise ExtractError(f"Unsafe link in archive: {member.name} -> {link}")


def _extract_tar(archive: Path, workdir: Path) -> None:
    with tarfile.open(archive, "r:*") as tf:
        _check_tar(tf, workdir.resolve())
        if hasattr(tarfile, "data_filter"):
            tf.extractall(workdir, filter="data")
        else:
            tf.extractall(workdir)


def _extract_zip(archive: Path, workdir: Path) -> None:
    with zipfile.ZipFile(archive) as zf:
        base = workdir.resolve()
        for name in zf.namelist():
            _check_member(name, base)
        zf.extractall(workdir)


def archive_kind(archive: Path) -> str:
    """Return ``"tar"`` or ``"zip"`` for a supported archive name."""
    name = archive.name.lower()
    if name.endswith(".zip"):
        return "zip"
    if name.endswith((".tar", ".tar.gz", ".tgz", ".tar.xz", ".tar.bz2")):
        return "tar"
    raise ExtractError(f"Unsupported archive format: {archive.name}")


def extract(archive: Path, dest: Path) -> Path:
    """Extract ``archive`` into ``dest`` and return ``dest``.

    ``dest`` must not exist yet. Extraction happens in a sibling staging
    folder that is moved into place only once complete.

    Raises:
        ExtractError: unsupported format, unsafe or corrupt archive, or I/O failure.
    """
    archive = Path(archive)
    dest = Path(dest)
    kind = archive_kind(archive)
    if dest.exists():
        raise ExtractError(f"Extraction target already exists: {dest}")
    dest.parent.mkdir(parents=True, exist_ok=True)

    workdir = Path(tempfile.mkdtemp(prefix=f".{dest.name}.", suffix=".extracting", dir=dest.parent))
    with Timer() as t:
        try:
            if kind == "zip":
                _extract_zip(archive, workdir)
            else:
                _extract_tar(archive, workdir)
            entries = list(workdir.iterdir())
            root = entries[0] if len(entries) == 1 and entries[0].is_dir() else workdir
            shutil.move(str(root), str(dest))
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as exc:
            raise ExtractError(f"Could not extract {archive.name}: {exc}") from exc
        finally:
            if workdir.exists():
                shutil.rmtree(workdir, ignore_errors=True)

    if is_debug_enabled(logger):
        logger.debug(
            "Archive extracted",
            extra=extra_context(
                event="extract",
                component="extract",
                target=str(dest),
                duration_ms=t.duration_ms(),
            ),
        )
    return dest
