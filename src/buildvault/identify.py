"""Identify which build a .blend file belongs to from its header.

Two header layouts exist::

    BLENDER_v402          legacy: pointer size, endianness, 3-digit version
    BLENDER17-01v0500     current: header size, format version, endianness, 4-digit version

Gzip-compressed files are read transparently.
"""

from __future__ import annotations

import gzip
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from buildvault.errors import NoMatchingBuildError, UnrecognizedFormatError
from buildvault.versioning.matcher import PlatformFilter, resolve_one
from buildvault.versioning.models import BuildRecord, Query

_LEGACY = re.compile(rb"^BLENDER[_-][vV](\d)(\d\d)")
_CURRENT = re.compile(rb"^BLENDER\d\d-\d\d[vV](\d\d)(\d\d)")
_GZIP_MAGIC = b"\x1f\x8b"
_ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"
HEADER_SIZE = 17


@dataclass(frozen=True)
class FileHeader:
    """Version stored in a blend header.

    Blend headers record only the major.minor version, never a build hash,
    so a file narrows the search to a release series.
    """
    major: int
    minor: int

    def to_query(self) -> Query:
        return Query(major=self.major, minor=self.minor)


def parse_header(data: bytes) -> FileHeader:
    """Parse the first bytes of an uncompressed blend file."""
    m = _CURRENT.match(data) or _LEGACY.match(data)
    if not m:
        raise UnrecognizedFormatError("File does not start with a blend header")
    return FileHeader(major=int(m.group(1)), minor=int(m.group(2)))


def read_header(path: Path) -> FileHeader:
    """Read the blend header of ``path``.

    Raises:
        UnrecognizedFormatError: unreadable file, unsupported compression or no header.
    """
    path = Path(path)
    try:
        with open(path, "rb") as fh:
            head = fh.read(HEADER_SIZE)
        if head.startswith(_GZIP_MAGIC):
            with gzip.open(path, "rb") as fh:
                head = fh.read(HEADER_SIZE)
    except (OSError, EOFError) as exc:
        raise UnrecognizedFormatError(f"Could not read {path}: {exc}") from exc
    if head.startswith(_ZSTD_MAGIC):
        raise UnrecognizedFormatError(f"{path.name} is zstd-compressed, which is not supported")
    return parse_header(head)


def identify(
    path: Path,
    records: Iterable[BuildRecord],
    platform_filter: Optional[PlatformFilter] = None,
) -> BuildRecord:
    """Find the build that wrote ``path`` among ``records``.

    The newest build of the file's major.minor series wins.

    Raises:
        UnrecognizedFormatError: the header is absent or malformed.
        NoMatchingBuildError: no record corresponds to the header.
    """
    header = read_header(path)
    build = resolve_one(header.to_query(), records, platform_filter)
    if build is None:
        raise NoMatchingBuildError(
            f"No known build matches {Path(path).name} (Blender {header.major}.{header.minor})"
        )
    return build
