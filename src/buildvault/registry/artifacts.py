"""Helpers shared by repository sources for reading artifact metadata."""

from __future__ import annotations

import re
from typing import Optional, Tuple

import semantic_version

from buildvault.versioning.models import Version

ARCHIVE_EXTENSIONS = ("tar.xz", "tar.gz", "tar.bz2", "tar", "zip", "dmg", "msi", "sha256")

_VERSION_IN_TEXT = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")
_PLATFORM_HINTS = (
    ("linux", "linux"),
    ("windows", "windows"),
    ("win64", "windows"),
    ("win32", "windows"),
    ("macos", "darwin"),
    ("darwin", "darwin"),
    ("osx", "darwin"),
)
_ARCH_HINTS = (
    ("x86_64", "x86_64"),
    ("x64", "x86_64"),
    ("amd64", "x86_64"),
    ("arm64", "arm64"),
    ("aarch64", "arm64"),
)


def coerce_version(text: str) -> Optional[Version]:
    """Read a numeric ``(major, minor, patch)`` out of a loose version string.

    ``4.2`` becomes ``4.2.0``; prefixes like ``v`` or ``blender-`` are ignored.
    Returns None when no version can be found.
    """
    if not text:
        return None
    raw = str(text).strip()
    try:
        ver = semantic_version.Version.coerce(raw.lstrip("vV"))
        return Version(ver.major, ver.minor, ver.patch)
    except ValueError:
        pass
    m = _VERSION_IN_TEXT.search(raw)
    if not m:
        return None
    return Version(int(m.group(1)), int(m.group(2)), int(m.group(3) or 0))


def split_extension(file_name: str) -> Tuple[str, str]:
    """Split ``file_name`` into (stem, known archive extension)."""
    lower = file_name.lower()
    for ext in ARCHIVE_EXTENSIONS:
        if lower.endswith("." + ext):
            return file_name[: -(len(ext) + 1)], ext
    if "." in file_name:
        stem, ext = file_name.rsplit(".", 1)
        return stem, ext.lower()
    return file_name, ""


def detect_platform(file_name: str) -> str:
    lower = file_name.lower()
    for hint, plat in _PLATFORM_HINTS:
        if hint in lower:
            return plat
    return "unknown"


def detect_arch(file_name: str) -> str:
    lower = file_name.lower()
    for hint, arch in _ARCH_HINTS:
        if hint in lower:
            return arch
    return "unknown"
