"""Locating and running the executable of an installed build."""

from __future__ import annotations

import logging
import re
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from buildvault.catalog.platform import get_target_setup
from buildvault.constants import Constants
from buildvault.errors import LaunchError
from buildvault.versioning.models import BuildRecord, Version

logger = logging.getLogger(__name__)

_VERSION_LINE = re.compile(r"^Blender\s+(\d+)\.(\d+)(?:\.(\d+))?", re.MULTILINE)
_FIELD = re.compile(r"^\s*build (?P<key>[a-z ]+):\s*(?P<value>.+?)\s*$", re.MULTILINE)


def executable_for(folder: Path, platform: Optional[str] = None) -> Path:
    """Path of the executable inside an install folder for ``platform`` (host by default)."""
    platform = platform or get_target_setup().platform
    try:
        name = Constants.LAUNCH_TARGETS[platform]
    except KeyError as exc:
        raise LaunchError(f"Launching builds is not supported on {platform!r}") from exc
    return Path(folder) / name


def build_command(folder: Path, args: Sequence[str] = (), platform: Optional[str] = None) -> List[str]:
    exe = executable_for(folder, platform)
    if not exe.exists():
        raise LaunchError(f"Executable not found: {exe}")
    return [str(exe), *args]


def launch(command: Sequence[str]) -> int:
    """Run ``command`` in the foreground and return its exit status."""
    logger.info("Running: %s", " ".join(command))
    try:
        result = subprocess.run(list(command), check=False)  # noqa: S603
    except OSError as exc:
        raise LaunchError(f"Could not run {command[0]}: {exc}") from exc
    return result.returncode


def parse_version_output(text: str, repo_id: str) -> Optional[BuildRecord]:
    """Read a BuildRecord out of ``blender --version`` output.

    Expected shape::

        Blender 4.2.0
            build commit date: 2024-07-16
            build commit time: 23:49
            build hash: a51f293548ad
            build branch: blender-v4.2-release
    """
    m = _VERSION_LINE.search(text)
    if not m:
        return None
    fields = {f.group("key"): f.group("value") for f in _FIELD.finditer(text)}
    build_hash = fields.get("hash")
    if not build_hash:
        return None
    commit_time = datetime.fromtimestamp(0, tz=timezone.utc)
    if fields.get("commit date"):
        stamp = f"{fields['commit date']} {fields.get('commit time', '00:00')}"
        try:
            commit_time = datetime.strptime(stamp, "%Y-%m-%d %H:%M").replace(tzinfo=timezone.utc)
        except ValueError:
            pass
    return BuildRecord(
        repo=repo_id,
        version=Version(int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)),
        build_hash=build_hash,
        commit_time=commit_time,
        branch=fields.get("branch"),
    )


def probe_build(folder: Path, repo_id: str, timeout: int = Constants.REQUEST_TIMEOUT) -> Optional[BuildRecord]:
    """Ask the executable in ``folder`` which build it is.

    Returns None when there is no executable or its output is not understood.
    """
    try:
        exe = executable_for(folder)
    except LaunchError:
        return None
    if not exe.exists():
        return None
    try:
        result = subprocess.run(  # noqa: S603
            [str(exe), "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("Failed to probe %s: %s", exe, exc)
        return None
    if result.returncode != 0:
        return None
    return parse_version_output(result.stdout, repo_id)
