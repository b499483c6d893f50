"""Best-effort platform filtering for build records.

The OS/arch heuristic can both over- and under-match (artifact naming is
not standardized across repositories), which is why the CLI offers
``--all-builds``/``--all-platforms``. It is an advisory pass applied before
matching and never part of the matching logic itself.
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from buildvault.versioning.models import BuildRecord, BuildVariant

UNKNOWN = "unknown"

_PLATFORM_ALIASES = {
    "linux": "linux",
    "windows": "windows",
    "win": "windows",
    "win32": "windows",
    "win64": "windows",
    "darwin": "darwin",
    "macos": "darwin",
    "mac": "darwin",
    "osx": "darwin",
}
_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "x64": "x86_64",
    "amd64": "x86_64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


def normalize_platform(name: Optional[str]) -> str:
    return _PLATFORM_ALIASES.get((name or "").strip().lower(), UNKNOWN)


def normalize_arch(name: Optional[str]) -> str:
    return _ARCH_ALIASES.get((name or "").strip().lower(), UNKNOWN)


@dataclass(frozen=True)
class TargetSetup:
    """Operating system and CPU architecture builds are filtered for."""
    platform: str
    arch: str

    def __str__(self) -> str:
        return f"{self.platform}-{self.arch}"


def get_target_setup() -> TargetSetup:
    """Describe the host this process runs on."""
    return TargetSetup(
        platform=normalize_platform(_platform.system()),
        arch=normalize_arch(_platform.machine()),
    )


def variant_matches_target(variant: BuildVariant, target: TargetSetup) -> bool:
    """Variants with unrecognized tags are kept rather than hidden."""
    plat = normalize_platform(variant.platform)
    arch = normalize_arch(variant.arch)
    if plat != UNKNOWN and plat != target.platform:
        return False
    if arch != UNKNOWN and target.arch != UNKNOWN and arch != target.arch:
        return False
    return True


def filter_variants(
    variants: Sequence[BuildVariant], target: Optional[TargetSetup] = None
) -> Tuple[BuildVariant, ...]:
    target = target or get_target_setup()
    return tuple(v for v in variants if variant_matches_target(v, target))


def platform_default_filter(record: BuildRecord, target: Optional[TargetSetup] = None) -> bool:
    """True when ``record`` ships at least one variant for ``target``.

    Records without variant metadata pass, since there is nothing to judge.
    """
    if not record.variants:
        return True
    return bool(filter_variants(record.variants, target))
