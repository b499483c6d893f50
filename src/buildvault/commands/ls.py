"""``ls``: list known and installed builds per repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from buildvault.catalog import BuildCatalog
from buildvault.config import Config
from buildvault.constants import ExitCodes, LsFormat, SortFormat
from buildvault.library import LibraryState
from buildvault.output import render
from buildvault.versioning import BuildRecord, InstallRecord
from buildvault.versioning.matcher import PlatformFilter
from .common import load_catalog, open_library, platform_filter_for

logger = logging.getLogger(__name__)


@dataclass
class BuildEntry:
    build: BuildRecord
    install: Optional[InstallRecord] = None

    @property
    def installed(self) -> bool:
        return self.install is not None


@dataclass
class RepoEntry:
    """Builds of one repository; ``known`` is False for repos that are no longer configured."""
    repo_id: str
    nickname: str
    known: bool = True
    url: Optional[str] = None
    builds: List[BuildEntry] = field(default_factory=list)


def _sort_key(sort_by: SortFormat):
    if sort_by is SortFormat.DATETIME:
        return lambda e: (e.build.commit_time, e.build.version, e.build.build_hash)
    return lambda e: (e.build.version, e.build.commit_time, e.build.build_hash)


def collect(
    cfg: Config,
    catalog: BuildCatalog,
    installed: List[InstallRecord],
    installed_only: bool = False,
    platform_filter: Optional[PlatformFilter] = None,
    sort_by: SortFormat = SortFormat.VERSION,
) -> List[RepoEntry]:
    """Join catalog records with install records, grouped by repository.

    Installed builds are always listed, even once they disappeared from the
    remote catalog; the platform pass only hides builds that are not installed.
    """
    by_hash: Dict[tuple, InstallRecord] = {(r.repo, r.build_hash): r for r in installed}
    entries: Dict[str, RepoEntry] = {}
    for repo in cfg.repos:
        entry = RepoEntry(repo.repo_id, repo.display_name, known=True, url=repo.url)
        for build in catalog.records(repo.repo_id):
            install = by_hash.pop(build.key, None)
            if install is None:
                if installed_only or (platform_filter is not None and not platform_filter(build)):
                    continue
            entry.builds.append(BuildEntry(build, install))
        entries[repo.repo_id] = entry

    # installed builds whose record left the catalog, or whose repo is gone
    for install in by_hash.values():
        entry = entries.get(install.repo)
        if entry is None:
            entry = RepoEntry(install.repo, install.repo, known=False)
            entries[install.repo] = entry
        entry.builds.append(BuildEntry(install.build, install))

    result = []
    for entry in entries.values():
        if installed_only and not entry.builds:
            continue
        entry.builds.sort(key=_sort_key(sort_by))
        result.append(entry)
    result.sort(key=lambda e: (not e.known, e.nickname.lower(), e.repo_id))
    return result


def list_builds(
    cfg: Config,
    installed_only: bool = False,
    all_builds: bool = False,
    sort_by: SortFormat = SortFormat.VERSION,
    library: Optional[LibraryState] = None,
    catalog: Optional[BuildCatalog] = None,
) -> List[RepoEntry]:
    if library is None:
        library = open_library(cfg)
    if catalog is None:
        catalog, _ = load_catalog(cfg)
    return collect(
        cfg,
        catalog,
        library.list(),
        installed_only=installed_only,
        platform_filter=platform_filter_for(cfg, all_builds),
        sort_by=sort_by,
    )


def run_ls(cfg: Config, args: Any) -> int:
    entries = list_builds(
        cfg,
        installed_only=getattr(args, "INSTALLED_ONLY", False),
        all_builds=getattr(args, "ALL_BUILDS", False),
        sort_by=SortFormat(getattr(args, "SORT_BY", SortFormat.VERSION.value)),
    )
    print(
        render(
            entries,
            LsFormat(getattr(args, "FORMAT", LsFormat.TREE.value)),
            show_variants=getattr(args, "VARIANTS", False),
        )
    )
    return ExitCodes.SUCCESS.value
