"""``run``: launch an installed build, optionally opening a .blend file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Sequence

from buildvault.config import Config
from buildvault.errors import NoMatchingBuildError, NotEnoughInputError, QueryResultEmptyError
from buildvault.identify import identify
from buildvault.library import LibraryState
from buildvault.library.launching import build_command, launch
from buildvault.versioning import InstallRecord, is_query, parse_query, resolve_one
from .common import load_catalog, open_library

logger = logging.getLogger(__name__)


def _extra_args(args: Any) -> List[str]:
    extra = list(getattr(args, "ARGS", None) or [])
    if extra and extra[0] == "--":
        extra = extra[1:]
    return extra


def select_installed(library: LibraryState, query_text: str) -> InstallRecord:
    """Resolve ``query_text`` among installed builds.

    Raises:
        QueryParseError: the query is malformed.
        QueryResultEmptyError: no installed build matches.
    """
    query = parse_query(query_text)
    installed = library.list()
    build = resolve_one(query, [r.build for r in installed])
    if build is None:
        raise QueryResultEmptyError([str(query)])
    return next(r for r in installed if r.build_hash == build.build_hash)


def select_for_file(cfg: Config, library: LibraryState, path: Path) -> InstallRecord:
    """Pick the installed build that best fits the .blend file at ``path``.

    Raises:
        UnrecognizedFormatError: the file has no readable header.
        NoMatchingBuildError: no installed build fits; names a catalog build to pull when one exists.
    """
    installed = library.list()
    try:
        build = identify(path, [r.build for r in installed])
    except NoMatchingBuildError:
        catalog, _ = load_catalog(cfg)
        known = identify(path, catalog.records())
        raise NoMatchingBuildError(
            f"No installed build can open {path.name}; "
            f"try `buildvault pull {known.to_query()}`"
        ) from None
    return next(r for r in installed if r.build_hash == build.build_hash)


def run_build(cfg: Config, query_text: str, extra: Sequence[str] = (), library: Optional[LibraryState] = None) -> int:
    if library is None:
        library = open_library(cfg)
    record = select_installed(library, query_text)
    return launch(build_command(record.install_path, extra))


def run_file(cfg: Config, path: Path, extra: Sequence[str] = (), library: Optional[LibraryState] = None) -> int:
    if library is None:
        library = open_library(cfg)
    path = Path(path)
    record = select_for_file(cfg, library, path)
    return launch(build_command(record.install_path, [str(path), *extra]))


def run_run(cfg: Config, args: Any) -> int:
    """Dispatch ``run``, ``run build`` and ``run file``; returns the build's exit status."""
    mode = getattr(args, "RUN_MODE", None)
    extra = _extra_args(args)
    if mode == "build":
        if not getattr(args, "QUERY", None):
            raise NotEnoughInputError("run build needs a query")
        return run_build(cfg, args.QUERY, extra)
    if mode == "file":
        if not getattr(args, "PATH", None):
            raise NotEnoughInputError("run file needs a path")
        return run_file(cfg, Path(args.PATH), extra)

    target = getattr(args, "TARGET", None)
    if not target:
        raise NotEnoughInputError("run needs a query or a .blend file")
    if is_query(target):
        return run_build(cfg, target, extra)
    if Path(target).exists():
        return run_file(cfg, Path(target), extra)
    # neither: surface the query parse error
    return run_build(cfg, target, extra)
