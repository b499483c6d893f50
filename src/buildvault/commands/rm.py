"""``rm``: remove installed builds matching one or more queries."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from buildvault.config import Config
from buildvault.constants import ExitCodes
from buildvault.errors import QueryResultEmptyError
from buildvault.library import LibraryState
from buildvault.versioning import InstallRecord, match
from .common import open_library, parse_queries

logger = logging.getLogger(__name__)


def remove(
    cfg: Config,
    query_texts: Sequence[str],
    no_trash: bool = False,
    library: Optional[LibraryState] = None,
) -> List[InstallRecord]:
    """Remove every installed build matched by ``query_texts``.

    Only installed builds are matched and the platform pass is not applied.
    The first failure stops the run.

    Raises:
        QueryResultEmptyError: naming every query that matched nothing.
        RemoveError: a build could not be removed.
    """
    queries = parse_queries(query_texts)
    if library is None:
        library = open_library(cfg)
    installed = [r.build for r in library.list()]

    targets = []
    empty = []
    for query in queries:
        matches = match(query, installed)
        if not matches:
            empty.append(str(query))
        for build in matches:
            if build.build_hash not in targets:
                targets.append(build.build_hash)
    if empty:
        raise QueryResultEmptyError(empty)

    removed = []
    for build_hash in targets:
        record = library.remove(build_hash, trash=not no_trash)
        logger.info(
            "%s %s", "Deleted" if no_trash else "Moved to trash:", record.install_path
        )
        removed.append(record)
    return removed


def run_rm(cfg: Config, args: Any) -> int:
    remove(cfg, getattr(args, "QUERIES", []), no_trash=getattr(args, "NO_TRASH", False))
    return ExitCodes.SUCCESS.value
