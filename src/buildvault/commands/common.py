"""Helpers shared by the command workflows."""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from buildvault.catalog import BuildCatalog, CatalogStore, platform_default_filter
from buildvault.config import Config
from buildvault.errors import MissingQueryError
from buildvault.library import LibraryState
from buildvault.versioning import Query, parse_query
from buildvault.versioning.matcher import PlatformFilter


def load_catalog(cfg: Config) -> Tuple[BuildCatalog, CatalogStore]:
    store = CatalogStore(cfg.cache_dir)
    return store.load(cfg.repos), store


def open_library(cfg: Config) -> LibraryState:
    return LibraryState(cfg.library)


def parse_queries(texts: Optional[Iterable[str]]) -> List[Query]:
    """Parse every query before anything acts on them.

    Raises:
        MissingQueryError: no query was given.
        QueryParseError: any query is malformed.
    """
    texts = list(texts or [])
    if not texts:
        raise MissingQueryError()
    return [parse_query(text) for text in texts]


def platform_filter_for(cfg: Config, all_platforms: bool = False) -> Optional[PlatformFilter]:
    """The advisory platform pass, unless disabled by flag or config."""
    if all_platforms or cfg.all_platforms:
        return None
    return platform_default_filter
