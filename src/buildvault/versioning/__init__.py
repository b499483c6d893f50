"""Build identity model, query grammar and matching."""

from .matcher import match, resolve, resolve_one
from .models import BuildRecord, BuildVariant, HashMatch, InstallRecord, Query, Version, Wild
from .parser import is_query, parse_query

__all__ = [
    "BuildRecord",
    "BuildVariant",
    "HashMatch",
    "InstallRecord",
    "Query",
    "Version",
    "Wild",
    "is_query",
    "match",
    "parse_query",
    "resolve",
    "resolve_one",
]
