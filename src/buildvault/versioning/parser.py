"""Query parsing for the build version grammar.

Grammar::

    query        := [repo "/"] version_part ["-" branch] [hash_part] ["@" time_wild]
    version_part := comp "." comp ["." comp]
    comp         := digits | "^" | "*" | "-"
    hash_part    := ("+" | "#") hash_chars
    time_wild    := "^" | "*" | "-"

Parsing is purely syntactic: no I/O and no catalog lookups.
"""

import re
from typing import Optional, Tuple

from buildvault.errors import (
    EmptyQueryError,
    InvalidRepositoryError,
    InvalidTimeWildcardError,
    InvalidVersionComponentError,
    MalformedHashMarkerError,
    QueryParseError,
)
from .models import Component, HashMatch, Query, Wild

_COMP = r"\d+|[\^*-]"
_VERSION_RE = re.compile(
    rf"^(?P<major>{_COMP})\.(?P<minor>{_COMP})(?:\.(?P<patch>{_COMP}))?"
    r"(?:-(?P<branch>[A-Za-z0-9_.*-]+))?$"
)
_REPO_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_HASH_RE = re.compile(r"^[0-9A-Za-z]+$")
_WILDS = {w.value: w for w in Wild}


def _split_repo(query: str, text: str) -> Tuple[Optional[str], str]:
    if "/" not in text:
        return None, text
    repo, rest = text.split("/", 1)
    repo = repo.strip()
    if repo == "*":
        return None, rest
    if not repo or not _REPO_RE.match(repo):
        raise InvalidRepositoryError(query, f"invalid repository name {repo!r}")
    return repo, rest


def _split_time(query: str, text: str) -> Tuple[str, Wild]:
    if "@" not in text:
        return text, Wild.ANY
    rest, time_part = text.split("@", 1)
    wild = _WILDS.get(time_part)
    if wild is None:
        raise InvalidTimeWildcardError(
            query, f"commit time must be one of ^ * - (got {time_part!r})"
        )
    return rest, wild


def _split_hash(query: str, text: str) -> Tuple[str, Optional[str], HashMatch]:
    markers = [i for i, ch in enumerate(text) if ch in "+#"]
    if not markers:
        return text, None, HashMatch.EXACT
    if len(markers) > 1:
        raise MalformedHashMarkerError(query, "only one + or # hash marker is allowed")
    idx = markers[0]
    build_hash = text[idx + 1:]
    if not build_hash or not _HASH_RE.match(build_hash):
        raise MalformedHashMarkerError(
            query, f"hash after {text[idx]!r} must be alphanumeric (got {build_hash!r})"
        )
    return text[:idx], build_hash, HashMatch(text[idx])


def _component(token: Optional[str]) -> Component:
    # A missing patch is an implicit "*".
    if token is None:
        return Wild.ANY
    if token in _WILDS:
        return _WILDS[token]
    return int(token)


def _version_error(query: str, text: str) -> QueryParseError:
    if not text:
        return InvalidVersionComponentError(query, "missing version")
    head = text.split("-", 1)[0] if not text.startswith("-") else text
    pieces = head.split(".")
    if len(pieces) < 2:
        return InvalidVersionComponentError(
            query, "version needs at least <major>.<minor>"
        )
    for piece in pieces[:3]:
        if not re.fullmatch(_COMP, piece):
            return InvalidVersionComponentError(
                query, f"invalid version component {piece!r}; expected digits, ^, * or -"
            )
    return InvalidVersionComponentError(query, f"could not read version/branch from {text!r}")


def parse_query(text: str) -> Query:
    """Parse a query string into a Query.

    Raises:
        EmptyQueryError: text is empty or whitespace.
        InvalidRepositoryError: repository prefix is empty or malformed.
        InvalidTimeWildcardError: anything but ``^ * -`` follows ``@``.
        MalformedHashMarkerError: empty, repeated or non-alphanumeric hash part.
        InvalidVersionComponentError: version/branch section is malformed.
    """
    if text is None or not text.strip():
        raise EmptyQueryError(text or "")
    query = text.strip()

    repo, rest = _split_repo(query, query)
    rest, commit_time = _split_time(query, rest)
    rest, build_hash, hash_match = _split_hash(query, rest)

    m = _VERSION_RE.match(rest)
    if not m:
        raise _version_error(query, rest)

    branch = m.group("branch")
    if branch == "*":
        branch = None

    return Query(
        repo=repo,
        major=_component(m.group("major")),
        minor=_component(m.group("minor")),
        patch=_component(m.group("patch")),
        branch=branch,
        build_hash=build_hash,
        hash_match=hash_match,
        commit_time=commit_time,
    )


def is_query(text: str) -> bool:
    """Return True when ``text`` parses as a query."""
    try:
        parse_query(text)
    except QueryParseError:
        return False
    return True
