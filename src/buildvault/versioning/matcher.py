"""Query matching against a set of build records.

Resolution order:

1. Literal filters prune first: repository, branch, exact version
   integers and the hash part.
2. ``^``/``-`` version components resolve left to right (major, minor,
   patch), each narrowing the pool before the next is evaluated, so
   ``^.^`` is "newest minor within the newest major".
3. The ``@`` wildcard picks the newest/oldest commit time, ties broken by
   repository then hash ascending.

The platform pass is not part of matching; ``resolve`` applies it as a
separate step before handing candidates to ``match``.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional

from .models import BuildRecord, HashMatch, Query, Wild

PlatformFilter = Callable[[BuildRecord], bool]


def _sort_key(record: BuildRecord):
    return (record.version, record.commit_time, record.repo, record.build_hash)


def _passes_literals(query: Query, record: BuildRecord) -> bool:
    if query.repo is not None and record.repo != query.repo:
        return False
    # A record without a branch only matches queries without a branch filter.
    if query.branch is not None and record.branch != query.branch:
        return False
    for wanted, actual in zip(query.components, record.version):
        if isinstance(wanted, int) and wanted != actual:
            return False
    if query.build_hash is not None:
        if query.hash_match is HashMatch.EXACT:
            return record.build_hash == query.build_hash
        return record.build_hash.startswith(query.build_hash)
    return True


def _narrow_component(pool: List[BuildRecord], index: int, wild: Wild) -> List[BuildRecord]:
    if not pool or wild is Wild.ANY:
        return pool
    values = [r.version[index] for r in pool]
    target = max(values) if wild is Wild.NEWEST else min(values)
    return [r for r in pool if r.version[index] == target]


def _pick_by_time(pool: List[BuildRecord], wild: Wild) -> List[BuildRecord]:
    if not pool or wild is Wild.ANY:
        return pool
    if wild is Wild.NEWEST:
        newest = max(r.commit_time for r in pool)
        tied = [r for r in pool if r.commit_time == newest]
    else:
        oldest = min(r.commit_time for r in pool)
        tied = [r for r in pool if r.commit_time == oldest]
    return [min(tied, key=lambda r: (r.repo, r.build_hash))]


def match(query: Query, records: Iterable[BuildRecord]) -> List[BuildRecord]:
    """Return every record selected by ``query``, sorted by version then commit time.

    An empty list means "no match"; it is not an error.
    """
    pool = [r for r in records if _passes_literals(query, r)]
    for index, component in enumerate(query.components):
        if isinstance(component, Wild):
            pool = _narrow_component(pool, index, component)
    pool = _pick_by_time(pool, query.commit_time)
    return sorted(pool, key=_sort_key)


def resolve(
    query: Query,
    records: Iterable[BuildRecord],
    platform_filter: Optional[PlatformFilter] = None,
) -> List[BuildRecord]:
    """Apply the advisory platform pass (when given), then ``match``."""
    if platform_filter is not None:
        records = [r for r in records if platform_filter(r)]
    return match(query, records)


def newest(records: Iterable[BuildRecord]) -> Optional[BuildRecord]:
    """Newest record by commit time; ties go to the lowest (repo, hash)."""
    best: Optional[BuildRecord] = None
    for record in records:
        if best is None:
            best = record
            continue
        if record.commit_time > best.commit_time or (
            record.commit_time == best.commit_time
            and (record.repo, record.build_hash) < (best.repo, best.build_hash)
        ):
            best = record
    return best


def resolve_one(
    query: Query,
    records: Iterable[BuildRecord],
    platform_filter: Optional[PlatformFilter] = None,
) -> Optional[BuildRecord]:
    """Resolve ``query`` to a single build.

    When several candidates survive every filter the newest by commit time
    is returned instead of failing.
    """
    return newest(resolve(query, records, platform_filter))
