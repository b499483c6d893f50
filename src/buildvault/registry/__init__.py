"""Remote repository sources.

Each ``RepoKind`` maps to a source module exposing ``fetch_raw`` (network)
and ``parse_builds`` (pure). New sources are added by extending
``RepoKind`` and this table.
"""

from typing import List

import aiohttp

from buildvault.constants import RepoKind
from buildvault.versioning.models import BuildRecord
from . import builder_api, github

SOURCES = {
    RepoKind.BUILDER_API: builder_api,
    RepoKind.GITHUB_RELEASES: github,
}


def source_for(kind: RepoKind):
    """Return the source module for ``kind``."""
    return SOURCES[kind]


async def fetch_builds(session: aiohttp.ClientSession, repo, auth=None) -> List[BuildRecord]:
    """Fetch and parse the builds published by ``repo``.

    Raises:
        FetchError: the metadata could not be fetched or decoded.
    """
    source = source_for(repo.kind)
    raw = await source.fetch_raw(session, repo, auth)
    return source.parse_builds(repo.repo_id, raw)
