"""On-disk cache for repository catalogs.

Each repository is stored as ``<cache_dir>/<repo_id>.json``::

    {"repo_id": "daily", "last_fetched": "2024-05-01T10:00:00+00:00", "builds": [...]}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable

from buildvault.common.logging_utils import extra_context, is_debug_enabled
from buildvault.versioning.models import BuildRecord, format_timestamp, parse_timestamp
from .catalog import BuildCatalog, RepoCatalog

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path, data: Any, indent: int = 2) -> None:
    """Write JSON to ``path`` through a temp file so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=indent)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class CatalogStore:
    """Loads and saves per-repository catalogs under ``cache_dir``."""

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        # repo_id -> reason, for caches that exist but could not be read
        self.errors: Dict[str, str] = {}

    def path_for(self, repo_id: str) -> Path:
        return self.cache_dir / f"{repo_id}.json"

    def load_repo(self, repo) -> RepoCatalog:
        """Read one repository's cache; a missing file yields an empty catalog.

        Raises:
            OSError, ValueError, KeyError: the cache file exists but is unreadable.
        """
        catalog = RepoCatalog(repo.repo_id, repo.fetch_interval)
        path = self.path_for(repo.repo_id)
        if not path.exists():
            return catalog
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if data.get("last_fetched"):
            catalog.last_fetched = parse_timestamp(data["last_fetched"])
        catalog.ingest(BuildRecord.from_dict(b) for b in data.get("builds", []))
        return catalog

    def load(self, repos: Iterable) -> BuildCatalog:
        """Build a catalog for every configured repository.

        Unreadable caches are recorded in ``errors`` and replaced by an empty
        catalog, so the next fetch can rewrite them.
        """
        result = BuildCatalog()
        self.errors.clear()
        for repo in repos:
            try:
                result.add(self.load_repo(repo))
            except (OSError, ValueError, KeyError) as exc:
                logger.warning("Could not read cached builds for %s: %s", repo.repo_id, exc)
                self.errors[repo.repo_id] = str(exc)
                result.add(RepoCatalog(repo.repo_id, repo.fetch_interval))
        return result

    def save(self, catalog: RepoCatalog) -> Path:
        path = self.path_for(catalog.repo_id)
        data = {
            "repo_id": catalog.repo_id,
            "last_fetched": format_timestamp(catalog.last_fetched) if catalog.last_fetched else None,
            "builds": [b.to_dict() for b in catalog.builds],
        }
        write_json_atomic(path, data)
        if is_debug_enabled(logger):
            logger.debug(
                "Saved catalog cache",
                extra=extra_context(
                    event="cache_write",
                    component="catalog_store",
                    target=str(path),
                    count=len(catalog),
                ),
            )
        return path
