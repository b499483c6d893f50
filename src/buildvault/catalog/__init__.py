"""Per-repository build catalogs, their cache and the sync manager."""

from .catalog import BuildCatalog, RepoCatalog
from .platform import TargetSetup, get_target_setup, platform_default_filter
from .store import CatalogStore
from .sync import RepositorySyncManager, SyncOutcome, SyncReport, SyncStatus

__all__ = [
    "BuildCatalog",
    "CatalogStore",
    "RepoCatalog",
    "RepositorySyncManager",
    "SyncOutcome",
    "SyncReport",
    "SyncStatus",
    "TargetSetup",
    "get_target_setup",
    "platform_default_filter",
]
