"""
Index feature - discovery, change detection and catalog synchronization.

The synchronizer lives in `scan_orchestrator`; it is not re-exported here because
`features.duplicates` imports the catalog store through this package.
"""
from .catalog_store import CatalogError, CatalogStore

__all__ = ["CatalogStore", "CatalogError"]
