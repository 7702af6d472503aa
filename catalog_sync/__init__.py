"""Catalog sync: converge a target project's resources toward a list of drafts."""

__version__ = "0.1.0"

from catalog_sync.config import Config, SyncConfig
from catalog_sync.options import SyncOptions
from catalog_sync.orchestration import CatalogSyncOrchestrator

__all__ = ["CatalogSyncOrchestrator", "Config", "SyncConfig", "SyncOptions"]
