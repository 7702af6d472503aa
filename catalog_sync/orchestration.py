"""Catalog sync orchestrator running every resource kind in dependency order."""

from collections.abc import Mapping
from datetime import datetime
from typing import Any, ClassVar

import structlog

from catalog_sync.cache import KeyIdCache
from catalog_sync.config import Config
from catalog_sync.options import SyncOptions
from catalog_sync.resources import (
    CategorySync,
    InventoryEntrySync,
    ProductSync,
    ProductTypeSync,
    StateSync,
)
from catalog_sync.resources.base import ResourceSync
from catalog_sync.unresolved import UnresolvedReferenceStore, container_for

logger = structlog.get_logger(__name__)


class CatalogSyncOrchestrator:
    """Syncs a drafts document into the target project.

    Handles:
    - Running resource kinds in dependency order
    - Sharing one key to id cache across all kinds
    - Per-kind summaries and an overall success flag
    - Cleanup of stale unresolved reference records
    """

    # (config name, document key, sync class); earlier kinds are referenced
    # by later ones
    RESOURCE_SYNCS: ClassVar[list[tuple[str, str, type[ResourceSync]]]] = [
        ("states", "states", StateSync),
        ("product_types", "productTypes", ProductTypeSync),
        ("categories", "categories", CategorySync),
        ("products", "products", ProductSync),
        ("inventory_entries", "inventoryEntries", InventoryEntrySync),
    ]

    def __init__(
        self, config: Config, client, options: SyncOptions | None = None
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Tool configuration; ``resources`` selects the kinds to run.
            client: Connected platform client.
            options: Callbacks and hooks; sizes default to ``config.sync``.
        """
        self.config = config
        self.client = client
        self.options = (
            options if options is not None else SyncOptions.from_config(config.sync)
        )
        self.cache = KeyIdCache(client, self.options.cache_size, self.options.page_size)
        self._current: ResourceSync | None = None
        self._cancelled = False
        self._logger = logger.bind(project=config.target.project_key)

    def cancel(self) -> None:
        """Stop after the chunks currently in flight; no further kinds are started."""
        self._cancelled = True
        if self._current is not None:
            self._current.cancel()

    async def sync_document(self, document: Mapping[str, Any]) -> dict[str, Any]:
        """Sync every selected resource kind found in a drafts document.

        Args:
            document: Mapping of document key (e.g. ``productTypes``) to drafts.

        Returns:
            Summary with per-kind statistics, totals and a success flag.
        """
        start_time = datetime.now()
        selected = self.config.selected_resources()
        results: dict[str, Any] = {
            "start_time": start_time.isoformat(),
            "resources": {},
            "summary": {
                "processed": 0,
                "created": 0,
                "updated": 0,
                "failed": 0,
                "unresolved": 0,
                "errors": [],
            },
        }

        for name, document_key, sync_class in self.RESOURCE_SYNCS:
            if name not in selected or document_key not in document:
                continue
            if self._cancelled:
                self._logger.warning("Sync cancelled, skipping resource", resource=name)
                break

            self._logger.info("Syncing resource kind", resource=name)
            sync = sync_class(self.client, self.options, cache=self.cache)
            self._current = sync
            statistics = await sync.sync(document[document_key] or [])
            self._current = None

            results["resources"][name] = statistics.to_dict()
            summary = results["summary"]
            summary["processed"] += statistics.processed
            summary["created"] += statistics.created
            summary["updated"] += statistics.updated
            summary["failed"] += statistics.failed
            summary["unresolved"] += statistics.unresolved
            summary["errors"].extend(statistics.errors)

        end_time = datetime.now()
        results["end_time"] = end_time.isoformat()
        results["duration_seconds"] = (end_time - start_time).total_seconds()
        results["success"] = results["summary"]["failed"] == 0
        self._logger.info(
            "Catalog sync completed",
            success=results["success"],
            **{k: v for k, v in results["summary"].items() if k != "errors"},
        )
        return results

    async def cleanup_unresolved(self, older_than_days: int | None = None) -> dict[str, Any]:
        """Delete stale unresolved reference records of every selected kind."""
        days = older_than_days or self.config.sync.cleanup_older_than_days
        selected = self.config.selected_resources()
        results = {}
        for name, _, sync_class in self.RESOURCE_SYNCS:
            if name not in selected:
                continue
            store = UnresolvedReferenceStore(
                self.client, container_for(sync_class.endpoint), self.options.page_size
            )
            statistics = await store.cleanup(days)
            results[name] = {
                "deleted": statistics.total_deleted,
                "failed": statistics.total_failed,
            }
        return results
