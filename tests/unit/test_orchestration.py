"""Unit tests for the catalog sync orchestrator."""

import pytest

from catalog_sync.config import Config
from catalog_sync.models.common import ReferenceKey
from catalog_sync.orchestration import CatalogSyncOrchestrator
from catalog_sync.unresolved import container_for


@pytest.fixture
def document():
    return {
        "states": [{"key": "open", "type": "ProductState", "transitions": []}],
        "productTypes": [
            {
                "key": "shirt",
                "name": "Shirt",
                "description": "",
                "attributes": [
                    {"name": "size", "label": {"en": "Size"}, "type": {"name": "text"}}
                ],
            }
        ],
        "categories": [
            {"key": "men", "name": {"en": "Men"}, "slug": {"en": "men"}},
            {
                "key": "shirts",
                "name": {"en": "Shirts"},
                "slug": {"en": "shirts"},
                "parent": {"typeId": "category", "key": "men"},
            },
        ],
        "products": [
            {
                "key": "oxford",
                "productType": {"typeId": "product-type", "key": "shirt"},
                "name": {"en": "Oxford"},
                "slug": {"en": "oxford"},
                "categories": [{"typeId": "category", "key": "shirts"}],
                "state": {"typeId": "state", "key": "open"},
                "masterVariant": {
                    "key": "oxford-m",
                    "sku": "OXF-M",
                    "attributes": [{"name": "size", "value": "M"}],
                },
            }
        ],
        "inventoryEntries": [{"key": "inv-1", "sku": "SKU-1", "quantityOnStock": 3}],
    }


@pytest.mark.asyncio
class TestCatalogSyncOrchestrator:
    """Test running every resource kind of a document."""

    async def test_sync_document(self, config, fake_platform, document):
        """Test every kind is synced and totals are summed."""
        orchestrator = CatalogSyncOrchestrator(config, fake_platform)

        results = await orchestrator.sync_document(document)

        assert list(results["resources"]) == [
            "states",
            "product_types",
            "categories",
            "products",
            "inventory_entries",
        ]
        assert results["summary"]["processed"] == 6
        assert results["summary"]["created"] == 6
        assert results["summary"]["failed"] == 0
        assert results["success"] is True
        assert results["resources"]["categories"]["created"] == 2

    async def test_selected_resources_only(self, platform_config, fake_platform, document):
        """Test kinds not selected in the configuration are skipped."""
        config = Config(target=platform_config, resources=["states"])

        results = await CatalogSyncOrchestrator(config, fake_platform).sync_document(document)

        assert list(results["resources"]) == ["states"]
        assert fake_platform.resources.get("categories") is None

    async def test_missing_document_keys_are_skipped(self, config, fake_platform):
        """Test kinds absent from the document are not touched."""
        results = await CatalogSyncOrchestrator(config, fake_platform).sync_document(
            {"states": []}
        )

        assert results["resources"]["states"]["processed"] == 0
        assert "categories" not in results["resources"]
        assert results["success"] is True

    async def test_failures_mark_run_unsuccessful(self, config, fake_platform):
        """Test a failed draft flips the success flag."""
        results = await CatalogSyncOrchestrator(config, fake_platform).sync_document(
            {"states": [None]}
        )

        assert results["success"] is False
        assert results["summary"]["errors"] == ["StateDraft is null."]

    async def test_cache_shared_across_kinds(self, config, fake_platform, document):
        """Test one key to id cache holds the keys of every kind synced."""
        orchestrator = CatalogSyncOrchestrator(config, fake_platform)

        await orchestrator.sync_document(document)

        assert ReferenceKey(type_id="state", key="open") in orchestrator.cache
        assert ReferenceKey(type_id="product-type", key="shirt") in orchestrator.cache
        assert ReferenceKey(type_id="category", key="shirts") in orchestrator.cache
        state_id = fake_platform.get("states", "open")["id"]
        assert fake_platform.get("products", "oxford")["state"] == {"typeId": "state", "id": state_id}

    async def test_cancel_before_start(self, config, fake_platform, document):
        """Test a cancelled orchestrator starts no resource kind."""
        orchestrator = CatalogSyncOrchestrator(config, fake_platform)
        orchestrator.cancel()

        results = await orchestrator.sync_document(document)

        assert results["resources"] == {}

    async def test_cleanup_unresolved(self, config, fake_platform):
        """Test cleanup runs per selected kind."""
        await fake_platform.upsert_custom_object(
            container_for("states"), "abc", {"ownerKey": "s1", "missingReferenceKeys": [], "draft": {}}
        )

        results = await CatalogSyncOrchestrator(config, fake_platform).cleanup_unresolved(10)

        assert results["states"] == {"deleted": 1, "failed": 0}
        assert results["categories"] == {"deleted": 0, "failed": 0}
