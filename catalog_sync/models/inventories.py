"""Inventory entry drafts and resources."""

from catalog_sync.models.common import (
    CustomFields,
    Resource,
    ResourceDraft,
    ResourceIdentifier,
)


class InventoryEntryDraft(ResourceDraft):
    sku: str | None = None
    quantity_on_stock: int = 0
    restockable_in_days: int | None = None
    expected_delivery: str | None = None
    supply_channel: ResourceIdentifier | None = None
    custom: CustomFields | None = None


class InventoryEntry(Resource):
    sku: str
    quantity_on_stock: int = 0
    available_quantity: int | None = None
    restockable_in_days: int | None = None
    expected_delivery: str | None = None
    supply_channel: ResourceIdentifier | None = None
    custom: CustomFields | None = None
