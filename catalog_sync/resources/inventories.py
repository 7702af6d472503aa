"""Sync of inventory entries."""

import asyncio
from collections import defaultdict

from catalog_sync.client import endpoint_for
from catalog_sync.diff import CustomFieldsRule, DiffEngine, SetReference, SetValue
from catalog_sync.exceptions import APIError, RemoteCallError
from catalog_sync.models.common import ReferenceKey
from catalog_sync.models.inventories import InventoryEntry, InventoryEntryDraft
from catalog_sync.resolution import ResolutionContext
from catalog_sync.resources.base import ResourceSync
from catalog_sync.resources.categories import resolve_custom
from catalog_sync.validation import BatchValidator, is_blank

INVENTORY_ENTRY_TYPE_ID = "inventory-entry"
CHANNEL_TYPE_ID = "channel"
SUPPLY_CHANNEL_ROLE = "InventorySupply"

INVENTORY_ENTRY_RULES = {
    "quantity_on_stock": SetValue("changeQuantity", "quantity"),
    "restockable_in_days": SetValue("setRestockableInDays", "restockableInDays"),
    "expected_delivery": SetValue("setExpectedDelivery", "expectedDelivery"),
    "supply_channel": SetReference("setSupplyChannel", "supplyChannel"),
    "custom": CustomFieldsRule(),
}


class InventoryEntryBatchValidator(BatchValidator[InventoryEntryDraft]):
    draft_model = InventoryEntryDraft
    type_id = INVENTORY_ENTRY_TYPE_ID

    def draft_name(self, draft: InventoryEntryDraft) -> str:
        return str(draft.sku)

    def draft_errors(self, draft: InventoryEntryDraft) -> list[str]:
        errors = []
        if is_blank(draft.sku):
            errors.append(
                f"{self.draft_type_name} with key: '{draft.key}' doesn't have a SKU."
            )
        invalid = []
        if draft.supply_channel is not None and (
            problem := self.reference_error(draft.supply_channel)
        ):
            invalid.append(f"supplyChannel: {problem}")
        if draft.custom is not None and (problem := self.reference_error(draft.custom.type)):
            invalid.append(f"custom: {problem}")
        if invalid:
            errors.append(
                self.invalid_references_message(draft, "channel or type", "fields", invalid)
            )
        return errors

    def collect_reference_keys(self, draft: InventoryEntryDraft) -> set[ReferenceKey]:
        references = [draft.supply_channel, draft.custom.type if draft.custom else None]
        return {r.reference_key for r in references if r is not None and r.reference_key}


class InventoryEntrySync(ResourceSync[InventoryEntryDraft, InventoryEntry]):
    """Syncs inventory entries.

    With ``ensure_channels`` a missing supply channel is created with the
    InventorySupply role instead of deferring the entry.
    """

    resource_name = "inventory entries"
    type_id = INVENTORY_ENTRY_TYPE_ID
    endpoint = "inventory"
    resource_model = InventoryEntry
    validator_class = InventoryEntryBatchValidator
    diff_engine = DiffEngine(INVENTORY_ENTRY_RULES, ignored=("key", "sku"))

    def resolve_references(
        self, draft: InventoryEntryDraft, context: ResolutionContext
    ) -> InventoryEntryDraft:
        return draft.model_copy(
            update={
                "supply_channel": context.reference(draft.supply_channel),
                "custom": resolve_custom(draft.custom, context),
            }
        )

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._channel_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def create_missing_references(
        self, draft: InventoryEntryDraft, missing_keys: frozenset[ReferenceKey]
    ) -> dict[ReferenceKey, str]:
        if not self.options.ensure_channels:
            return {}
        return {
            reference_key: await self._ensure_channel(reference_key)
            for reference_key in sorted(missing_keys, key=str)
            if reference_key.type_id == CHANNEL_TYPE_ID
        }

    async def _ensure_channel(self, reference_key: ReferenceKey) -> str:
        async with self._channel_locks[reference_key.key]:
            channel_id = self.cache.get(reference_key)
            if channel_id is not None:
                return channel_id
            try:
                channel = await self.client.create(
                    endpoint_for(CHANNEL_TYPE_ID),
                    {"key": reference_key.key, "roles": [SUPPLY_CHANNEL_ROLE]},
                )
            except APIError as e:
                raise RemoteCallError(
                    f"Failed to create supply channel with key: '{reference_key.key}'. "
                    f"Reason: {e}",
                    reference_key.key,
                ) from e
            self.cache.put(reference_key, channel["id"])
            self._logger.info("Created supply channel", channel_key=reference_key.key)
            return channel["id"]
