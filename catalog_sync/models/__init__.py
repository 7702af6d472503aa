"""Draft and resource models for every supported resource kind."""

from catalog_sync.models.categories import Category, CategoryDraft
from catalog_sync.models.common import (
    Asset,
    AssetSource,
    CustomFields,
    ReferenceKey,
    Resource,
    ResourceDraft,
    ResourceIdentifier,
)
from catalog_sync.models.inventories import InventoryEntry, InventoryEntryDraft
from catalog_sync.models.products import (
    Attribute,
    Image,
    Product,
    ProductDraft,
    ProductVariant,
    ProductVariantDraft,
)
from catalog_sync.models.product_types import (
    AttributeDefinition,
    AttributeDefinitionDraft,
    AttributeType,
    EnumValue,
    ProductType,
    ProductTypeDraft,
)
from catalog_sync.models.states import State, StateDraft, StateRole, StateType

__all__ = [
    "Asset",
    "AssetSource",
    "Attribute",
    "AttributeDefinition",
    "AttributeDefinitionDraft",
    "AttributeType",
    "Category",
    "CategoryDraft",
    "CustomFields",
    "EnumValue",
    "Image",
    "InventoryEntry",
    "InventoryEntryDraft",
    "Product",
    "ProductDraft",
    "ProductType",
    "ProductTypeDraft",
    "ProductVariant",
    "ProductVariantDraft",
    "ReferenceKey",
    "Resource",
    "ResourceDraft",
    "ResourceIdentifier",
    "State",
    "StateDraft",
    "StateRole",
    "StateType",
]
