"""Resource kind syncs."""

from .base import ResourceSync
from .categories import CategorySync
from .inventories import InventoryEntrySync
from .product_types import ProductTypeSync
from .products import ProductSync
from .states import StateSync

__all__ = [
    "CategorySync",
    "InventoryEntrySync",
    "ProductSync",
    "ProductTypeSync",
    "ResourceSync",
    "StateSync",
]
