"""Product drafts and resources."""

from typing import Any

from pydantic import model_validator

from catalog_sync.models.common import (
    CamelModel,
    LocalizedString,
    Resource,
    ResourceDraft,
    ResourceIdentifier,
)


class Image(CamelModel):
    """An external image of a variant, identified by its url."""

    url: str
    label: str | None = None
    dimensions: dict[str, int] | None = None


class Attribute(CamelModel):
    """A named attribute value; values may nest references to other resources."""

    name: str
    value: Any = None


class ProductVariantDraft(CamelModel):
    key: str | None = None
    sku: str | None = None
    attributes: list[Attribute] | None = None
    images: list[Image] | None = None


class ProductVariant(ProductVariantDraft):
    id: int | None = None


class ProductDraft(ResourceDraft):
    product_type: ResourceIdentifier | None = None
    name: LocalizedString | None = None
    slug: LocalizedString | None = None
    description: LocalizedString | None = None
    meta_title: LocalizedString | None = None
    meta_description: LocalizedString | None = None
    meta_keywords: LocalizedString | None = None
    categories: list[ResourceIdentifier] | None = None
    tax_category: ResourceIdentifier | None = None
    state: ResourceIdentifier | None = None
    master_variant: ProductVariantDraft | None = None
    variants: list[ProductVariantDraft | None] | None = None

    def all_variants(self) -> list[ProductVariantDraft | None]:
        """The master variant followed by the other variants, nulls included."""
        return [self.master_variant, *(self.variants or [])]


class Product(Resource):
    """A product as stored on the platform, flattened to its staged data.

    The platform nests the catalog data under ``masterData.staged``; it is lifted
    to the top level so the product compares field by field with a draft.
    """

    product_type: ResourceIdentifier
    name: LocalizedString
    slug: LocalizedString
    description: LocalizedString | None = None
    meta_title: LocalizedString | None = None
    meta_description: LocalizedString | None = None
    meta_keywords: LocalizedString | None = None
    categories: list[ResourceIdentifier] | None = None
    tax_category: ResourceIdentifier | None = None
    state: ResourceIdentifier | None = None
    master_variant: ProductVariant | None = None
    variants: list[ProductVariant] | None = None

    @model_validator(mode="before")
    @classmethod
    def flatten_staged(cls, data: Any) -> Any:
        if isinstance(data, dict) and "masterData" in data:
            staged = data["masterData"].get("staged") or {}
            data = {**{k: v for k, v in data.items() if k != "masterData"}, **staged}
        return data

    def all_variants(self) -> list[ProductVariant]:
        return [v for v in (self.master_variant, *(self.variants or [])) if v is not None]
