"""Category drafts and resources."""

from catalog_sync.models.common import (
    Asset,
    CustomFields,
    LocalizedString,
    Resource,
    ResourceDraft,
    ResourceIdentifier,
)


class CategoryDraft(ResourceDraft):
    name: LocalizedString | None = None
    slug: LocalizedString | None = None
    description: LocalizedString | None = None
    parent: ResourceIdentifier | None = None
    order_hint: str | None = None
    external_id: str | None = None
    meta_title: LocalizedString | None = None
    meta_description: LocalizedString | None = None
    meta_keywords: LocalizedString | None = None
    custom: CustomFields | None = None
    assets: list[Asset] | None = None


class Category(Resource):
    name: LocalizedString
    slug: LocalizedString
    description: LocalizedString | None = None
    parent: ResourceIdentifier | None = None
    order_hint: str | None = None
    external_id: str | None = None
    meta_title: LocalizedString | None = None
    meta_description: LocalizedString | None = None
    meta_keywords: LocalizedString | None = None
    custom: CustomFields | None = None
    assets: list[Asset] | None = None
