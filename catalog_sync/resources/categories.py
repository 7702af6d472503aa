"""Sync of categories, their parent hierarchy, custom fields and assets."""

from catalog_sync.diff import (
    CustomFieldsRule,
    DiffEngine,
    KeyedCollection,
    Report,
    SetReference,
    SetValue,
    action,
    to_json,
)
from catalog_sync.models.categories import Category, CategoryDraft
from catalog_sync.models.common import Asset, CustomFields, ReferenceKey
from catalog_sync.resolution import ResolutionContext
from catalog_sync.resources.base import ResourceSync
from catalog_sync.validation import BatchValidator, is_blank

CATEGORY_TYPE_ID = "category"


def asset_actions(old: Asset, new: Asset, report: Report) -> list:
    """Actions converging one asset, addressed by its key."""
    context = {"assetKey": new.key}
    engine = DiffEngine(
        {
            "name": SetValue("changeAssetName"),
            "description": SetValue("setAssetDescription"),
            "sources": SetValue("setAssetSources"),
            "tags": SetValue("setAssetTags", normalize=lambda tags: sorted(tags or [])),
            "custom": CustomFieldsRule(
                "setAssetCustomType", "setAssetCustomField", context=context
            ),
        },
        ignored=("key", "id"),
    )
    return [
        a if "assetKey" in a.fields else action(a.action, **context, **a.fields)
        for a in engine.diff(old, new, report)
    ]


ASSETS_RULE = KeyedCollection(
    key_of=lambda asset: asset.key,
    remove=lambda assets: [
        action("removeAsset", assetKey=a.key) if a.key else action("removeAsset", assetId=a.id)
        for a in assets
    ],
    add=lambda asset, position: action(
        "addAsset", asset=to_json(asset), position=position
    ),
    reorder=lambda assets: action("changeAssetOrder", assetOrder=[a.id for a in assets]),
    element_actions=asset_actions,
    add_carries_position=True,
    reorder_before_add=True,
    duplicate_message=(
        "Asset drafts have duplicated keys. Duplicated asset key: '{key}'. "
        "Asset keys are expected to be unique inside their category."
    ),
)

CATEGORY_RULES = {
    "name": SetValue("changeName"),
    "slug": SetValue("changeSlug"),
    "description": SetValue("setDescription"),
    "parent": SetReference(
        "changeParent", unset_warning="Cannot unset 'parent' field of a category."
    ),
    "order_hint": SetValue(
        "changeOrderHint",
        "orderHint",
        unset_warning="Cannot unset 'orderHint' field of a category.",
    ),
    "external_id": SetValue("setExternalId", "externalId"),
    "meta_title": SetValue("setMetaTitle", "metaTitle"),
    "meta_description": SetValue("setMetaDescription", "metaDescription"),
    "meta_keywords": SetValue("setMetaKeywords", "metaKeywords"),
    "custom": CustomFieldsRule(),
    "assets": ASSETS_RULE,
}


def resolve_custom(
    custom: CustomFields | None, context: ResolutionContext
) -> CustomFields | None:
    if custom is None:
        return None
    return custom.model_copy(update={"type": context.reference(custom.type)})


class CategoryBatchValidator(BatchValidator[CategoryDraft]):
    draft_model = CategoryDraft
    type_id = CATEGORY_TYPE_ID

    def draft_name(self, draft: CategoryDraft) -> str:
        return str(draft.name)

    def draft_errors(self, draft: CategoryDraft) -> list[str]:
        errors = []
        if draft.parent is not None and (problem := self.reference_error(draft.parent)):
            errors.append(
                self.invalid_references_message(draft, "category", "fields", [f"parent: {problem}"])
            )
        if draft.custom is not None and (problem := self.reference_error(draft.custom.type)):
            errors.append(
                self.invalid_references_message(draft, "type", "fields", [f"custom: {problem}"])
            )

        invalid_assets = []
        for i, asset in enumerate(draft.assets or []):
            if is_blank(asset.key):
                invalid_assets.append(f"{i}: asset has no key")
            elif asset.custom is not None and (problem := self.reference_error(asset.custom.type)):
                invalid_assets.append(f"{asset.key}: {problem}")
        if invalid_assets:
            errors.append(
                self.invalid_references_message(draft, "type", "assets", invalid_assets)
            )
        return errors

    def collect_reference_keys(self, draft: CategoryDraft) -> set[ReferenceKey]:
        references = [draft.parent]
        if draft.custom is not None:
            references.append(draft.custom.type)
        references.extend(a.custom.type for a in draft.assets or [] if a.custom)
        return {r.reference_key for r in references if r is not None and r.reference_key}


class CategorySync(ResourceSync[CategoryDraft, Category]):
    """Syncs categories; a parent may be created later in the same run."""

    resource_name = "categories"
    type_id = CATEGORY_TYPE_ID
    endpoint = "categories"
    resource_model = Category
    validator_class = CategoryBatchValidator
    diff_engine = DiffEngine(CATEGORY_RULES)

    def resolve_references(
        self, draft: CategoryDraft, context: ResolutionContext
    ) -> CategoryDraft:
        update = {
            "parent": context.reference(draft.parent),
            "custom": resolve_custom(draft.custom, context),
        }
        if draft.assets:
            update["assets"] = [
                asset.model_copy(update={"custom": resolve_custom(asset.custom, context)})
                for asset in draft.assets
            ]
        return draft.model_copy(update=update)
