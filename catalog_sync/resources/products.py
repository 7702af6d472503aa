"""Sync of products: catalog fields, categories and variants.

Variants are matched by key and addressed by their platform id. Attribute values
may carry references to products, categories or product types anywhere inside
them; those are resolved like any other reference, so a product can wait in the
unresolved store for a product referenced from one of its attributes.
"""

from collections.abc import Iterator
from typing import Any

from catalog_sync.diff import (
    AddRemoveReferences,
    DiffEngine,
    KeyedCollection,
    Report,
    SetReference,
    SetValue,
    UpdateAction,
    action,
    reference_id,
    to_json,
)
from catalog_sync.exceptions import BuildUpdateActionError
from catalog_sync.models.common import ReferenceKey, ResourceIdentifier
from catalog_sync.models.products import (
    Image,
    Product,
    ProductDraft,
    ProductVariant,
    ProductVariantDraft,
)
from catalog_sync.resolution import ResolutionContext
from catalog_sync.resources.base import ResourceSync
from catalog_sync.validation import BatchValidator, is_blank

PRODUCT_TYPE_ID = "product"

ATTRIBUTE_REFERENCE_TYPE_IDS = frozenset({"product", "category", "product-type"})

PRODUCT_RULES = {
    "name": SetValue("changeName", unset_warning="Cannot unset 'name' field of a product."),
    "description": SetValue("setDescription"),
    "slug": SetValue("changeSlug", unset_warning="Cannot unset 'slug' field of a product."),
    "meta_title": SetValue("setMetaTitle", "metaTitle"),
    "meta_description": SetValue("setMetaDescription", "metaDescription"),
    "meta_keywords": SetValue("setMetaKeywords", "metaKeywords"),
    "tax_category": SetReference("setTaxCategory", "taxCategory"),
    "state": SetReference(
        "transitionState", "state", unset_warning="Cannot unset 'state' field of a product."
    ),
    "categories": AddRemoveReferences("addToCategory", "removeFromCategory", "category"),
}


def attribute_references(value: Any) -> Iterator[ResourceIdentifier]:
    """Yield every reference nested anywhere inside an attribute value."""
    if isinstance(value, list):
        for element in value:
            yield from attribute_references(element)
    elif isinstance(value, dict):
        if value.get("typeId") in ATTRIBUTE_REFERENCE_TYPE_IDS:
            yield ResourceIdentifier.model_validate(value)
        else:
            for element in value.values():
                yield from attribute_references(element)


def resolve_attribute_value(value: Any, context: ResolutionContext) -> Any:
    if isinstance(value, list):
        return [resolve_attribute_value(v, context) for v in value]
    if isinstance(value, dict):
        if value.get("typeId") in ATTRIBUTE_REFERENCE_TYPE_IDS:
            return context.reference(ResourceIdentifier.model_validate(value)).to_reference()
        return {k: resolve_attribute_value(v, context) for k, v in value.items()}
    return value


def resolve_variant(
    variant: ProductVariantDraft | None, context: ResolutionContext
) -> ProductVariantDraft | None:
    if variant is None or not variant.attributes:
        return variant
    attributes = [
        a.model_copy(update={"value": resolve_attribute_value(a.value, context)})
        for a in variant.attributes
    ]
    return variant.model_copy(update={"attributes": attributes})


def attribute_actions(old: ProductVariant, new: ProductVariantDraft) -> list[UpdateAction]:
    """One setAttribute per changed, added or removed attribute value."""
    new_values: dict[str, Any] = {}
    for attribute in new.attributes or []:
        if attribute.name in new_values:
            raise BuildUpdateActionError(
                f"Duplicate attribute name '{attribute.name}' on variant with key "
                f"'{new.key}'."
            )
        new_values[attribute.name] = to_json(attribute.value)
    old_values = {a.name: to_json(a.value) for a in old.attributes or []}

    actions = []
    for name, value in new_values.items():
        if name in old_values and old_values[name] == value:
            continue
        if value is None:
            if name in old_values:
                actions.append(action("setAttribute", variantId=old.id, name=name))
        else:
            actions.append(action("setAttribute", variantId=old.id, name=name, value=value))
    actions.extend(
        action("setAttribute", variantId=old.id, name=name)
        for name in old_values
        if name not in new_values
    )
    return actions


def images_rule(variant_id: int | None) -> KeyedCollection:
    """Images keyed by url; new images are appended, then moved into place."""

    def label_actions(old: Image, new: Image, report: Report) -> list[UpdateAction]:
        if old.label == new.label:
            return []
        label = {"label": new.label} if new.label is not None else {}
        return [action("setImageLabel", variantId=variant_id, imageUrl=new.url, **label)]

    return KeyedCollection(
        key_of=lambda image: image.url,
        remove=lambda images: [
            action("removeImage", variantId=variant_id, imageUrl=i.url) for i in images
        ],
        add=lambda image, position: action(
            "addExternalImage", variantId=variant_id, image=to_json(image)
        ),
        reorder=lambda images: [
            action("moveImageToPosition", variantId=variant_id, imageUrl=i.url, position=p)
            for p, i in enumerate(images)
        ],
        element_actions=label_actions,
        duplicate_message="Duplicate image url '{key}' in '{field}' of a product variant.",
    )


def variant_actions(
    old: ProductVariant, new: ProductVariantDraft, report: Report
) -> list[UpdateAction]:
    actions = []
    if old.sku != new.sku:
        actions.append(action("setSku", variantId=old.id, sku=new.sku))
    actions.extend(attribute_actions(old, new))
    actions.extend(images_rule(old.id).diff("images", old.images, new.images, report))
    return actions


def variants_actions(old: Product, new: ProductDraft, report: Report) -> list[UpdateAction]:
    """Converge every variant.

    Order: changes of matched variants, additions, the master variant change,
    then removals, so an old master variant is only removed once replaced.
    """
    old_by_key = {v.key: v for v in old.all_variants() if v.key}
    new_variants = [v for v in new.all_variants() if v is not None]
    new_keys: set[str | None] = set()
    for variant in new_variants:
        if variant.key in new_keys:
            raise BuildUpdateActionError(
                "Product variant drafts have duplicated keys. Duplicated variant key: "
                f"'{variant.key}'. Variant keys are expected to be unique inside their product."
            )
        new_keys.add(variant.key)

    actions = []
    for variant in new_variants:
        if variant.key in old_by_key:
            actions.extend(variant_actions(old_by_key[variant.key], variant, report))
    actions.extend(
        action("addVariant", **to_json(variant))
        for variant in new_variants
        if variant.key not in old_by_key
    )

    old_master_key = old.master_variant.key if old.master_variant else None
    if new.master_variant is not None and new.master_variant.key != old_master_key:
        actions.append(action("changeMasterVariant", sku=new.master_variant.sku))

    actions.extend(
        action("removeVariant", id=variant.id)
        for variant in old.all_variants()
        if variant.key not in new_keys
    )
    return actions


class ProductBatchValidator(BatchValidator[ProductDraft]):
    draft_model = ProductDraft
    type_id = PRODUCT_TYPE_ID

    def draft_name(self, draft: ProductDraft) -> str:
        return str(draft.name)

    def draft_errors(self, draft: ProductDraft) -> list[str]:
        errors = []
        for position, variant in enumerate(draft.all_variants()):
            prefix = (
                f"ProductVariantDraft at position '{position}' of ProductDraft "
                f"with key '{draft.key}'"
            )
            if variant is None:
                errors.append(f"{prefix} is null.")
                continue
            if is_blank(variant.key):
                errors.append(
                    f"{prefix} has no key set. Please make sure all variants have keys."
                )
            if is_blank(variant.sku):
                errors.append(
                    f"{prefix} has no SKU set. Please make sure all variants have SKUs."
                )

        invalid = []
        if problem := self.reference_error(draft.product_type):
            invalid.append(f"productType: {problem}")
        for field_name, reference in (("taxCategory", draft.tax_category), ("state", draft.state)):
            if reference is not None and (problem := self.reference_error(reference)):
                invalid.append(f"{field_name}: {problem}")
        for i, category in enumerate(draft.categories or []):
            if problem := self.reference_error(category):
                invalid.append(f"categories[{i}]: {problem}")
        for variant in filter(None, draft.all_variants()):
            for attribute in variant.attributes or []:
                for reference in attribute_references(attribute.value):
                    if problem := self.reference_error(reference):
                        invalid.append(f"{variant.key}.{attribute.name}: {problem}")
        if invalid:
            errors.append(self.invalid_references_message(draft, "resource", "fields", invalid))
        return errors

    def collect_reference_keys(self, draft: ProductDraft) -> set[ReferenceKey]:
        references = [draft.product_type, draft.tax_category, draft.state]
        references.extend(draft.categories or [])
        for variant in filter(None, draft.all_variants()):
            for attribute in variant.attributes or []:
                references.extend(attribute_references(attribute.value))
        return {r.reference_key for r in references if r is not None and r.reference_key}


class ProductSync(ResourceSync[ProductDraft, Product]):
    """Syncs products; attribute references to sibling products are replayed."""

    resource_name = "products"
    type_id = PRODUCT_TYPE_ID
    endpoint = "products"
    resource_model = Product
    validator_class = ProductBatchValidator
    diff_engine = DiffEngine(
        PRODUCT_RULES, ignored=("key", "product_type", "master_variant", "variants")
    )

    def resolve_references(
        self, draft: ProductDraft, context: ResolutionContext
    ) -> ProductDraft:
        variants = None
        if draft.variants is not None:
            variants = [resolve_variant(v, context) for v in draft.variants]
        return draft.model_copy(
            update={
                "product_type": context.reference(draft.product_type),
                "categories": context.references(draft.categories),
                "tax_category": context.reference(draft.tax_category),
                "state": context.reference(draft.state),
                "master_variant": resolve_variant(draft.master_variant, context),
                "variants": variants,
            }
        )

    def build_actions(self, old: Product, new: ProductDraft) -> list[UpdateAction]:
        def report(message: str) -> None:
            self._handle_warning(message, new, old)

        if reference_id(old.product_type) != reference_id(new.product_type):
            report(
                f"Cannot change the product type of product with key: '{new.key}'; "
                "no update action was built for it."
            )
        return [
            *self.diff_engine.diff(old, new, report),
            *variants_actions(old, new, report),
        ]
