"""Sync of product types, including nested attribute type references.

A ``nested`` attribute type points at another product type and can be wrapped in
any number of ``set`` layers. Those references are collected, validated and
resolved through a recursive walk of the attribute type tree.
"""

from catalog_sync.diff import (
    DiffEngine,
    FieldRule,
    KeyedCollection,
    Report,
    SetValue,
    action,
    to_json,
)
from catalog_sync.models.common import ReferenceKey
from catalog_sync.models.product_types import (
    ENUM_TYPES,
    KNOWN_ATTRIBUTE_TYPES,
    AttributeDefinition,
    AttributeType,
    ProductType,
    ProductTypeDraft,
)
from catalog_sync.resolution import MAX_TYPE_DEPTH, ResolutionContext
from catalog_sync.resources.base import ResourceSync
from catalog_sync.validation import BatchValidator

PRODUCT_TYPE_TYPE_ID = "product-type"


def type_signature(attribute_type: AttributeType) -> tuple:
    """Structural identity of an attribute type, ignoring enum values.

    Two attribute definitions whose signatures differ cannot be converted into
    each other with update actions and are removed and re-added instead.
    """
    if attribute_type.is_collection and attribute_type.element_type is not None:
        return (attribute_type.name, type_signature(attribute_type.element_type))
    if attribute_type.is_nested and attribute_type.type_reference is not None:
        return (attribute_type.name, attribute_type.type_reference.id)
    return (attribute_type.name, attribute_type.reference_type_id)


def nested_type_references(attribute_type: AttributeType, depth: int = 0):
    """Yield every nested type reference in the tree with its depth."""
    if attribute_type.is_collection and attribute_type.element_type is not None:
        yield from nested_type_references(attribute_type.element_type, depth + 1)
    elif attribute_type.is_nested:
        yield attribute_type.type_reference, depth


def type_depth(attribute_type: AttributeType) -> int:
    depth = 0
    current = attribute_type
    while current.is_collection and current.element_type is not None:
        depth += 1
        current = current.element_type
    return depth


def enum_values_rule(attribute_name: str, localized: bool) -> KeyedCollection:
    """Keyed collection rule for the values of one enum attribute."""
    kind = "Localized" if localized else "Plain"
    return KeyedCollection(
        key_of=lambda value: value.key,
        remove=lambda values: [
            action(
                "removeEnumValues",
                attributeName=attribute_name,
                keys=[v.key for v in values],
            )
        ],
        add=lambda value, position: action(
            f"add{kind}EnumValue", attributeName=attribute_name, value=to_json(value)
        ),
        reorder=lambda values: action(
            f"change{kind}EnumValueOrder",
            attributeName=attribute_name,
            values=to_json(values),
        ),
        element_actions=lambda old, new, report: (
            [
                action(
                    f"change{kind}EnumValueLabel",
                    attributeName=attribute_name,
                    newValue=to_json(new),
                )
            ]
            if to_json(old.label) != to_json(new.label)
            else []
        ),
        duplicate_message=(
            f"Enum values of attribute '{attribute_name}' have duplicated keys. "
            "Duplicated enum value key: '{key}'. Enum value keys are expected to be "
            "unique inside their attribute definition."
        ),
    )


class AttributeTypeRule(FieldRule):
    """Diffs the enum values of an attribute whose type structure is unchanged."""

    def __init__(self, attribute_name: str) -> None:
        self.attribute_name = attribute_name

    def diff(self, name, old_value, new_value, report: Report):
        old_type, new_type = old_value.innermost(), new_value.innermost()
        if new_type.name not in ENUM_TYPES:
            return []
        rule = enum_values_rule(self.attribute_name, new_type.name == "lenum")
        return rule.diff("values", old_type.values, new_type.values, report)


def attribute_definition_actions(
    old: AttributeDefinition, new: AttributeDefinition, report: Report
) -> list:
    """Actions converging one attribute definition, in a fixed field order."""
    if new.type.innermost().name not in KNOWN_ATTRIBUTE_TYPES:
        report(
            f"Attribute definition '{new.name}' has an unknown type "
            f"'{new.type.innermost().name}'; no update actions were built for it."
        )
        return []

    engine = DiffEngine(
        {
            "label": SetValue("changeLabel", "label"),
            "input_tip": SetValue("setInputTip", "inputTip"),
            "is_searchable": SetValue("changeIsSearchable", "isSearchable"),
            "input_hint": SetValue("changeInputHint", "newValue"),
            "attribute_constraint": SetValue("changeAttributeConstraint", "newValue"),
            "type": AttributeTypeRule(new.name),
        },
        ignored=("name", "is_required"),
    )
    actions = engine.diff(old, new, report)
    # Every attribute level action names the attribute it applies to
    return [
        a
        if "attributeName" in a.fields
        else action(a.action, attributeName=new.name, **a.fields)
        for a in actions
    ]


ATTRIBUTE_DEFINITIONS_RULE = KeyedCollection(
    key_of=lambda definition: definition.name,
    remove=lambda definitions: [
        action("removeAttributeDefinition", name=d.name) for d in definitions
    ],
    add=lambda definition, position: action(
        "addAttributeDefinition", attribute=to_json(definition)
    ),
    reorder=lambda definitions: action(
        "changeAttributeOrderByName", attributeNames=[d.name for d in definitions]
    ),
    element_actions=attribute_definition_actions,
    replace_when=lambda old, new: type_signature(old.type) != type_signature(new.type),
    duplicate_message=(
        "Attribute definitions drafts have duplicated names. Duplicated attribute "
        "definition name: '{key}'. Attribute definitions names are expected to be "
        "unique inside their product type."
    ),
)

PRODUCT_TYPE_RULES = {
    "name": SetValue("changeName"),
    "description": SetValue(
        "changeDescription", normalize=lambda v: v or "", payload=lambda v: v or ""
    ),
    "attributes": ATTRIBUTE_DEFINITIONS_RULE,
}


class ProductTypeBatchValidator(BatchValidator[ProductTypeDraft]):
    draft_model = ProductTypeDraft
    type_id = PRODUCT_TYPE_TYPE_ID

    def draft_name(self, draft: ProductTypeDraft) -> str:
        return str(draft.name)

    def draft_errors(self, draft: ProductTypeDraft) -> list[str]:
        errors = []
        invalid = []
        for definition in draft.attributes or []:
            if type_depth(definition.type) > MAX_TYPE_DEPTH:
                errors.append(
                    f"{self.draft_type_name} with key: '{draft.key}' has attribute "
                    f"definition '{definition.name}' nested deeper than {MAX_TYPE_DEPTH} levels."
                )
                continue
            for reference, _ in nested_type_references(definition.type):
                if self.reference_error(reference):
                    invalid.append(definition.name)
                    break
        if invalid:
            errors.append(
                self.invalid_references_message(
                    draft, "productType", "AttributeDefinitionDrafts", invalid
                )
            )
        return errors

    def collect_reference_keys(self, draft: ProductTypeDraft) -> set[ReferenceKey]:
        keys = set()
        for definition in draft.attributes or []:
            for reference, _ in nested_type_references(definition.type):
                if reference is not None and reference.reference_key:
                    keys.add(reference.reference_key)
        return keys


class ProductTypeSync(ResourceSync[ProductTypeDraft, ProductType]):
    """Syncs product types; nested attributes may reference types created later."""

    resource_name = "product types"
    type_id = PRODUCT_TYPE_TYPE_ID
    endpoint = "product-types"
    resource_model = ProductType
    validator_class = ProductTypeBatchValidator
    diff_engine = DiffEngine(PRODUCT_TYPE_RULES)

    def resolve_references(
        self, draft: ProductTypeDraft, context: ResolutionContext
    ) -> ProductTypeDraft:
        if not draft.attributes:
            return draft
        attributes = [
            definition.model_copy(update={"type": context.attribute_type(definition.type)})
            for definition in draft.attributes
        ]
        return draft.model_copy(update={"attributes": attributes})
