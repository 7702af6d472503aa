"""Product type drafts and resources.

Attribute types form a tagged tree: the ``name`` tag selects the variant, ``set``
wraps an ``element_type`` and ``nested`` carries a ``type_reference`` to another
product type. Enum types carry their ``values``.
"""

from enum import Enum
from typing import Optional

from catalog_sync.models.common import (
    CamelModel,
    LocalizedString,
    Resource,
    ResourceDraft,
    ResourceIdentifier,
)

SCALAR_TYPES = frozenset(
    {"boolean", "text", "ltext", "number", "money", "date", "time", "datetime"}
)
ENUM_TYPES = frozenset({"enum", "lenum"})
SET_TYPE = "set"
NESTED_TYPE = "nested"
REFERENCE_TYPE = "reference"
KNOWN_ATTRIBUTE_TYPES = SCALAR_TYPES | ENUM_TYPES | {SET_TYPE, NESTED_TYPE, REFERENCE_TYPE}


class AttributeConstraint(str, Enum):
    NONE = "None"
    UNIQUE = "Unique"
    COMBINATION_UNIQUE = "CombinationUnique"
    SAME_FOR_ALL = "SameForAll"


class TextInputHint(str, Enum):
    SINGLE_LINE = "SingleLine"
    MULTI_LINE = "MultiLine"


class EnumValue(CamelModel):
    """A plain (label is a string) or localized (label is a mapping) enum value."""

    key: str
    label: str | LocalizedString


class AttributeType(CamelModel):
    name: str
    element_type: Optional["AttributeType"] = None
    type_reference: ResourceIdentifier | None = None
    reference_type_id: str | None = None
    values: list[EnumValue] | None = None

    @property
    def is_collection(self) -> bool:
        return self.name == SET_TYPE

    @property
    def is_nested(self) -> bool:
        return self.name == NESTED_TYPE

    def innermost(self) -> "AttributeType":
        """Return the type wrapped by any number of set layers."""
        current = self
        while current.is_collection and current.element_type is not None:
            current = current.element_type
        return current


AttributeType.model_rebuild()


class AttributeDefinition(CamelModel):
    type: AttributeType
    name: str
    label: LocalizedString
    is_required: bool = False
    attribute_constraint: AttributeConstraint = AttributeConstraint.NONE
    input_tip: LocalizedString | None = None
    input_hint: TextInputHint = TextInputHint.SINGLE_LINE
    is_searchable: bool = True


class AttributeDefinitionDraft(AttributeDefinition):
    """Attribute definition as given in a draft. Unknown attributes are kept."""

    model_config = {"extra": "allow"}


class ProductTypeDraft(ResourceDraft):
    name: str | None = None
    description: str | None = None
    attributes: list[AttributeDefinitionDraft] | None = None


class ProductType(Resource):
    name: str
    description: str = ""
    attributes: list[AttributeDefinition] | None = None
