"""Shared draft and resource models."""

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

LocalizedString = dict[str, str]


class CamelModel(BaseModel):
    """Base model using the platform's camelCase JSON field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the JSON shape sent to the platform."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReferenceKey(CamelModel):
    """A (resource type, key) pair that needs resolving to an id."""

    type_id: str
    key: str

    def __str__(self) -> str:
        return f"{self.type_id}:{self.key}"


class ResourceIdentifier(CamelModel):
    """A reference to another resource by id or by key."""

    type_id: str
    id: str | None = None
    key: str | None = None

    @property
    def reference_key(self) -> ReferenceKey | None:
        """The key to resolve, or None when the reference already carries an id."""
        if self.id or not self.key:
            return None
        return ReferenceKey(type_id=self.type_id, key=self.key)

    def to_reference(self) -> dict[str, Any]:
        """Serialize as an id reference for update action payloads."""
        if self.id:
            return {"typeId": self.type_id, "id": self.id}
        return {"typeId": self.type_id, "key": self.key}


class CustomFields(CamelModel):
    """Custom type reference plus field values of a resource."""

    type: ResourceIdentifier
    fields: dict[str, Any] | None = None


class AssetSource(CamelModel):
    uri: str
    key: str | None = None
    dimensions: dict[str, int] | None = None
    content_type: str | None = None


class Asset(CamelModel):
    """An asset attached to a resource, identified by its key."""

    key: str | None = None
    id: str | None = None
    name: LocalizedString
    description: LocalizedString | None = None
    sources: list[AssetSource] | None = None
    tags: list[str] | None = None
    custom: CustomFields | None = None


class ResourceDraft(CamelModel):
    """Desired state of one resource. Unknown attributes are kept for diffing."""

    model_config = ConfigDict(extra="allow")

    key: str | None = None


class Resource(CamelModel):
    """Current state of a resource on the target platform."""

    model_config = ConfigDict(extra="ignore")

    id: str
    version: int
    key: str | None = None
    created_at: str | None = None
    last_modified_at: str | None = None
