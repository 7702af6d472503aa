"""Rewriting draft references from keys to ids using the key to id cache."""

from collections.abc import Callable, Mapping
from typing import TypeVar

import structlog

from catalog_sync.cache import KeyIdCache
from catalog_sync.exceptions import ReferenceResolutionError, ValidationError
from catalog_sync.models.common import ReferenceKey, ResourceDraft, ResourceIdentifier
from catalog_sync.models.product_types import AttributeType

logger = structlog.get_logger(__name__)

DraftT = TypeVar("DraftT", bound=ResourceDraft)

MAX_TYPE_DEPTH = 32


class ResolutionContext:
    """Collects missing keys while one draft's references are rewritten.

    Every reference field is resolved independently; a missing key does not stop
    the others from being looked at, so the final error names all of them.
    ``known`` holds the ids the current chunk looked up; it is consulted when the
    bounded cache no longer has a key.
    """

    def __init__(
        self, cache: KeyIdCache, known: Mapping[ReferenceKey, str] | None = None
    ) -> None:
        self.cache = cache
        self.known = known or {}
        self.missing: set[ReferenceKey] = set()

    def reference(self, reference: ResourceIdentifier | None) -> ResourceIdentifier | None:
        """Resolve one reference; references that already carry an id pass through."""
        if reference is None:
            return None
        reference_key = reference.reference_key
        if reference_key is None:
            return reference

        resource_id = self.cache.get(reference_key) or self.known.get(reference_key)
        if resource_id is None:
            self.missing.add(reference_key)
            return reference
        return reference.model_copy(update={"id": resource_id, "key": None})

    def references(
        self, references: list[ResourceIdentifier] | None
    ) -> list[ResourceIdentifier] | None:
        if references is None:
            return None
        return [self.reference(r) for r in references]

    def attribute_type(self, attribute_type: AttributeType, depth: int = 0) -> AttributeType:
        """Resolve the nested type reference inside any number of set layers.

        The same chain of set wrappers is rebuilt around the resolved leaf.

        Raises:
            ValidationError: If the type nesting is deeper than MAX_TYPE_DEPTH.
        """
        if depth > MAX_TYPE_DEPTH:
            raise ValidationError(
                f"Attribute type nesting exceeds the maximum depth of {MAX_TYPE_DEPTH}."
            )
        if attribute_type.is_collection and attribute_type.element_type is not None:
            element_type = self.attribute_type(attribute_type.element_type, depth + 1)
            if element_type is attribute_type.element_type:
                return attribute_type
            return attribute_type.model_copy(update={"element_type": element_type})
        if attribute_type.is_nested and attribute_type.type_reference is not None:
            type_reference = self.reference(attribute_type.type_reference)
            if type_reference is attribute_type.type_reference:
                return attribute_type
            return attribute_type.model_copy(update={"type_reference": type_reference})
        return attribute_type


class ReferenceResolver:
    """Resolves every reference of a draft or reports the keys that are missing."""

    def __init__(self, cache: KeyIdCache) -> None:
        self.cache = cache

    def resolve(
        self,
        draft: DraftT,
        resolve_fields: Callable[[DraftT, ResolutionContext], DraftT],
        known: Mapping[ReferenceKey, str] | None = None,
    ) -> DraftT:
        """Return a copy of the draft with every key reference rewritten to an id.

        Args:
            draft: A validated draft.
            resolve_fields: Kind specific function rewriting the draft's reference
                fields through the context.
            known: Ids looked up for the draft's chunk, used on cache misses.

        Returns:
            The resolved draft.

        Raises:
            ReferenceResolutionError: If any referenced key is not in the cache.
        """
        context = ResolutionContext(self.cache, known)
        resolved = resolve_fields(draft, context)
        if context.missing:
            missing = sorted(str(k) for k in context.missing)
            logger.debug(
                "Draft has unresolved references", key=draft.key, missing=missing
            )
            raise ReferenceResolutionError(
                f"Failed to resolve references on {type(draft).__name__} with key: "
                f"'{draft.key}'. Missing keys: {missing}",
                missing_keys=context.missing,
                resource_key=draft.key,
            )
        return resolved
