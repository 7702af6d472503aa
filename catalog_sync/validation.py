"""Batch validation of raw drafts before any remote call is made."""

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import pydantic
import structlog

from catalog_sync.exceptions import ValidationError
from catalog_sync.models.common import ReferenceKey, ResourceDraft, ResourceIdentifier
from catalog_sync.options import SyncOptions

logger = structlog.get_logger(__name__)

DraftT = TypeVar("DraftT", bound=ResourceDraft)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def is_blank(value: str | None) -> bool:
    return value is None or value.strip() == ""


def is_uuid(value: str) -> bool:
    return bool(UUID_PATTERN.match(value))


@dataclass(slots=True)
class BatchValidationResult(Generic[DraftT]):
    """Valid drafts, the keys they need cached, and the rejected elements."""

    valid_drafts: list[DraftT] = field(default_factory=list)
    keys_to_cache: set[ReferenceKey] = field(default_factory=set)
    errors: list[tuple[ValidationError, Any]] = field(default_factory=list)


class BatchValidator(ABC, Generic[DraftT]):
    """Filters a batch of raw drafts into valid drafts and keys to resolve.

    Subclasses describe which references a draft kind carries; this class takes
    care of null, unparsable and keyless drafts and of reference syntax.
    """

    draft_model: type[DraftT]
    type_id: str

    def __init__(self, options: SyncOptions | None = None) -> None:
        self.options = options if options is not None else SyncOptions()
        self._logger = logger.bind(validator=self.__class__.__name__)

    @property
    def draft_type_name(self) -> str:
        return self.draft_model.__name__

    def validate(self, drafts: Iterable[Any]) -> BatchValidationResult[DraftT]:
        """Validate every element of a batch.

        Args:
            drafts: Draft models, mappings in the platform JSON shape, or None.

        Returns:
            The valid drafts, the keys to cache for them and one error per
            rejected element.
        """
        result: BatchValidationResult[DraftT] = BatchValidationResult()
        for raw in drafts:
            try:
                draft = self._validate_draft(raw)
            except ValidationError as e:
                result.errors.append((e, raw))
                continue
            result.valid_drafts.append(draft)
            result.keys_to_cache.add(
                ReferenceKey(type_id=self.type_id, key=draft.key)
            )
            result.keys_to_cache.update(self.collect_reference_keys(draft))

        if result.errors:
            self._logger.debug(
                "Rejected invalid drafts",
                rejected=len(result.errors),
                valid=len(result.valid_drafts),
            )
        return result

    def _validate_draft(self, raw: Any) -> DraftT:
        if raw is None:
            raise ValidationError(f"{self.draft_type_name} is null.")

        if isinstance(raw, Mapping):
            try:
                draft = self.draft_model.model_validate(raw)
            except pydantic.ValidationError as e:
                raise ValidationError(
                    f"Failed to parse {self.draft_type_name}: {e}",
                    resource_key=raw.get("key"),
                ) from e
        elif isinstance(raw, self.draft_model):
            draft = raw
        else:
            raise ValidationError(
                f"Expected a {self.draft_type_name} but got {type(raw).__name__}."
            )

        if is_blank(draft.key):
            raise ValidationError(
                f"{self.draft_type_name} with name: {self.draft_name(draft)} "
                "doesn't have a key."
            )

        errors = self.draft_errors(draft)
        if errors:
            raise ValidationError("; ".join(errors), resource_key=draft.key)
        return draft

    def reference_error(self, reference: ResourceIdentifier | None) -> str | None:
        """Describe what is wrong with a reference, or None if it is usable."""
        if reference is None:
            return "reference is null"
        if not is_blank(reference.id):
            return None
        if is_blank(reference.key):
            return "reference has neither an id nor a key"
        if not self.options.allow_uuid_keys and is_uuid(reference.key):
            return (
                f"key '{reference.key}' looks like a UUID and UUID keys are not allowed"
            )
        return None

    def invalid_references_message(
        self, draft: DraftT, reference_kind: str, container: str, names: list[str]
    ) -> str:
        return (
            f"{self.draft_type_name} with key: '{draft.key}' has invalid "
            f"{reference_kind} references on the following {container}: {names}"
        )

    @abstractmethod
    def draft_name(self, draft: DraftT) -> str:
        """Human readable name used in messages about a keyless draft."""

    @abstractmethod
    def draft_errors(self, draft: DraftT) -> list[str]:
        """Return messages for every structural problem of a draft."""

    @abstractmethod
    def collect_reference_keys(self, draft: DraftT) -> set[ReferenceKey]:
        """Return every reference key the draft needs resolved."""
