"""Generic update action diff engine.

Every resource kind supplies a rule table ``{field name: FieldRule}``; the
engine walks the table in order and never special-cases a kind. Warnings for
fields it cannot handle go to the ``report`` callable and do not stop the diff.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel

from catalog_sync.exceptions import BuildUpdateActionError

Report = Callable[[str], None]


def _ignore(message: str) -> None:
    pass


@dataclass(frozen=True, slots=True)
class UpdateAction:
    """One typed update operation, e.g. ``setName`` with its parameters."""

    action: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"action": self.action, **self.fields}


def action(action_name: str, /, **fields: Any) -> UpdateAction:
    """Build an action; ``fields`` may itself contain ``name`` (e.g. setName)."""
    return UpdateAction(action_name, fields)


def to_json(value: Any) -> Any:
    """Serialize model values to the platform JSON shape for payloads and comparison."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: to_json(v) for k, v in value.items()}
    return value


def reference_id(reference: Any) -> str | None:
    return getattr(reference, "id", None) if reference is not None else None


class FieldRule(ABC):
    """Computes the actions converging one field."""

    @abstractmethod
    def diff(
        self, name: str, old_value: Any, new_value: Any, report: Report
    ) -> list[UpdateAction]:
        """Return the actions for one field."""


class SetValue(FieldRule):
    """Emit ``action`` with the new value when the values differ.

    ``normalize`` maps both values before comparing; ``unset_warning`` turns a
    missing new value into a warning instead of an action for fields the
    platform cannot unset.
    """

    def __init__(
        self,
        action_name: str,
        param: str | None = None,
        *,
        normalize: Callable[[Any], Any] | None = None,
        unset_warning: str | None = None,
        payload: Callable[[Any], Any] = to_json,
    ) -> None:
        self.action_name = action_name
        self.param = param
        self.normalize = normalize or to_json
        self.unset_warning = unset_warning
        self.payload = payload

    def diff(self, name, old_value, new_value, report):
        if self.normalize(old_value) == self.normalize(new_value):
            return []
        if new_value is None and self.unset_warning is not None:
            report(self.unset_warning)
            return []
        value = self.payload(new_value)
        if value is None:
            return [action(self.action_name)]
        return [action(self.action_name, **{self.param or name: value})]


class SetReference(SetValue):
    """Compare references by id and send an id reference."""

    def __init__(self, action_name: str, param: str | None = None, **kwargs: Any) -> None:
        super().__init__(
            action_name,
            param,
            normalize=reference_id,
            payload=lambda r: r.to_reference() if r is not None else None,
            **kwargs,
        )


class SetReferenceSet(SetValue):
    """Compare reference lists as sets of ids; an empty list equals no list."""

    def __init__(self, action_name: str, param: str | None = None) -> None:
        super().__init__(
            action_name,
            param,
            normalize=lambda refs: frozenset(reference_id(r) for r in refs or []),
            payload=lambda refs: [r.to_reference() for r in refs] if refs else None,
        )


class AddRemoveValues(FieldRule):
    """Unordered value sets changed with separate remove and add actions."""

    def __init__(self, add_action: str, remove_action: str, param: str) -> None:
        self.add_action = add_action
        self.remove_action = remove_action
        self.param = param

    def diff(self, name, old_value, new_value, report):
        old = [to_json(v) for v in old_value or []]
        new = [to_json(v) for v in new_value or []]
        removed = [v for v in old if v not in new]
        added = [v for v in new if v not in old]
        actions = []
        if removed:
            actions.append(action(self.remove_action, **{self.param: removed}))
        if added:
            actions.append(action(self.add_action, **{self.param: added}))
        return actions


class AddRemoveReferences(FieldRule):
    """Reference sets changed one reference per action, compared by id.

    Additions come first in draft order, then removals in existing order.
    """

    def __init__(self, add_action: str, remove_action: str, param: str) -> None:
        self.add_action = add_action
        self.remove_action = remove_action
        self.param = param

    def diff(self, name, old_value, new_value, report):
        old_ids = {reference_id(r) for r in old_value or []}
        new_ids = {reference_id(r) for r in new_value or []}
        actions = [
            action(self.add_action, **{self.param: r.to_reference()})
            for r in new_value or []
            if reference_id(r) not in old_ids
        ]
        actions.extend(
            action(self.remove_action, **{self.param: r.to_reference()})
            for r in old_value or []
            if reference_id(r) not in new_ids
        )
        return actions


class CustomFieldsRule(FieldRule):
    """Keyed map diff of custom fields.

    A changed or added custom type replaces the whole custom object; otherwise one
    set action is built per field whose value changed, was added or was removed.
    ``context`` is merged into every payload (e.g. the asset key).
    """

    def __init__(
        self,
        set_type_action: str = "setCustomType",
        set_field_action: str = "setCustomField",
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self.set_type_action = set_type_action
        self.set_field_action = set_field_action
        self.context = dict(context or {})

    def diff(self, name, old_value, new_value, report):
        if old_value is None and new_value is None:
            return []
        if new_value is None:
            return [action(self.set_type_action, **self.context)]

        new_type_id = reference_id(new_value.type)
        if old_value is None or reference_id(old_value.type) != new_type_id:
            fields = to_json(new_value.fields) if new_value.fields else None
            payload = {**self.context, "type": new_value.type.to_reference()}
            if fields:
                payload["fields"] = fields
            return [action(self.set_type_action, **payload)]

        old_fields = to_json(old_value.fields or {})
        new_fields = to_json(new_value.fields or {})
        actions = []
        for field_name, value in new_fields.items():
            if old_fields.get(field_name) != value:
                actions.append(
                    action(
                        self.set_field_action,
                        **self.context,
                        name=field_name,
                        value=value,
                    )
                )
        for field_name in old_fields:
            if field_name not in new_fields:
                actions.append(
                    action(self.set_field_action, **self.context, name=field_name)
                )
        return actions


class KeyedCollection(FieldRule):
    """Ordered collection whose elements are identified by a key.

    Actions come out in a fixed order: removals, per-element changes in draft
    order, additions in draft order, then at most one reorder action. The
    reorder action is built only when the order left after removals and
    additions differs from the draft order. With ``reorder_before_add`` the reorder
    moves ahead of the additions.

    Args:
        key_of: Returns the identifying key of an element.
        remove: Builds the actions removing a list of old elements.
        add: Builds the action adding a new element at a draft position.
        reorder: Builds the action ordering the collection like the draft, or a
            list of move actions where the target has no single reorder action.
        element_actions: Builds the actions converging a matched element.
        replace_when: True if a matched element must be removed and re-added.
        add_carries_position: Whether ``add`` inserts at the given position
            instead of appending.
        reorder_before_add: Emit the reorder right after the element changes,
            ordering only the surviving existing elements. ``reorder`` then
            receives those old elements in draft order, for targets that order
            elements by ids the new ones do not have yet.
        duplicate_message: Message template for duplicate draft keys.
    """

    def __init__(
        self,
        key_of: Callable[[Any], Any],
        remove: Callable[[list], list[UpdateAction]],
        add: Callable[[Any, int], UpdateAction],
        reorder: Callable[[list], UpdateAction | list[UpdateAction]],
        element_actions: Callable[[Any, Any, Report], list[UpdateAction]] | None = None,
        replace_when: Callable[[Any, Any], bool] | None = None,
        add_carries_position: bool = False,
        reorder_before_add: bool = False,
        duplicate_message: str = "Duplicate key '{key}' in '{field}'.",
    ) -> None:
        self.key_of = key_of
        self.remove = remove
        self.add = add
        self.reorder = reorder
        self.element_actions = element_actions
        self.replace_when = replace_when
        self.add_carries_position = add_carries_position
        self.reorder_before_add = reorder_before_add
        self.duplicate_message = duplicate_message

    def _index(self, name: str, elements: Iterable[Any]) -> dict[Any, Any]:
        index: dict[Any, Any] = {}
        for element in elements:
            key = self.key_of(element)
            if key in index:
                raise BuildUpdateActionError(
                    self.duplicate_message.format(key=key, field=name)
                )
            index[key] = element
        return index

    def diff(self, name, old_value, new_value, report):
        old_elements = list(old_value or [])
        new_elements = list(new_value or [])
        new_index = self._index(name, new_elements)
        old_index = {self.key_of(e): e for e in old_elements}

        replaced = set()
        if self.replace_when is not None:
            replaced = {
                key
                for key, new in new_index.items()
                if key in old_index and self.replace_when(old_index[key], new)
            }

        removed = [
            e
            for e in old_elements
            if self.key_of(e) not in new_index or self.key_of(e) in replaced
        ]
        actions: list[UpdateAction] = []
        if removed:
            actions.extend(self.remove(removed))

        if self.element_actions is not None:
            for new in new_elements:
                key = self.key_of(new)
                if key in old_index and key not in replaced:
                    actions.extend(self.element_actions(old_index[key], new, report))

        removed_keys = {self.key_of(e) for e in removed}
        resulting = [self.key_of(e) for e in old_elements if self.key_of(e) not in removed_keys]
        if self.reorder_before_add:
            surviving = [k for k in (self.key_of(e) for e in new_elements) if k in resulting]
            if surviving != resulting:
                actions.extend(self._reorder([old_index[k] for k in surviving]))
            resulting = surviving

        for position, new in enumerate(new_elements):
            key = self.key_of(new)
            if key in old_index and key not in replaced:
                continue
            actions.append(self.add(new, position))
            if self.add_carries_position:
                resulting.insert(min(position, len(resulting)), key)
            else:
                resulting.append(key)

        if resulting != [self.key_of(e) for e in new_elements] and not self.reorder_before_add:
            actions.extend(self._reorder(new_elements))
        return actions

    def _reorder(self, elements: list) -> list[UpdateAction]:
        result = self.reorder(elements)
        return result if isinstance(result, list) else [result]


class DiffEngine:
    """Computes the ordered update actions converging a resource to a draft."""

    def __init__(
        self, rules: Mapping[str, FieldRule], ignored: Iterable[str] = ("key",)
    ) -> None:
        self.rules = dict(rules)
        self.ignored = frozenset(ignored)

    def unknown_fields(self, draft: BaseModel) -> list[str]:
        declared = [
            name
            for name in type(draft).model_fields
            if name not in self.rules and name not in self.ignored
        ]
        extra = [n for n in (draft.model_extra or {}) if n not in self.ignored]
        return declared + sorted(extra)

    def diff(
        self, existing: BaseModel, draft: BaseModel, report: Report | None = None
    ) -> list[UpdateAction]:
        """Diff a resource against a resolved draft.

        Args:
            existing: Current resource (or collection element).
            draft: Resolved draft with the same logical fields.
            report: Receives one warning message per field that was skipped.

        Returns:
            Ordered update actions; empty when the resource already matches.

        Raises:
            BuildUpdateActionError: If a keyed collection in the draft has
                duplicate keys.
        """
        report = report or _ignore
        for name in self.unknown_fields(draft):
            report(
                f"Unknown attribute '{name}' on {type(draft).__name__}; "
                "no update actions were built for it."
            )

        actions: list[UpdateAction] = []
        for name, rule in self.rules.items():
            actions.extend(
                rule.diff(name, getattr(existing, name, None), getattr(draft, name, None), report)
            )
        return actions
