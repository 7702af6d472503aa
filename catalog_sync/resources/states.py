"""Sync of workflow states and their transitions."""

from catalog_sync.diff import AddRemoveValues, DiffEngine, SetReferenceSet, SetValue
from catalog_sync.models.common import ReferenceKey
from catalog_sync.models.states import State, StateDraft
from catalog_sync.resolution import ResolutionContext
from catalog_sync.resources.base import ResourceSync
from catalog_sync.validation import BatchValidator

STATE_TYPE_ID = "state"

STATE_RULES = {
    "type": SetValue("changeType"),
    "name": SetValue("setName"),
    "description": SetValue("setDescription"),
    "initial": SetValue("changeInitial", normalize=bool),
    "roles": AddRemoveValues("addRoles", "removeRoles", "roles"),
    "transitions": SetReferenceSet("setTransitions"),
}


class StateBatchValidator(BatchValidator[StateDraft]):
    draft_model = StateDraft
    type_id = STATE_TYPE_ID

    def draft_name(self, draft: StateDraft) -> str:
        return str(draft.name)

    def draft_errors(self, draft: StateDraft) -> list[str]:
        invalid = [
            f"{i}: {problem}"
            for i, transition in enumerate(draft.transitions or [])
            if (problem := self.reference_error(transition))
        ]
        if invalid:
            return [
                self.invalid_references_message(draft, "state", "transitions", invalid)
            ]
        return []

    def collect_reference_keys(self, draft: StateDraft) -> set[ReferenceKey]:
        return {
            t.reference_key for t in draft.transitions or [] if t.reference_key
        }


class StateSync(ResourceSync[StateDraft, State]):
    """Syncs states; transitions may point at states created later in the run."""

    resource_name = "states"
    type_id = STATE_TYPE_ID
    endpoint = "states"
    resource_model = State
    validator_class = StateBatchValidator
    diff_engine = DiffEngine(STATE_RULES)

    def resolve_references(
        self, draft: StateDraft, context: ResolutionContext
    ) -> StateDraft:
        if not draft.transitions:
            return draft
        return draft.model_copy(
            update={"transitions": context.references(draft.transitions)}
        )
