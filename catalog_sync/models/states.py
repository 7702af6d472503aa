"""State drafts and resources."""

from enum import Enum

from catalog_sync.models.common import (
    LocalizedString,
    Resource,
    ResourceDraft,
    ResourceIdentifier,
)


class StateType(str, Enum):
    ORDER_STATE = "OrderState"
    LINE_ITEM_STATE = "LineItemState"
    PRODUCT_STATE = "ProductState"
    REVIEW_STATE = "ReviewState"
    PAYMENT_STATE = "PaymentState"
    QUOTE_REQUEST_STATE = "QuoteRequestState"
    STAGED_QUOTE_STATE = "StagedQuoteState"
    QUOTE_STATE = "QuoteState"


class StateRole(str, Enum):
    REVIEW_INCLUDED_IN_STATISTICS = "ReviewIncludedInStatistics"
    RETURN = "Return"


class StateDraft(ResourceDraft):
    """Desired state of a workflow state."""

    type: StateType = StateType.LINE_ITEM_STATE
    name: LocalizedString | None = None
    description: LocalizedString | None = None
    initial: bool | None = None
    roles: list[StateRole] | None = None
    transitions: list[ResourceIdentifier] | None = None


class State(Resource):
    type: StateType
    name: LocalizedString | None = None
    description: LocalizedString | None = None
    initial: bool = False
    built_in: bool = False
    roles: list[StateRole] | None = None
    transitions: list[ResourceIdentifier] | None = None
