"""Lifecycle of temporally valid records (relationships and assignments).

Active (end_date and deleted_at unset) -> Ended (end_date set) -> SoftDeleted
(deleted_at set). SoftDeleted is terminal and Ended is never reactivated: a new
record is created instead. Every lifecycle operation asks ensure_transition
before touching storage, so illegal moves are rejected in one place.
"""

from enum import Enum

from actorgraph.domain.errors import InvalidStateError


class LifecycleState(str, Enum):
    ACTIVE = "active"
    ENDED = "ended"
    SOFT_DELETED = "soft_deleted"


class LifecycleAction(str, Enum):
    RECLASSIFY = "reclassify"
    END = "end"
    SOFT_DELETE = "soft_delete"
    ANNOTATE = "annotate"


# action -> (states it may start from, state it leads to; None keeps the state)
_TRANSITIONS: dict[LifecycleAction, tuple[frozenset[LifecycleState], LifecycleState | None]] = {
    LifecycleAction.RECLASSIFY: (frozenset({LifecycleState.ACTIVE}), None),
    LifecycleAction.END: (frozenset({LifecycleState.ACTIVE}), LifecycleState.ENDED),
    LifecycleAction.SOFT_DELETE: (
        frozenset({LifecycleState.ACTIVE, LifecycleState.ENDED}),
        LifecycleState.SOFT_DELETED,
    ),
    LifecycleAction.ANNOTATE: (
        frozenset({LifecycleState.ACTIVE, LifecycleState.ENDED}),
        None,
    ),
}


def state_of(record) -> LifecycleState:
    """Derive the state from the two timestamps. Works for any record with end_date/deleted_at."""
    if record.deleted_at is not None:
        return LifecycleState.SOFT_DELETED
    if record.end_date is not None:
        return LifecycleState.ENDED
    return LifecycleState.ACTIVE


def ensure_transition(record, action: LifecycleAction) -> LifecycleState:
    """Return the state the record moves to, or raise InvalidStateError."""
    allowed_from, target = _TRANSITIONS[action]
    current = state_of(record)
    if current not in allowed_from:
        raise InvalidStateError(
            f"Cannot {action.value.replace('_', ' ')} record {record.id}: it is {current.value}."
        )
    return target or current
