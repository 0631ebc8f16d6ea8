"""Domain layer: entities, role table, lifecycle rules and errors. No dependencies on outer layers."""

from actorgraph.domain.entities import (
    EXCLUSIVE_SUB_TYPES,
    Actor,
    ActorType,
    Assignment,
    AssignmentModality,
    AssignmentType,
    CommercialPlan,
    FamilySubType,
    Gender,
    Relationship,
    RelationshipType,
    Share,
    full_code,
    next_subcode,
    utc_now,
)
from actorgraph.domain.errors import (
    ActorGraphError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from actorgraph.domain.lifecycle import (
    LifecycleAction,
    LifecycleState,
    ensure_transition,
    state_of,
)
from actorgraph.domain.roles import RECIPROCITY_TABLE, RolePair, resolve_roles

__all__ = [
    "EXCLUSIVE_SUB_TYPES",
    "RECIPROCITY_TABLE",
    "Actor",
    "ActorGraphError",
    "ActorType",
    "Assignment",
    "AssignmentModality",
    "AssignmentType",
    "CommercialPlan",
    "ConflictError",
    "FamilySubType",
    "Gender",
    "InvalidStateError",
    "LifecycleAction",
    "LifecycleState",
    "NotFoundError",
    "Relationship",
    "RelationshipType",
    "RolePair",
    "Share",
    "ValidationError",
    "ensure_transition",
    "full_code",
    "next_subcode",
    "resolve_roles",
    "state_of",
    "utc_now",
]
