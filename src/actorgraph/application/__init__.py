"""Application layer: use cases, ports, and DTOs. Depends only on domain."""

from actorgraph.application.assignment_service import AssignmentService
from actorgraph.application.dto import (
    AssignmentCreated,
    AssignmentRequest,
    EnrichedRelationship,
    PartySummary,
    RelationshipCreated,
    RelationshipRow,
)
from actorgraph.application.exclusivity import (
    enforce_exclusivity,
    is_exclusive,
    verify_exclusivity,
)
from actorgraph.application.ports import (
    ActorDirectory,
    AssignmentRepository,
    AssignmentTransaction,
    RelationshipRepository,
    RelationshipTransaction,
    ShareDirectory,
)
from actorgraph.application.relationship_service import RelationshipService

__all__ = [
    "ActorDirectory",
    "AssignmentCreated",
    "AssignmentRepository",
    "AssignmentRequest",
    "AssignmentService",
    "AssignmentTransaction",
    "EnrichedRelationship",
    "PartySummary",
    "RelationshipCreated",
    "RelationshipRepository",
    "RelationshipRow",
    "RelationshipService",
    "RelationshipTransaction",
    "ShareDirectory",
    "enforce_exclusivity",
    "is_exclusive",
    "verify_exclusivity",
]
