"""
Actorgraph core: clean-architecture layout.

- domain: entities (Actor, Relationship, Assignment), role table, lifecycle, errors. No outer dependencies.
- application: use cases (RelationshipService, AssignmentService), ports, DTOs.
- infrastructure: adapters (in-memory, Neo4j) and schema bootstrap.
"""

from actorgraph.application import (
    AssignmentCreated,
    AssignmentRequest,
    AssignmentService,
    EnrichedRelationship,
    PartySummary,
    RelationshipCreated,
    RelationshipService,
)
from actorgraph.domain import (
    Actor,
    ActorGraphError,
    ActorType,
    Assignment,
    AssignmentType,
    ConflictError,
    FamilySubType,
    Gender,
    InvalidStateError,
    LifecycleState,
    NotFoundError,
    Relationship,
    RelationshipType,
    Share,
    ValidationError,
    resolve_roles,
)
from actorgraph.infrastructure import (
    InMemoryAssignmentRepository,
    InMemoryDirectory,
    InMemoryRelationshipRepository,
    Neo4jAssignmentRepository,
    Neo4jDirectory,
    Neo4jRelationshipRepository,
    ensure_schema,
)

__all__ = [
    "Actor",
    "ActorGraphError",
    "ActorType",
    "Assignment",
    "AssignmentCreated",
    "AssignmentRequest",
    "AssignmentService",
    "AssignmentType",
    "ConflictError",
    "EnrichedRelationship",
    "FamilySubType",
    "Gender",
    "InMemoryAssignmentRepository",
    "InMemoryDirectory",
    "InMemoryRelationshipRepository",
    "InvalidStateError",
    "LifecycleState",
    "Neo4jAssignmentRepository",
    "Neo4jDirectory",
    "Neo4jRelationshipRepository",
    "NotFoundError",
    "PartySummary",
    "Relationship",
    "RelationshipCreated",
    "RelationshipService",
    "RelationshipType",
    "Share",
    "ValidationError",
    "ensure_schema",
    "resolve_roles",
]
