"""Infrastructure layer: concrete implementations of application ports."""

from actorgraph.infrastructure.memory_repository import (
    InMemoryAssignmentRepository,
    InMemoryDirectory,
    InMemoryRelationshipRepository,
)
from actorgraph.infrastructure.persistence.neo4j_repository import (
    Neo4jAssignmentRepository,
    Neo4jDirectory,
    Neo4jRelationshipRepository,
)
from actorgraph.infrastructure.schema import ensure_schema

__all__ = [
    "InMemoryAssignmentRepository",
    "InMemoryDirectory",
    "InMemoryRelationshipRepository",
    "Neo4jAssignmentRepository",
    "Neo4jDirectory",
    "Neo4jRelationshipRepository",
    "ensure_schema",
]
