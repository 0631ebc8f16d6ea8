"""Application ports (interfaces). Implemented by infrastructure adapters."""

from contextlib import AbstractContextManager
from typing import Protocol

from actorgraph.application.dto import RelationshipRow
from actorgraph.domain import (
    Actor,
    Assignment,
    AssignmentType,
    Relationship,
    RelationshipType,
    Share,
)


class ActorDirectory(Protocol):
    """Read-only access to actors owned by other subsystems."""

    def get_actor(self, actor_id: str) -> Actor | None:
        """Return the actor (soft-deleted ones included), or None."""
        ...


class ShareDirectory(Protocol):
    """Read-only access to shares."""

    def get_share(self, share_id: str) -> Share | None:
        """Return the share (soft-deleted ones included), or None."""
        ...


class RelationshipTransaction(Protocol):
    """Handle for one atomic unit of relationship writes. Reads see the unit's own writes."""

    def lock_actor(self, actor_id: str) -> None:
        """Serialize this unit against others touching the same origin actor."""
        ...

    def get(self, relationship_id: str) -> Relationship | None:
        """Return the relationship by id, soft-deleted included."""
        ...

    def find_active(
        self,
        origin_actor_id: str,
        relationship_type: RelationshipType,
        sub_type: str | None,
        *,
        exclude_relationship_id: str | None = None,
    ) -> list[Relationship]:
        """Active (not ended, not soft-deleted) relationships matching origin, type and sub_type."""
        ...

    def insert(self, relationship: Relationship) -> None:
        ...

    def save(self, relationship: Relationship) -> None:
        """Overwrite the stored record with the same id."""
        ...


class RelationshipRepository(Protocol):
    """Persists relationship records. Writes only go through transaction()."""

    def transaction(self) -> AbstractContextManager[RelationshipTransaction]:
        """Commit on normal exit, roll back if the block raises."""
        ...

    def get_by_id(self, relationship_id: str) -> Relationship | None:
        """Return the relationship by id, soft-deleted included (audit)."""
        ...

    def list_for_actor(
        self,
        actor_id: str,
        *,
        only_current: bool = True,
        relationship_type: RelationshipType | None = None,
    ) -> list[RelationshipRow]:
        """Non-soft-deleted relationships with actor_id on either side, both parties joined."""
        ...


class AssignmentTransaction(Protocol):
    """Handle for one atomic unit of assignment writes."""

    def lock_share(self, share_id: str) -> None:
        ...

    def get(self, assignment_id: str) -> Assignment | None:
        ...

    def find_active(
        self,
        share_id: str,
        assignment_type: AssignmentType,
        *,
        exclude_assignment_id: str | None = None,
    ) -> list[Assignment]:
        ...

    def used_subcodes(self, share_id: str) -> list[str]:
        """Sub-codes of every assignment the share ever had, soft-deleted included."""
        ...

    def insert(self, assignment: Assignment) -> None:
        ...

    def save(self, assignment: Assignment) -> None:
        ...


class AssignmentRepository(Protocol):
    """Persists actor <-> share assignments."""

    def transaction(self) -> AbstractContextManager[AssignmentTransaction]:
        ...

    def get_by_id(self, assignment_id: str) -> Assignment | None:
        ...

    def list_for_share(self, share_id: str, *, only_current: bool = True) -> list[Assignment]:
        """Non-soft-deleted assignments of a share, oldest first."""
        ...

    def list_for_actor(self, actor_id: str, *, only_current: bool = True) -> list[Assignment]:
        """Non-soft-deleted assignments held by an actor, oldest first."""
        ...
