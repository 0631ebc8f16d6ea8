"""In-memory implementations of the directory and repository ports (no DB).

A transaction holds the repository lock for its whole duration and writes to a
staged copy of the rows; the copy replaces the committed rows only when the
block exits normally, so a failing write leaves nothing behind.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from actorgraph.application.dto import RelationshipRow
from actorgraph.domain import (
    Actor,
    Assignment,
    AssignmentType,
    Relationship,
    RelationshipType,
    Share,
)


class InMemoryDirectory:
    """Actors and shares by id. Stands in for the subsystems that own them."""

    def __init__(self) -> None:
        self._actors: dict[str, Actor] = {}
        self._shares: dict[str, Share] = {}

    def add_actor(self, actor: Actor) -> Actor:
        self._actors[actor.id] = actor
        return actor

    def add_share(self, share: Share) -> Share:
        self._shares[share.id] = share
        return share

    def get_actor(self, actor_id: str) -> Actor | None:
        return self._actors.get(actor_id)

    def get_share(self, share_id: str) -> Share | None:
        return self._shares.get(share_id)


class _RelationshipTransaction:
    def __init__(self, rows: dict[str, Relationship]) -> None:
        self.rows = rows

    def lock_actor(self, actor_id: str) -> None:
        # The repository lock already serializes every transaction.
        return None

    def get(self, relationship_id: str) -> Relationship | None:
        return self.rows.get(relationship_id)

    def find_active(
        self,
        origin_actor_id: str,
        relationship_type: RelationshipType,
        sub_type: str | None,
        *,
        exclude_relationship_id: str | None = None,
    ) -> list[Relationship]:
        return [
            rel
            for rel in self.rows.values()
            if rel.origin_actor_id == origin_actor_id
            and rel.relationship_type is relationship_type
            and rel.sub_type == sub_type
            and rel.is_current
            and rel.id != exclude_relationship_id
        ]

    def insert(self, relationship: Relationship) -> None:
        if relationship.id in self.rows:
            raise KeyError(f"Relationship {relationship.id} already exists.")
        self.rows[relationship.id] = relationship

    def save(self, relationship: Relationship) -> None:
        if relationship.id not in self.rows:
            raise KeyError(f"Relationship {relationship.id} does not exist.")
        self.rows[relationship.id] = relationship


class InMemoryRelationshipRepository:
    """Stores relationships in memory, insertion-ordered. Joins parties through the directory."""

    def __init__(self, directory: InMemoryDirectory | None = None) -> None:
        self._directory = directory or InMemoryDirectory()
        self._rows: dict[str, Relationship] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[_RelationshipTransaction]:
        with self._lock:
            tx = _RelationshipTransaction(dict(self._rows))
            yield tx
            self._rows = tx.rows

    def get_by_id(self, relationship_id: str) -> Relationship | None:
        return self._rows.get(relationship_id)

    def list_for_actor(
        self,
        actor_id: str,
        *,
        only_current: bool = True,
        relationship_type: RelationshipType | None = None,
    ) -> list[RelationshipRow]:
        out = []
        for rel in list(self._rows.values()):
            if rel.deleted_at is not None or not rel.involves(actor_id):
                continue
            if only_current and rel.end_date is not None:
                continue
            if relationship_type is not None and rel.relationship_type is not relationship_type:
                continue
            out.append(
                RelationshipRow(
                    relationship=rel,
                    origin=self._directory.get_actor(rel.origin_actor_id),
                    destination=self._directory.get_actor(rel.destination_actor_id),
                )
            )
        return out


class _AssignmentTransaction:
    def __init__(self, rows: dict[str, Assignment]) -> None:
        self.rows = rows

    def lock_share(self, share_id: str) -> None:
        return None

    def get(self, assignment_id: str) -> Assignment | None:
        return self.rows.get(assignment_id)

    def find_active(
        self,
        share_id: str,
        assignment_type: AssignmentType,
        *,
        exclude_assignment_id: str | None = None,
    ) -> list[Assignment]:
        return [
            a
            for a in self.rows.values()
            if a.share_id == share_id
            and a.assignment_type is assignment_type
            and a.is_current
            and a.id != exclude_assignment_id
        ]

    def used_subcodes(self, share_id: str) -> list[str]:
        return [a.subcode for a in self.rows.values() if a.share_id == share_id]

    def insert(self, assignment: Assignment) -> None:
        if assignment.id in self.rows:
            raise KeyError(f"Assignment {assignment.id} already exists.")
        self.rows[assignment.id] = assignment

    def save(self, assignment: Assignment) -> None:
        if assignment.id not in self.rows:
            raise KeyError(f"Assignment {assignment.id} does not exist.")
        self.rows[assignment.id] = assignment


class InMemoryAssignmentRepository:
    """Stores assignments in memory, insertion-ordered."""

    def __init__(self) -> None:
        self._rows: dict[str, Assignment] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[_AssignmentTransaction]:
        with self._lock:
            tx = _AssignmentTransaction(dict(self._rows))
            yield tx
            self._rows = tx.rows

    def get_by_id(self, assignment_id: str) -> Assignment | None:
        return self._rows.get(assignment_id)

    def _live(self, only_current: bool) -> list[Assignment]:
        return [
            a
            for a in list(self._rows.values())
            if a.deleted_at is None and (not only_current or a.end_date is None)
        ]

    def list_for_share(self, share_id: str, *, only_current: bool = True) -> list[Assignment]:
        return [a for a in self._live(only_current) if a.share_id == share_id]

    def list_for_actor(self, actor_id: str, *, only_current: bool = True) -> list[Assignment]:
        return [a for a in self._live(only_current) if a.actor_id == actor_id]
