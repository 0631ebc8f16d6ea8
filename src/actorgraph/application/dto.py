"""Application DTOs: results of write operations and the caller-relative read model."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from actorgraph.domain import (
    Actor,
    ActorType,
    AssignmentModality,
    AssignmentType,
    CommercialPlan,
    Gender,
    Relationship,
)


@dataclass(frozen=True)
class RelationshipRow:
    """A stored relationship with both parties joined (either may be missing in broken data)."""

    relationship: Relationship
    origin: Actor | None
    destination: Actor | None


@dataclass(frozen=True)
class PartySummary:
    """Identity data for one side of a relationship."""

    actor_id: str
    display_name: str
    gender: Gender = Gender.UNSPECIFIED
    actor_type: ActorType = ActorType.PERSON
    is_deleted: bool = False

    @classmethod
    def from_actor(cls, actor_id: str, actor: Actor | None) -> "PartySummary":
        if actor is None:
            return cls(actor_id=actor_id, display_name="Unknown")
        return cls(
            actor_id=actor.id,
            display_name=actor.display_name or "Unknown",
            gender=actor.gender,
            actor_type=actor.actor_type,
            is_deleted=actor.is_deleted,
        )


@dataclass(frozen=True)
class EnrichedRelationship:
    """
    A relationship as seen by viewer_actor_id. Both parties are included so the
    caller can render either perspective without another lookup.
    """

    relationship_id: str
    relationship_type: str
    sub_type: str | None
    origin: PartySummary
    destination: PartySummary
    origin_role: str
    destination_role: str
    start_date: datetime
    end_date: datetime | None
    is_current: bool
    is_bidirectional: bool
    viewer_actor_id: str
    notes: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: RelationshipRow, viewer_actor_id: str) -> "EnrichedRelationship":
        rel = row.relationship
        return cls(
            relationship_id=rel.id,
            relationship_type=rel.relationship_type.value,
            sub_type=rel.sub_type,
            origin=PartySummary.from_actor(rel.origin_actor_id, row.origin),
            destination=PartySummary.from_actor(rel.destination_actor_id, row.destination),
            origin_role=rel.origin_role,
            destination_role=rel.destination_role,
            start_date=rel.start_date,
            end_date=rel.end_date,
            is_current=rel.is_current,
            is_bidirectional=rel.is_bidirectional,
            viewer_actor_id=viewer_actor_id,
            notes=rel.notes,
            attributes=dict(rel.attributes),
        )

    @property
    def viewer_is_origin(self) -> bool:
        return self.viewer_actor_id == self.origin.actor_id

    @property
    def counterpart(self) -> PartySummary:
        return self.destination if self.viewer_is_origin else self.origin

    @property
    def counterpart_role(self) -> str:
        """The role the other actor plays, e.g. "child" when the viewer is the parent."""
        return self.destination_role if self.viewer_is_origin else self.origin_role

    @property
    def viewer_role(self) -> str:
        return self.origin_role if self.viewer_is_origin else self.destination_role


@dataclass(frozen=True)
class RelationshipCreated:
    relationship_id: str
    closed_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class AssignmentRequest:
    """Input for one assignment; used by single and batch creation."""

    share_id: str
    actor_id: str
    assignment_type: AssignmentType | str
    parent_assignment_id: str | None = None
    modality: AssignmentModality | str | None = None
    commercial_plan: CommercialPlan | str | None = None
    notes: str | None = None
    attributes: dict[str, Any] | None = None
    start_date: datetime | None = None


@dataclass(frozen=True)
class AssignmentCreated:
    assignment_id: str
    closed_ids: tuple[str, ...] = ()
    full_code: str = ""
