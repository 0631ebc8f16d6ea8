"""Relationship lifecycle (create, reclassify, end, soft-delete) and the caller-relative read path."""

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import Any

from actorgraph.application.dto import EnrichedRelationship, RelationshipCreated
from actorgraph.application.exclusivity import enforce_exclusivity, verify_exclusivity
from actorgraph.application.ports import (
    ActorDirectory,
    RelationshipRepository,
    RelationshipTransaction,
)
from actorgraph.domain import (
    Actor,
    FamilySubType,
    LifecycleAction,
    NotFoundError,
    Relationship,
    RelationshipType,
    ValidationError,
    ensure_transition,
    resolve_roles,
    utc_now,
)
from actorgraph.domain.entities import as_utc
from actorgraph.domain.roles import OTHER_LABEL, RolePair

logger = logging.getLogger(__name__)


def _clean_id(value: str | None, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} is required.")
    return cleaned


def _normalize_sub_type(kind: RelationshipType, sub_type: str | None) -> str | None:
    """Family sub-types are folded into the fixed vocabulary; other kinds keep free text."""
    if kind is RelationshipType.FAMILY:
        return FamilySubType.parse(sub_type).value
    return (sub_type or "").strip() or None


def _roles_for(
    kind: RelationshipType,
    sub_type: str | None,
    origin: Actor,
    origin_role: str | None,
    destination_role: str | None,
) -> RolePair:
    """Family roles come from the reciprocity table; other kinds take the caller's labels."""
    if kind is RelationshipType.FAMILY:
        if origin_role or destination_role:
            raise ValidationError("Family roles are derived from the sub-type and cannot be set.")
        return resolve_roles(sub_type, origin.gender)
    return RolePair(
        origin_role=(origin_role or "").strip() or OTHER_LABEL,
        destination_role=(destination_role or "").strip() or OTHER_LABEL,
    )


class RelationshipService:
    """Create / reclassify / end / soft-delete relationships and list them per actor."""

    def __init__(
        self,
        repository: RelationshipRepository,
        actors: ActorDirectory,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repository
        self._actors = actors
        self._clock = clock or utc_now

    def _require_actor(self, actor_id: str) -> Actor:
        actor = self._actors.get_actor(actor_id)
        if actor is None or actor.is_deleted:
            raise NotFoundError(f"Actor {actor_id} not found.")
        return actor

    def _load(self, tx: RelationshipTransaction, relationship_id: str) -> Relationship:
        relationship = tx.get(relationship_id)
        if relationship is None:
            raise NotFoundError(f"Relationship {relationship_id} not found.")
        return relationship

    def create_relationship(
        self,
        origin_actor_id: str,
        destination_actor_id: str,
        relationship_type: RelationshipType | str,
        sub_type: str | None = None,
        notes: str | None = None,
        *,
        attributes: dict[str, Any] | None = None,
        start_date: datetime | None = None,
        is_bidirectional: bool = True,
        origin_role: str | None = None,
        destination_role: str | None = None,
    ) -> RelationshipCreated:
        """Link two actors. Closes whoever held the same exclusive family role for the origin.

        Family roles are derived from the sub-type and the origin's gender. Other
        kinds store the caller's origin_role / destination_role labels as given.
        """
        origin_actor_id = _clean_id(origin_actor_id, "Origin actor")
        destination_actor_id = _clean_id(destination_actor_id, "Destination actor")
        if origin_actor_id == destination_actor_id:
            raise ValidationError("An actor cannot be related to itself.")
        kind = RelationshipType.parse(relationship_type)
        stored_sub_type = _normalize_sub_type(kind, sub_type)

        origin = self._require_actor(origin_actor_id)
        self._require_actor(destination_actor_id)
        roles = _roles_for(kind, stored_sub_type, origin, origin_role, destination_role)

        now = self._clock()
        start = as_utc(start_date) or now
        with self._repo.transaction() as tx:
            tx.lock_actor(origin.id)
            closed = enforce_exclusivity(tx, origin.id, kind, stored_sub_type, at=start)
            relationship = Relationship(
                origin_actor_id=origin.id,
                destination_actor_id=destination_actor_id,
                relationship_type=kind,
                sub_type=stored_sub_type,
                origin_role=roles.origin_role,
                destination_role=roles.destination_role,
                is_bidirectional=is_bidirectional,
                start_date=start,
                notes=notes,
                attributes=dict(attributes or {}),
                created_at=now,
                updated_at=now,
            )
            tx.insert(relationship)
            verify_exclusivity(tx, origin.id, kind, stored_sub_type)

        logger.info(
            "Created %s relationship %s: %s -> %s (%s)",
            kind.value,
            relationship.id,
            origin.id,
            destination_actor_id,
            stored_sub_type or "-",
        )
        return RelationshipCreated(relationship_id=relationship.id, closed_ids=tuple(closed))

    def reclassify_relationship(self, relationship_id: str, new_sub_type: str | None) -> tuple[str, ...]:
        """Change the sub-type of an active relationship in place. Returns ids it closed.

        Family roles are recomputed from the origin's gender as it is now, not as it
        was when the relationship was created. Other kinds keep their labels.
        """
        now = self._clock()
        with self._repo.transaction() as tx:
            current = self._load(tx, relationship_id)
            ensure_transition(current, LifecycleAction.RECLASSIFY)
            origin = self._require_actor(current.origin_actor_id)
            tx.lock_actor(origin.id)
            # Re-read under the lock; a concurrent end/delete may have won.
            current = self._load(tx, relationship_id)
            ensure_transition(current, LifecycleAction.RECLASSIFY)

            stored_sub_type = _normalize_sub_type(current.relationship_type, new_sub_type)
            closed = enforce_exclusivity(
                tx,
                origin.id,
                current.relationship_type,
                stored_sub_type,
                at=now,
                exclude_relationship_id=current.id,
            )
            if current.relationship_type is RelationshipType.FAMILY:
                roles = resolve_roles(stored_sub_type, origin.gender)
            else:
                roles = RolePair(current.origin_role, current.destination_role)
            attributes = {
                **current.attributes,
                "previous_sub_type": current.sub_type,
                "reclassified_at": now.isoformat(),
            }
            tx.save(
                replace(
                    current,
                    sub_type=stored_sub_type,
                    origin_role=roles.origin_role,
                    destination_role=roles.destination_role,
                    attributes=attributes,
                    updated_at=now,
                )
            )
            verify_exclusivity(tx, origin.id, current.relationship_type, stored_sub_type)

        logger.info(
            "Reclassified relationship %s: %s -> %s",
            relationship_id,
            current.sub_type or "-",
            stored_sub_type or "-",
        )
        return tuple(closed)

    def end_relationship(self, relationship_id: str, end_date: datetime | None = None) -> None:
        """Active -> Ended. end_date defaults to now and may not precede start_date."""
        now = self._clock()
        end = as_utc(end_date) or now
        with self._repo.transaction() as tx:
            current = self._load(tx, relationship_id)
            target = ensure_transition(current, LifecycleAction.END)
            if end < current.start_date:
                raise ValidationError("end_date cannot be earlier than start_date.")
            tx.save(replace(current, end_date=end, updated_at=now))
        logger.info(
            "Relationship %s: %s -> %s at %s",
            relationship_id,
            current.state.value,
            target.value,
            end.isoformat(),
        )

    def soft_delete_relationship(self, relationship_id: str) -> None:
        """Active/Ended -> SoftDeleted. The record stays readable by id for audit."""
        now = self._clock()
        with self._repo.transaction() as tx:
            current = self._load(tx, relationship_id)
            target = ensure_transition(current, LifecycleAction.SOFT_DELETE)
            tx.save(replace(current, deleted_at=now, updated_at=now))
        logger.info("Relationship %s: %s -> %s", relationship_id, current.state.value, target.value)

    def annotate_relationship(
        self,
        relationship_id: str,
        *,
        notes: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Relationship:
        """Replace notes and/or merge attributes. Allowed until the record is soft-deleted."""
        if notes is None and attributes is None:
            raise ValidationError("Nothing to update: pass notes or attributes.")
        now = self._clock()
        with self._repo.transaction() as tx:
            current = self._load(tx, relationship_id)
            ensure_transition(current, LifecycleAction.ANNOTATE)
            updated = replace(
                current,
                notes=current.notes if notes is None else notes,
                attributes={**current.attributes, **(attributes or {})},
                updated_at=now,
            )
            tx.save(updated)
        return updated

    def get_relationship(self, relationship_id: str) -> Relationship:
        relationship = self._repo.get_by_id(relationship_id)
        if relationship is None:
            raise NotFoundError(f"Relationship {relationship_id} not found.")
        return relationship

    def list_relationships_for_actor(
        self,
        actor_id: str,
        only_current: bool = True,
        relationship_type: RelationshipType | str | None = None,
    ) -> list[EnrichedRelationship]:
        """All non-deleted relationships touching the actor, from either side."""
        actor_id = _clean_id(actor_id, "Actor")
        kind = RelationshipType.parse(relationship_type) if relationship_type else None
        rows = self._repo.list_for_actor(
            actor_id, only_current=only_current, relationship_type=kind
        )
        return [EnrichedRelationship.from_row(row, actor_id) for row in rows]
