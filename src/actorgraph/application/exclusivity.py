"""Exclusive roles: close out the current holder before a new one becomes active.

Closing sets end_date (the old link was valid until then); it never soft-deletes.
All functions here run inside the caller's transaction so the close-out and the
write that needed it commit or roll back together. Only family links have
exclusive sub-types; "parent" on a commercial link is a parent company.
"""

import logging
from dataclasses import replace
from datetime import datetime

from actorgraph.application.ports import RelationshipTransaction
from actorgraph.domain import (
    EXCLUSIVE_SUB_TYPES,
    ConflictError,
    FamilySubType,
    RelationshipType,
    ValidationError,
)

logger = logging.getLogger(__name__)


def is_exclusive(relationship_type: RelationshipType, sub_type: str | None) -> bool:
    if relationship_type is not RelationshipType.FAMILY or not sub_type:
        return False
    return FamilySubType.parse(sub_type) in EXCLUSIVE_SUB_TYPES


def close_out(tx, records: list, at: datetime) -> list[str]:
    """End every record at `at`. Returns closed ids.

    Raises ValidationError if `at` precedes a record's start: the successor
    would overlap its predecessor. Works for relationships and assignments
    alike: tx only needs save().
    """
    for record in records:
        if at < record.start_date:
            raise ValidationError(
                f"Start {at.isoformat()} is earlier than the start of current holder "
                f"{record.id} ({record.start_date.isoformat()})."
            )
    closed: list[str] = []
    for record in records:
        tx.save(replace(record, end_date=at, updated_at=at))
        closed.append(record.id)
    return closed


def enforce_exclusivity(
    tx: RelationshipTransaction,
    origin_actor_id: str,
    relationship_type: RelationshipType,
    sub_type: str | None,
    *,
    at: datetime,
    exclude_relationship_id: str | None = None,
) -> list[str]:
    """Close active relationships that would share an exclusive role with the new/edited one."""
    if not is_exclusive(relationship_type, sub_type):
        return []
    matches = tx.find_active(
        origin_actor_id,
        relationship_type,
        sub_type,
        exclude_relationship_id=exclude_relationship_id,
    )
    closed = close_out(tx, matches, at)
    if closed:
        logger.info(
            "Closed %d active %s relationship(s) of actor %s: %s",
            len(closed),
            sub_type,
            origin_actor_id,
            ", ".join(closed),
        )
    return closed


def verify_exclusivity(
    tx: RelationshipTransaction,
    origin_actor_id: str,
    relationship_type: RelationshipType,
    sub_type: str | None,
) -> None:
    """Last check before commit: raise ConflictError if more than one holder is active."""
    if not is_exclusive(relationship_type, sub_type):
        return
    active = tx.find_active(origin_actor_id, relationship_type, sub_type)
    if len(active) > 1:
        raise ConflictError(
            f"Actor {origin_actor_id} would have {len(active)} active {sub_type} relationships."
        )
