"""Actor <-> share assignments: owner, titleholder, beneficiary, intermediary.

Same temporal rules as relationships (end, soft-delete, no reactivation) but the
assignment type is chosen by the caller, not derived. Exclusivity is opt-in per
type through exclusive_types; by default any number of holders may be active.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from actorgraph.application.dto import AssignmentCreated, AssignmentRequest
from actorgraph.application.exclusivity import close_out
from actorgraph.application.ports import (
    ActorDirectory,
    AssignmentRepository,
    AssignmentTransaction,
    ShareDirectory,
)
from actorgraph.domain import (
    Assignment,
    AssignmentModality,
    AssignmentType,
    CommercialPlan,
    ConflictError,
    InvalidStateError,
    LifecycleAction,
    LifecycleState,
    NotFoundError,
    Share,
    ValidationError,
    ensure_transition,
    full_code,
    next_subcode,
    utc_now,
)
from actorgraph.domain.entities import as_utc

logger = logging.getLogger(__name__)


class AssignmentService:
    """Create / end / soft-delete assignments and list them per share or actor."""

    def __init__(
        self,
        repository: AssignmentRepository,
        actors: ActorDirectory,
        shares: ShareDirectory,
        *,
        exclusive_types: Iterable[AssignmentType | str] = (),
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repository
        self._actors = actors
        self._shares = shares
        self._exclusive_types = frozenset(AssignmentType.parse(t) for t in exclusive_types)
        self._clock = clock or utc_now

    @property
    def exclusive_types(self) -> frozenset[AssignmentType]:
        return self._exclusive_types

    def _load(self, tx: AssignmentTransaction, assignment_id: str) -> Assignment:
        assignment = tx.get(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found.")
        return assignment

    def _check_parties(self, share_id: str, actor_id: str) -> Share:
        share = self._shares.get_share(share_id)
        if share is None or share.is_deleted:
            raise NotFoundError(f"Share {share_id} not found.")
        actor = self._actors.get_actor(actor_id)
        if actor is None or actor.is_deleted:
            raise NotFoundError(f"Actor {actor_id} not found.")
        return share

    def _check_parent(self, tx: AssignmentTransaction, request: AssignmentRequest) -> None:
        parent = tx.get(request.parent_assignment_id)
        if parent is None or parent.deleted_at is not None:
            raise NotFoundError(f"Parent assignment {request.parent_assignment_id} not found.")
        if parent.share_id != request.share_id:
            raise ValidationError("Parent assignment belongs to a different share.")
        if parent.state is not LifecycleState.ACTIVE:
            raise InvalidStateError(
                f"Parent assignment {parent.id} is {parent.state.value}; it must be active."
            )

    def _create_in(
        self, tx: AssignmentTransaction, request: AssignmentRequest, now: datetime
    ) -> AssignmentCreated:
        kind = AssignmentType.parse(request.assignment_type)
        modality = AssignmentModality.parse(request.modality)
        plan = CommercialPlan.parse(request.commercial_plan)
        share_id = (request.share_id or "").strip()
        actor_id = (request.actor_id or "").strip()
        if not share_id or not actor_id:
            raise ValidationError("Assignment needs a share and an actor.")
        request = replace(request, share_id=share_id, actor_id=actor_id)
        share = self._check_parties(share_id, actor_id)

        tx.lock_share(share_id)
        if request.parent_assignment_id:
            self._check_parent(tx, request)

        start = as_utc(request.start_date) or now
        closed: list[str] = []
        if kind in self._exclusive_types:
            closed = close_out(tx, tx.find_active(share_id, kind), start)
            if closed:
                logger.info(
                    "Closed %d active %s assignment(s) on share %s", len(closed), kind.value, share_id
                )
        subcode = next_subcode(kind, tx.used_subcodes(share_id))
        assignment = Assignment(
            share_id=share_id,
            actor_id=actor_id,
            assignment_type=kind,
            parent_assignment_id=request.parent_assignment_id or None,
            modality=modality,
            commercial_plan=plan,
            subcode=subcode,
            full_code=full_code(share.code, subcode),
            start_date=start,
            notes=request.notes,
            attributes=dict(request.attributes or {}),
            created_at=now,
            updated_at=now,
        )
        tx.insert(assignment)
        if kind in self._exclusive_types and len(tx.find_active(share_id, kind)) > 1:
            raise ConflictError(f"Share {share_id} would have more than one active {kind.value}.")
        return AssignmentCreated(
            assignment_id=assignment.id,
            closed_ids=tuple(closed),
            full_code=assignment.full_code,
        )

    def create_assignment(
        self,
        share_id: str,
        actor_id: str,
        assignment_type: AssignmentType | str,
        *,
        parent_assignment_id: str | None = None,
        modality: AssignmentModality | str | None = None,
        commercial_plan: CommercialPlan | str | None = None,
        notes: str | None = None,
        attributes: dict[str, Any] | None = None,
        start_date: datetime | None = None,
    ) -> AssignmentCreated:
        request = AssignmentRequest(
            share_id=share_id,
            actor_id=actor_id,
            assignment_type=assignment_type,
            parent_assignment_id=parent_assignment_id,
            modality=modality,
            commercial_plan=commercial_plan,
            notes=notes,
            attributes=attributes,
            start_date=start_date,
        )
        now = self._clock()
        with self._repo.transaction() as tx:
            created = self._create_in(tx, request, now)
        logger.info(
            "Created assignment %s (%s) on share %s", created.assignment_id, created.full_code, share_id
        )
        return created

    def create_assignments_batch(
        self, requests: Iterable[AssignmentRequest]
    ) -> list[AssignmentCreated]:
        """All or nothing: the first failing request rolls back the whole batch."""
        requests = list(requests)
        if not requests:
            return []
        now = self._clock()
        with self._repo.transaction() as tx:
            created = [self._create_in(tx, request, now) for request in requests]
        logger.info("Created %d assignments in batch", len(created))
        return created

    def end_assignment(
        self,
        assignment_id: str,
        end_date: datetime | None = None,
        reason: str | None = None,
    ) -> Assignment:
        """Active -> Ended. A reason is appended to the notes."""
        now = self._clock()
        end = as_utc(end_date) or now
        with self._repo.transaction() as tx:
            current = self._load(tx, assignment_id)
            target = ensure_transition(current, LifecycleAction.END)
            if end < current.start_date:
                raise ValidationError("end_date cannot be earlier than start_date.")
            notes = current.notes
            reason = (reason or "").strip()
            if reason:
                line = f"Ended {end.date().isoformat()}: {reason}"
                notes = f"{notes}\n{line}" if notes else line
            updated = replace(current, end_date=end, notes=notes, updated_at=now)
            tx.save(updated)
        logger.info(
            "Assignment %s: %s -> %s", assignment_id, current.state.value, target.value
        )
        return updated

    def soft_delete_assignment(self, assignment_id: str) -> None:
        now = self._clock()
        with self._repo.transaction() as tx:
            current = self._load(tx, assignment_id)
            target = ensure_transition(current, LifecycleAction.SOFT_DELETE)
            tx.save(replace(current, deleted_at=now, updated_at=now))
        logger.info("Assignment %s: %s -> %s", assignment_id, current.state.value, target.value)

    def get_assignment(self, assignment_id: str) -> Assignment:
        assignment = self._repo.get_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment {assignment_id} not found.")
        return assignment

    def list_assignments_for_share(self, share_id: str, only_current: bool = True) -> list[Assignment]:
        return self._repo.list_for_share(share_id, only_current=only_current)

    def list_assignments_for_actor(self, actor_id: str, only_current: bool = True) -> list[Assignment]:
        return self._repo.list_for_actor(actor_id, only_current=only_current)
