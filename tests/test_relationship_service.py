"""Unit tests for RelationshipService. In-memory directory and repository only."""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from actorgraph.application import RelationshipService
from actorgraph.domain import (
    Actor,
    ActorType,
    Gender,
    InvalidStateError,
    LifecycleState,
    NotFoundError,
    ValidationError,
)
from actorgraph.infrastructure import InMemoryDirectory, InMemoryRelationshipRepository

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class _CountingRepository(InMemoryRelationshipRepository):
    """Counts opened transactions, i.e. attempts to write."""

    def __init__(self, directory: InMemoryDirectory) -> None:
        super().__init__(directory)
        self.transactions = 0

    def transaction(self):
        self.transactions += 1
        return super().transaction()


def _setup():
    directory = InMemoryDirectory()
    directory.add_actor(Actor(id="A", display_name="Andrés", gender=Gender.MALE))
    directory.add_actor(Actor(id="B", display_name="Beatriz", gender=Gender.FEMALE))
    directory.add_actor(Actor(id="C", display_name="Carla", gender=Gender.FEMALE))
    directory.add_actor(Actor(id="D", display_name="Diego", gender=Gender.MALE))
    directory.add_actor(Actor(id="ACME", display_name="Acme S.A.", actor_type=ActorType.COMPANY))
    repo = _CountingRepository(directory)
    clock = _Clock(T0)
    service = RelationshipService(repo, directory, clock=clock)
    return service, repo, directory, clock


def test_create_returns_id_and_stores_active_record() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "spouse", "Casados en 2010")
    rel = service.get_relationship(created.relationship_id)
    assert rel.state is LifecycleState.ACTIVE
    assert rel.start_date == T0
    assert rel.end_date is None
    assert rel.notes == "Casados en 2010"
    assert created.closed_ids == ()


def test_second_spouse_closes_the_first() -> None:
    """A->B spouse, then A->C spouse: A->B ends, A->C is the only current link of A."""
    service, _, _, clock = _setup()
    first = service.create_relationship("A", "B", "family", "spouse")
    clock.advance(days=30)
    second = service.create_relationship("A", "C", "family", "spouse")

    assert second.closed_ids == (first.relationship_id,)
    old = service.get_relationship(first.relationship_id)
    new = service.get_relationship(second.relationship_id)
    assert old.end_date is not None
    assert old.end_date <= new.start_date
    assert new.is_current

    current = service.list_relationships_for_actor("A", only_current=True)
    assert [v.relationship_id for v in current] == [second.relationship_id]
    assert current[0].counterpart.actor_id == "C"


def test_exclusivity_holds_over_many_creates() -> None:
    service, _, _, clock = _setup()
    ids = []
    for dest in ("B", "C", "D", "B"):
        ids.append(service.create_relationship("A", dest, "family", "spouse").relationship_id)
        clock.advance(hours=1)
    active = [service.get_relationship(i) for i in ids if service.get_relationship(i).is_current]
    assert [r.id for r in active] == [ids[-1]]
    last_start = service.get_relationship(ids[-1]).start_date
    for rel_id in ids[:-1]:
        assert service.get_relationship(rel_id).end_date <= last_start


def test_non_exclusive_sub_types_accumulate() -> None:
    service, _, _, _ = _setup()
    service.create_relationship("A", "B", "family", "child")
    service.create_relationship("A", "C", "family", "child")
    service.create_relationship("A", "D", "family", "sibling")
    assert len(service.list_relationships_for_actor("A")) == 3


def test_exclusivity_is_per_sub_type_and_origin() -> None:
    service, _, _, _ = _setup()
    father = service.create_relationship("A", "D", "family", "father")
    mother = service.create_relationship("A", "C", "family", "mother")
    other_origin = service.create_relationship("B", "D", "family", "father")
    assert mother.closed_ids == ()
    assert other_origin.closed_ids == ()
    assert service.get_relationship(father.relationship_id).is_current


def test_child_roles_follow_origin_gender() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "D", "family", "child")
    rel = service.get_relationship(created.relationship_id)
    assert rel.origin_role == "father"
    assert rel.destination_role == "child"

    created = service.create_relationship("B", "D", "family", "child")
    rel = service.get_relationship(created.relationship_id)
    assert rel.origin_role == "mother"


def test_unknown_family_sub_type_is_stored_as_other() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "godmother")
    rel = service.get_relationship(created.relationship_id)
    assert rel.sub_type == "other"
    assert (rel.origin_role, rel.destination_role) == ("other", "other")


def test_self_link_rejected_before_storage() -> None:
    service, repo, _, _ = _setup()
    with pytest.raises(ValidationError):
        service.create_relationship("A", "A", "commercial", None)
    assert repo.transactions == 0
    assert service.list_relationships_for_actor("A", only_current=False) == []


def test_unknown_relationship_type_rejected() -> None:
    service, repo, _, _ = _setup()
    with pytest.raises(ValidationError, match="relationship type"):
        service.create_relationship("A", "B", "friendship", None)
    assert repo.transactions == 0


def test_missing_or_deleted_actor_not_found() -> None:
    service, _, directory, _ = _setup()
    with pytest.raises(NotFoundError):
        service.create_relationship("A", "ghost", "family", "sibling")
    directory.add_actor(Actor(id="E", display_name="Eva", deleted_at=T0))
    with pytest.raises(NotFoundError):
        service.create_relationship("E", "A", "family", "sibling")


def test_failed_insert_rolls_back_close_out() -> None:
    service, _, _, _ = _setup()
    first = service.create_relationship("A", "B", "family", "spouse")
    with pytest.raises(ValidationError):
        service.create_relationship("A", "C", "family", "spouse", notes="x" * 5000)
    assert service.get_relationship(first.relationship_id).is_current
    assert len(service.list_relationships_for_actor("A")) == 1


def test_reclassify_sibling_to_spouse_closes_existing_spouse() -> None:
    service, _, _, clock = _setup()
    spouse = service.create_relationship("A", "B", "family", "spouse")
    sibling = service.create_relationship("A", "C", "family", "sibling")
    clock.advance(days=1)

    closed = service.reclassify_relationship(sibling.relationship_id, "spouse")

    assert closed == (spouse.relationship_id,)
    assert service.get_relationship(spouse.relationship_id).end_date == clock.now
    rel = service.get_relationship(sibling.relationship_id)
    assert rel.sub_type == "spouse"
    assert (rel.origin_role, rel.destination_role) == ("spouse", "spouse")
    assert rel.start_date == T0
    assert rel.attributes["previous_sub_type"] == "sibling"
    current_spouses = [
        v for v in service.list_relationships_for_actor("A") if v.sub_type == "spouse"
    ]
    assert [v.relationship_id for v in current_spouses] == [sibling.relationship_id]


def test_reclassify_in_place_does_not_close_itself() -> None:
    service, _, _, _ = _setup()
    spouse = service.create_relationship("A", "B", "family", "spouse")
    assert service.reclassify_relationship(spouse.relationship_id, "spouse") == ()
    assert service.get_relationship(spouse.relationship_id).is_current


def test_reclassify_uses_current_origin_gender() -> None:
    service, _, directory, _ = _setup()
    created = service.create_relationship("A", "D", "family", "sibling")
    directory.add_actor(Actor(id="A", display_name="Andrea", gender=Gender.FEMALE))
    service.reclassify_relationship(created.relationship_id, "child")
    rel = service.get_relationship(created.relationship_id)
    assert rel.origin_role == "mother"


def test_stored_roles_do_not_change_when_actor_changes() -> None:
    service, _, directory, _ = _setup()
    created = service.create_relationship("A", "D", "family", "child")
    directory.add_actor(Actor(id="A", display_name="Andrea", gender=Gender.FEMALE))
    assert service.get_relationship(created.relationship_id).origin_role == "father"


def test_reclassify_ended_relationship_fails() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "sibling")
    service.end_relationship(created.relationship_id)
    with pytest.raises(InvalidStateError):
        service.reclassify_relationship(created.relationship_id, "spouse")


def test_end_twice_fails_and_keeps_first_end_date() -> None:
    service, _, _, clock = _setup()
    created = service.create_relationship("A", "B", "commercial", None)
    clock.advance(days=10)
    service.end_relationship(created.relationship_id)
    first_end = service.get_relationship(created.relationship_id).end_date
    clock.advance(days=10)
    with pytest.raises(InvalidStateError):
        service.end_relationship(created.relationship_id)
    assert service.get_relationship(created.relationship_id).end_date == first_end


def test_end_before_start_rejected() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "employment", None)
    with pytest.raises(ValidationError):
        service.end_relationship(created.relationship_id, T0 - timedelta(days=1))
    assert service.get_relationship(created.relationship_id).is_current


def test_end_with_explicit_date() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "ACME", "employment", None)
    end = T0 + timedelta(days=90)
    service.end_relationship(created.relationship_id, end)
    rel = service.get_relationship(created.relationship_id)
    assert rel.end_date == end
    assert rel.state is LifecycleState.ENDED


def test_lifecycle_transitions_are_logged(caplog) -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "sibling")
    with caplog.at_level("INFO", logger="actorgraph.application.relationship_service"):
        service.end_relationship(created.relationship_id)
        service.soft_delete_relationship(created.relationship_id)
    assert "active -> ended" in caplog.text
    assert "ended -> soft_deleted" in caplog.text


def test_soft_delete_is_terminal() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "sibling")
    service.soft_delete_relationship(created.relationship_id)
    with pytest.raises(InvalidStateError):
        service.reclassify_relationship(created.relationship_id, "spouse")
    with pytest.raises(InvalidStateError):
        service.end_relationship(created.relationship_id)
    with pytest.raises(InvalidStateError):
        service.soft_delete_relationship(created.relationship_id)


def test_soft_delete_ended_relationship() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "referral", None)
    service.end_relationship(created.relationship_id)
    service.soft_delete_relationship(created.relationship_id)
    assert service.get_relationship(created.relationship_id).state is LifecycleState.SOFT_DELETED


def test_soft_deleted_hidden_from_lists_but_readable_by_id() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "sibling")
    service.soft_delete_relationship(created.relationship_id)
    for actor_id in ("A", "B"):
        assert service.list_relationships_for_actor(actor_id, only_current=False) == []
    rel = service.get_relationship(created.relationship_id)
    assert rel.deleted_at is not None
    assert rel.is_current is False


def test_unknown_relationship_id_not_found() -> None:
    service, _, _, _ = _setup()
    with pytest.raises(NotFoundError):
        service.get_relationship("nope")
    with pytest.raises(NotFoundError):
        service.end_relationship("nope")
    with pytest.raises(NotFoundError):
        service.reclassify_relationship("nope", "spouse")
    with pytest.raises(NotFoundError):
        service.soft_delete_relationship("nope")


def test_list_is_bidirectional_with_both_parties() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "D", "family", "child")
    service.create_relationship("B", "C", "family", "sibling")

    from_parent = service.list_relationships_for_actor("A")
    from_child = service.list_relationships_for_actor("D")
    assert [v.relationship_id for v in from_parent] == [created.relationship_id]
    assert [v.relationship_id for v in from_child] == [created.relationship_id]

    view = from_child[0]
    assert view.origin.display_name == "Andrés"
    assert view.destination.display_name == "Diego"
    assert view.viewer_is_origin is False
    assert view.counterpart.actor_id == "A"
    assert view.counterpart_role == "father"
    assert view.viewer_role == "child"
    assert from_parent[0].counterpart_role == "child"


def test_list_only_current_and_history() -> None:
    service, _, _, _ = _setup()
    ended = service.create_relationship("A", "B", "commercial", None)
    service.end_relationship(ended.relationship_id)
    active = service.create_relationship("A", "C", "commercial", None)

    current = service.list_relationships_for_actor("A")
    history = service.list_relationships_for_actor("A", only_current=False)
    assert [v.relationship_id for v in current] == [active.relationship_id]
    assert {v.relationship_id for v in history} == {ended.relationship_id, active.relationship_id}
    assert {v.relationship_id: v.is_current for v in history} == {
        ended.relationship_id: False,
        active.relationship_id: True,
    }


def test_list_filters_by_relationship_type() -> None:
    service, _, _, _ = _setup()
    service.create_relationship("A", "B", "family", "spouse")
    service.create_relationship("A", "ACME", "employment", None)
    family = service.list_relationships_for_actor("A", relationship_type="family")
    assert [v.relationship_type for v in family] == ["family"]


def test_list_marks_deleted_counterpart() -> None:
    service, _, directory, _ = _setup()
    service.create_relationship("A", "B", "family", "sibling")
    directory.add_actor(Actor(id="B", display_name="Beatriz", deleted_at=T0))
    view = service.list_relationships_for_actor("A")[0]
    assert view.counterpart.is_deleted is True


def test_annotate_updates_notes_and_merges_attributes() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship(
        "A", "ACME", "commercial", "supplier", attributes={"contract": "C-1"}
    )
    updated = service.annotate_relationship(
        created.relationship_id, notes="Renewed", attributes={"tier": "gold"}
    )
    assert updated.notes == "Renewed"
    assert updated.attributes == {"contract": "C-1", "tier": "gold"}
    assert updated.sub_type == "supplier"


def test_annotate_requires_something_and_live_record() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship("A", "B", "family", "sibling")
    with pytest.raises(ValidationError):
        service.annotate_relationship(created.relationship_id)
    service.soft_delete_relationship(created.relationship_id)
    with pytest.raises(InvalidStateError):
        service.annotate_relationship(created.relationship_id, notes="late")


def test_backdated_create_before_current_holder_started_is_rejected() -> None:
    service, _, _, clock = _setup()
    first = service.create_relationship("A", "B", "family", "spouse")
    clock.advance(days=5)
    with pytest.raises(ValidationError, match="earlier than the start"):
        service.create_relationship(
            "A", "C", "family", "spouse", start_date=T0 - timedelta(days=5)
        )
    old = service.get_relationship(first.relationship_id)
    assert old.is_current
    assert [v.relationship_id for v in service.list_relationships_for_actor("A")] == [
        first.relationship_id
    ]


def test_backdated_create_after_current_holder_started_ends_it_at_new_start() -> None:
    service, _, _, clock = _setup()
    first = service.create_relationship("A", "B", "family", "spouse")
    clock.advance(days=30)
    start = T0 + timedelta(days=10)
    second = service.create_relationship("A", "C", "family", "spouse", start_date=start)
    old = service.get_relationship(first.relationship_id)
    new = service.get_relationship(second.relationship_id)
    assert old.end_date == start
    assert old.end_date <= new.start_date


def test_non_family_parent_is_not_exclusive() -> None:
    service, _, directory, _ = _setup()
    directory.add_actor(Actor(id="HOLD", display_name="Holding S.A.", actor_type=ActorType.COMPANY))
    first = service.create_relationship("ACME", "HOLD", "commercial", "parent")
    second = service.create_relationship("ACME", "B", "commercial", "parent")
    assert second.closed_ids == ()
    assert service.get_relationship(first.relationship_id).is_current


def test_non_family_roles_come_from_caller() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship(
        "A",
        "B",
        "employment",
        None,
        origin_role="Jefe Directo",
        destination_role="Analista",
    )
    rel = service.get_relationship(created.relationship_id)
    assert (rel.origin_role, rel.destination_role) == ("Jefe Directo", "Analista")

    created = service.create_relationship("A", "ACME", "commercial", "parent")
    rel = service.get_relationship(created.relationship_id)
    assert (rel.origin_role, rel.destination_role) == ("other", "other")


def test_family_roles_cannot_be_supplied() -> None:
    service, repo, _, _ = _setup()
    with pytest.raises(ValidationError, match="derived"):
        service.create_relationship("A", "B", "family", "spouse", origin_role="wife")
    assert repo.transactions == 0


def test_reclassify_non_family_keeps_caller_roles() -> None:
    service, _, _, _ = _setup()
    created = service.create_relationship(
        "A", "ACME", "commercial", "supplier", origin_role="client", destination_role="supplier"
    )
    assert service.reclassify_relationship(created.relationship_id, "parent") == ()
    rel = service.get_relationship(created.relationship_id)
    assert rel.sub_type == "parent"
    assert (rel.origin_role, rel.destination_role) == ("client", "supplier")


def test_concurrent_spouse_creates_leave_one_active() -> None:
    service, _, _, _ = _setup()
    barrier = threading.Barrier(8)
    errors: list[Exception] = []

    def set_spouse(destination: str) -> None:
        barrier.wait()
        try:
            service.create_relationship("A", destination, "family", "spouse")
        except Exception as e:
            errors.append(e)

    threads = [
        threading.Thread(target=set_spouse, args=(dest,)) for dest in ("B", "C", "D") * 2 + ("B", "C")
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    history = service.list_relationships_for_actor("A", only_current=False)
    assert len(history) == 8
    assert len([v for v in history if v.is_current]) == 1
