"""Neo4j implementations of the directory and repository ports.

Graph:
(:Actor {id, display_name, gender, actor_type, deleted_at})
(:Share {id, code, deleted_at})
(origin:Actor)-[:RELATED_TO {id, relationship_type, sub_type, roles, dates, ...}]->(destination:Actor)
(actor:Actor)-[:HOLDS {id, assignment_type, modality, subcode, full_code, dates, ...}]->(share:Share)

The relationship record lives on the edge properties. Timestamps are ISO-8601
strings; attributes are JSON strings because properties cannot hold maps.
Writes run in one explicit driver transaction per unit of work; the unit first
MERGEs a lock node for the origin actor (or share), which makes concurrent
units for the same key wait for each other until commit.
"""

import json
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from neo4j.exceptions import ConstraintError, TransientError

from actorgraph.application.dto import RelationshipRow
from actorgraph.domain import (
    Actor,
    ActorType,
    Assignment,
    AssignmentType,
    ConflictError,
    Gender,
    NotFoundError,
    Relationship,
    RelationshipType,
    Share,
    utc_now,
)


def _datetime_to_iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def _iso_to_datetime(s: str | None) -> datetime | None:
    if not s:
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _load_attributes(raw: str | None) -> dict:
    if not raw:
        return {}
    value = json.loads(raw)
    return value if isinstance(value, dict) else {}


@contextmanager
def _write_transaction(driver) -> Iterator[object]:
    """Explicit transaction: commit on normal exit, roll back otherwise.

    Deadlocks and constraint violations mean another unit wrote the same key
    concurrently; they surface as ConflictError.
    """
    with driver.session() as session:
        tx = session.begin_transaction()
        try:
            yield tx
            tx.commit()
        except (TransientError, ConstraintError) as e:
            raise ConflictError(f"Concurrent write rejected by the database: {e.message}") from e
        finally:
            if not tx.closed():
                tx.close()


# --- directory ---

_GET_ACTOR_QUERY = """
MATCH (a:Actor {id: $id})
RETURN a
"""

_UPSERT_ACTOR_QUERY = """
MERGE (a:Actor {id: $id})
SET a.display_name = $display_name,
    a.gender = $gender,
    a.actor_type = $actor_type,
    a.deleted_at = $deleted_at
"""

_GET_SHARE_QUERY = """
MATCH (s:Share {id: $id})
RETURN s
"""

_UPSERT_SHARE_QUERY = """
MERGE (s:Share {id: $id})
SET s.code = $code,
    s.deleted_at = $deleted_at
"""


def _node_to_actor(node) -> Actor:
    try:
        actor_type = ActorType(node.get("actor_type") or ActorType.PERSON.value)
    except ValueError:
        actor_type = ActorType.PERSON
    return Actor(
        id=node["id"],
        display_name=(node.get("display_name") or "").strip(),
        gender=Gender.parse(node.get("gender")),
        actor_type=actor_type,
        deleted_at=_iso_to_datetime(node.get("deleted_at")),
    )


def _node_to_share(node) -> Share:
    return Share(
        id=node["id"],
        code=node.get("code") or "",
        deleted_at=_iso_to_datetime(node.get("deleted_at")),
    )


class Neo4jDirectory:
    """Reads Actor and Share nodes. The upsert methods exist for the owning subsystems and for seeding."""

    def __init__(self, driver: object) -> None:
        self._driver = driver

    def get_actor(self, actor_id: str) -> Actor | None:
        with self._driver.session() as session:
            record = session.run(_GET_ACTOR_QUERY, id=actor_id).single()
        if not record:
            return None
        return _node_to_actor(record["a"])

    def get_share(self, share_id: str) -> Share | None:
        with self._driver.session() as session:
            record = session.run(_GET_SHARE_QUERY, id=share_id).single()
        if not record:
            return None
        return _node_to_share(record["s"])

    def upsert_actor(self, actor: Actor) -> None:
        with self._driver.session() as session:
            session.run(
                _UPSERT_ACTOR_QUERY,
                id=actor.id,
                display_name=actor.display_name,
                gender=actor.gender.value,
                actor_type=actor.actor_type.value,
                deleted_at=_datetime_to_iso(actor.deleted_at),
            ).consume()

    def upsert_share(self, share: Share) -> None:
        with self._driver.session() as session:
            session.run(
                _UPSERT_SHARE_QUERY,
                id=share.id,
                code=share.code,
                deleted_at=_datetime_to_iso(share.deleted_at),
            ).consume()


# --- relationships ---

_LOCK_ACTOR_QUERY = """
MERGE (l:RelationshipLock {actor_id: $actor_id})
SET l.locked_at = $locked_at
"""

_GET_RELATIONSHIP_QUERY = """
MATCH (o:Actor)-[r:RELATED_TO {id: $id}]->(d:Actor)
RETURN r, o.id AS origin_id, d.id AS destination_id
"""

_FIND_ACTIVE_RELATIONSHIPS_QUERY = """
MATCH (o:Actor {id: $origin_id})-[r:RELATED_TO]->(d:Actor)
WHERE r.relationship_type = $relationship_type
  AND (r.sub_type = $sub_type OR (r.sub_type IS NULL AND $sub_type IS NULL))
  AND r.end_date IS NULL
  AND r.deleted_at IS NULL
  AND ($exclude_id IS NULL OR r.id <> $exclude_id)
RETURN r, o.id AS origin_id, d.id AS destination_id
ORDER BY r.start_date
"""

_INSERT_RELATIONSHIP_QUERY = """
MATCH (o:Actor {id: $origin_id}), (d:Actor {id: $destination_id})
CREATE (o)-[r:RELATED_TO]->(d)
SET r = $props
RETURN r.id AS id
"""

_SAVE_RELATIONSHIP_QUERY = """
MATCH (:Actor)-[r:RELATED_TO {id: $id}]->(:Actor)
SET r += $props
RETURN r.id AS id
"""

_LIST_FOR_ACTOR_QUERY = """
MATCH (:Actor {id: $actor_id})-[r:RELATED_TO]-(:Actor)
WITH DISTINCT r
WITH r, startNode(r) AS o, endNode(r) AS d
WHERE r.deleted_at IS NULL
  AND ($only_current = false OR r.end_date IS NULL)
  AND ($relationship_type IS NULL OR r.relationship_type = $relationship_type)
RETURN r, o, d
ORDER BY r.created_at, r.id
"""


def _relationship_props(rel: Relationship) -> dict:
    return {
        "id": rel.id,
        "relationship_type": rel.relationship_type.value,
        "sub_type": rel.sub_type,
        "origin_role": rel.origin_role,
        "destination_role": rel.destination_role,
        "is_bidirectional": rel.is_bidirectional,
        "start_date": _datetime_to_iso(rel.start_date),
        "end_date": _datetime_to_iso(rel.end_date),
        "deleted_at": _datetime_to_iso(rel.deleted_at),
        "notes": rel.notes,
        "attributes": json.dumps(rel.attributes, default=str),
        "created_at": _datetime_to_iso(rel.created_at),
        "updated_at": _datetime_to_iso(rel.updated_at),
    }


def _edge_to_relationship(r, origin_id: str, destination_id: str) -> Relationship:
    return Relationship(
        id=r["id"],
        origin_actor_id=origin_id,
        destination_actor_id=destination_id,
        relationship_type=RelationshipType(r["relationship_type"]),
        sub_type=r.get("sub_type"),
        origin_role=r.get("origin_role") or "",
        destination_role=r.get("destination_role") or "",
        is_bidirectional=r.get("is_bidirectional", True),
        start_date=_iso_to_datetime(r["start_date"]),
        end_date=_iso_to_datetime(r.get("end_date")),
        deleted_at=_iso_to_datetime(r.get("deleted_at")),
        notes=r.get("notes"),
        attributes=_load_attributes(r.get("attributes")),
        created_at=_iso_to_datetime(r["created_at"]),
        updated_at=_iso_to_datetime(r.get("updated_at") or r["created_at"]),
    )


class _Neo4jRelationshipTransaction:
    def __init__(self, tx) -> None:
        self._tx = tx

    def lock_actor(self, actor_id: str) -> None:
        self._tx.run(
            _LOCK_ACTOR_QUERY, actor_id=actor_id, locked_at=_datetime_to_iso(utc_now())
        ).consume()

    def get(self, relationship_id: str) -> Relationship | None:
        record = self._tx.run(_GET_RELATIONSHIP_QUERY, id=relationship_id).single()
        if not record:
            return None
        return _edge_to_relationship(record["r"], record["origin_id"], record["destination_id"])

    def find_active(
        self,
        origin_actor_id: str,
        relationship_type: RelationshipType,
        sub_type: str | None,
        *,
        exclude_relationship_id: str | None = None,
    ) -> list[Relationship]:
        result = self._tx.run(
            _FIND_ACTIVE_RELATIONSHIPS_QUERY,
            origin_id=origin_actor_id,
            relationship_type=relationship_type.value,
            sub_type=sub_type,
            exclude_id=exclude_relationship_id,
        )
        return [
            _edge_to_relationship(rec["r"], rec["origin_id"], rec["destination_id"])
            for rec in result
        ]

    def insert(self, relationship: Relationship) -> None:
        record = self._tx.run(
            _INSERT_RELATIONSHIP_QUERY,
            origin_id=relationship.origin_actor_id,
            destination_id=relationship.destination_actor_id,
            props=_relationship_props(relationship),
        ).single()
        if not record:
            raise NotFoundError(
                f"Actors {relationship.origin_actor_id} / {relationship.destination_actor_id} not found."
            )

    def save(self, relationship: Relationship) -> None:
        record = self._tx.run(
            _SAVE_RELATIONSHIP_QUERY,
            id=relationship.id,
            props=_relationship_props(relationship),
        ).single()
        if not record:
            raise NotFoundError(f"Relationship {relationship.id} not found.")


class Neo4jRelationshipRepository:
    """Stores relationships as RELATED_TO edges between Actor nodes."""

    def __init__(self, driver: object) -> None:
        self._driver = driver

    @contextmanager
    def transaction(self) -> Iterator[_Neo4jRelationshipTransaction]:
        with _write_transaction(self._driver) as tx:
            yield _Neo4jRelationshipTransaction(tx)

    def get_by_id(self, relationship_id: str) -> Relationship | None:
        with self._driver.session() as session:
            record = session.run(_GET_RELATIONSHIP_QUERY, id=relationship_id).single()
        if not record:
            return None
        return _edge_to_relationship(record["r"], record["origin_id"], record["destination_id"])

    def list_for_actor(
        self,
        actor_id: str,
        *,
        only_current: bool = True,
        relationship_type: RelationshipType | None = None,
    ) -> list[RelationshipRow]:
        with self._driver.session() as session:
            result = session.run(
                _LIST_FOR_ACTOR_QUERY,
                actor_id=actor_id,
                only_current=only_current,
                relationship_type=relationship_type.value if relationship_type else None,
            )
            return [
                RelationshipRow(
                    relationship=_edge_to_relationship(rec["r"], rec["o"]["id"], rec["d"]["id"]),
                    origin=_node_to_actor(rec["o"]),
                    destination=_node_to_actor(rec["d"]),
                )
                for rec in result
            ]


# --- assignments ---

_LOCK_SHARE_QUERY = """
MERGE (l:AssignmentLock {share_id: $share_id})
SET l.locked_at = $locked_at
"""

_GET_ASSIGNMENT_QUERY = """
MATCH (a:Actor)-[h:HOLDS {id: $id}]->(s:Share)
RETURN h, a.id AS actor_id, s.id AS share_id
"""

_FIND_ACTIVE_ASSIGNMENTS_QUERY = """
MATCH (a:Actor)-[h:HOLDS]->(s:Share {id: $share_id})
WHERE h.assignment_type = $assignment_type
  AND h.end_date IS NULL
  AND h.deleted_at IS NULL
  AND ($exclude_id IS NULL OR h.id <> $exclude_id)
RETURN h, a.id AS actor_id, s.id AS share_id
ORDER BY h.start_date
"""

_USED_SUBCODES_QUERY = """
MATCH (:Actor)-[h:HOLDS]->(:Share {id: $share_id})
RETURN h.subcode AS subcode
"""

_INSERT_ASSIGNMENT_QUERY = """
MATCH (a:Actor {id: $actor_id}), (s:Share {id: $share_id})
CREATE (a)-[h:HOLDS]->(s)
SET h = $props
RETURN h.id AS id
"""

_SAVE_ASSIGNMENT_QUERY = """
MATCH (:Actor)-[h:HOLDS {id: $id}]->(:Share)
SET h += $props
RETURN h.id AS id
"""

_LIST_FOR_SHARE_QUERY = """
MATCH (a:Actor)-[h:HOLDS]->(s:Share {id: $share_id})
WHERE h.deleted_at IS NULL
  AND ($only_current = false OR h.end_date IS NULL)
RETURN h, a.id AS actor_id, s.id AS share_id
ORDER BY h.start_date, h.created_at
"""

_LIST_ASSIGNMENTS_FOR_ACTOR_QUERY = """
MATCH (a:Actor {id: $actor_id})-[h:HOLDS]->(s:Share)
WHERE h.deleted_at IS NULL
  AND ($only_current = false OR h.end_date IS NULL)
RETURN h, a.id AS actor_id, s.id AS share_id
ORDER BY h.start_date, h.created_at
"""


def _assignment_props(assignment: Assignment) -> dict:
    return {
        "id": assignment.id,
        "assignment_type": assignment.assignment_type.value,
        "parent_assignment_id": assignment.parent_assignment_id,
        "modality": assignment.modality.value,
        "commercial_plan": assignment.commercial_plan.value,
        "subcode": assignment.subcode,
        "full_code": assignment.full_code,
        "start_date": _datetime_to_iso(assignment.start_date),
        "end_date": _datetime_to_iso(assignment.end_date),
        "deleted_at": _datetime_to_iso(assignment.deleted_at),
        "notes": assignment.notes,
        "attributes": json.dumps(assignment.attributes, default=str),
        "created_at": _datetime_to_iso(assignment.created_at),
        "updated_at": _datetime_to_iso(assignment.updated_at),
    }


def _record_to_assignment(record) -> Assignment:
    h = record["h"]
    return Assignment(
        id=h["id"],
        share_id=record["share_id"],
        actor_id=record["actor_id"],
        assignment_type=AssignmentType(h["assignment_type"]),
        parent_assignment_id=h.get("parent_assignment_id"),
        modality=h.get("modality"),
        commercial_plan=h.get("commercial_plan"),
        subcode=h.get("subcode") or "",
        full_code=h.get("full_code") or "",
        start_date=_iso_to_datetime(h["start_date"]),
        end_date=_iso_to_datetime(h.get("end_date")),
        deleted_at=_iso_to_datetime(h.get("deleted_at")),
        notes=h.get("notes"),
        attributes=_load_attributes(h.get("attributes")),
        created_at=_iso_to_datetime(h["created_at"]),
        updated_at=_iso_to_datetime(h.get("updated_at") or h["created_at"]),
    )


class _Neo4jAssignmentTransaction:
    def __init__(self, tx) -> None:
        self._tx = tx

    def lock_share(self, share_id: str) -> None:
        self._tx.run(
            _LOCK_SHARE_QUERY, share_id=share_id, locked_at=_datetime_to_iso(utc_now())
        ).consume()

    def get(self, assignment_id: str) -> Assignment | None:
        record = self._tx.run(_GET_ASSIGNMENT_QUERY, id=assignment_id).single()
        return _record_to_assignment(record) if record else None

    def find_active(
        self,
        share_id: str,
        assignment_type: AssignmentType,
        *,
        exclude_assignment_id: str | None = None,
    ) -> list[Assignment]:
        result = self._tx.run(
            _FIND_ACTIVE_ASSIGNMENTS_QUERY,
            share_id=share_id,
            assignment_type=assignment_type.value,
            exclude_id=exclude_assignment_id,
        )
        return [_record_to_assignment(rec) for rec in result]

    def used_subcodes(self, share_id: str) -> list[str]:
        result = self._tx.run(_USED_SUBCODES_QUERY, share_id=share_id)
        return [rec["subcode"] for rec in result if rec["subcode"]]

    def insert(self, assignment: Assignment) -> None:
        record = self._tx.run(
            _INSERT_ASSIGNMENT_QUERY,
            actor_id=assignment.actor_id,
            share_id=assignment.share_id,
            props=_assignment_props(assignment),
        ).single()
        if not record:
            raise NotFoundError(
                f"Actor {assignment.actor_id} or share {assignment.share_id} not found."
            )

    def save(self, assignment: Assignment) -> None:
        record = self._tx.run(
            _SAVE_ASSIGNMENT_QUERY, id=assignment.id, props=_assignment_props(assignment)
        ).single()
        if not record:
            raise NotFoundError(f"Assignment {assignment.id} not found.")


class Neo4jAssignmentRepository:
    """Stores assignments as HOLDS edges from Actor to Share."""

    def __init__(self, driver: object) -> None:
        self._driver = driver

    @contextmanager
    def transaction(self) -> Iterator[_Neo4jAssignmentTransaction]:
        with _write_transaction(self._driver) as tx:
            yield _Neo4jAssignmentTransaction(tx)

    def get_by_id(self, assignment_id: str) -> Assignment | None:
        with self._driver.session() as session:
            record = session.run(_GET_ASSIGNMENT_QUERY, id=assignment_id).single()
        return _record_to_assignment(record) if record else None

    def list_for_share(self, share_id: str, *, only_current: bool = True) -> list[Assignment]:
        with self._driver.session() as session:
            result = session.run(
                _LIST_FOR_SHARE_QUERY, share_id=share_id, only_current=only_current
            )
            return [_record_to_assignment(rec) for rec in result]

    def list_for_actor(self, actor_id: str, *, only_current: bool = True) -> list[Assignment]:
        with self._driver.session() as session:
            result = session.run(
                _LIST_ASSIGNMENTS_FOR_ACTOR_QUERY, actor_id=actor_id, only_current=only_current
            )
            return [_record_to_assignment(rec) for rec in result]
