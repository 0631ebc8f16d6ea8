"""
FastAPI backend: REST API over the relationship and assignment engines.
Run with uvicorn: uvicorn api.main:app --reload
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root (when run from repo root or from Docker)
for path in (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path.cwd() / ".env",
):
    if path.exists():
        load_dotenv(path)
        break

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from neo4j import GraphDatabase
from pydantic import BaseModel, Field

from actorgraph.application import (
    AssignmentRequest,
    AssignmentService,
    EnrichedRelationship,
    PartySummary,
    RelationshipService,
)
from actorgraph.domain import (
    ActorGraphError,
    Assignment,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    Relationship,
    ValidationError,
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

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)

STORAGE_ENV = "ACTORGRAPH_STORAGE"
EXCLUSIVE_ASSIGNMENT_TYPES_ENV = "ACTORGRAPH_EXCLUSIVE_ASSIGNMENT_TYPES"


def _get_driver():
    uri = os.environ.get("NEO4J_URI", "bolt://localhost:7687").strip()
    user = os.environ.get("NEO4J_USER", "neo4j").strip()
    password = os.environ.get("NEO4J_PASSWORD", "password").strip()
    return GraphDatabase.driver(uri, auth=(user, password))


def _storage_backend() -> str:
    return os.environ.get(STORAGE_ENV, "neo4j").strip().lower() or "neo4j"


def _exclusive_assignment_types() -> list[str]:
    raw = os.environ.get(EXCLUSIVE_ASSIGNMENT_TYPES_ENV, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class Services:
    relationships: RelationshipService
    assignments: AssignmentService
    directory: InMemoryDirectory | Neo4jDirectory
    driver: object | None = None


def build_services(backend: str | None = None) -> Services:
    """Wire services for the configured storage ("neo4j" or "memory")."""
    backend = backend or _storage_backend()
    exclusive = _exclusive_assignment_types()
    if backend == "memory":
        directory = InMemoryDirectory()
        return Services(
            relationships=RelationshipService(
                InMemoryRelationshipRepository(directory), directory
            ),
            assignments=AssignmentService(
                InMemoryAssignmentRepository(),
                directory,
                directory,
                exclusive_types=exclusive,
            ),
            directory=directory,
        )
    if backend != "neo4j":
        raise ValueError(f"Unsupported storage backend: {backend!r}")
    driver = _get_driver()
    ensure_schema(driver)
    directory = Neo4jDirectory(driver)
    return Services(
        relationships=RelationshipService(Neo4jRelationshipRepository(driver), directory),
        assignments=AssignmentService(
            Neo4jAssignmentRepository(driver),
            directory,
            directory,
            exclusive_types=exclusive,
        ),
        directory=directory,
        driver=driver,
    )


def get_services(app: FastAPI) -> Services:
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()
    return app.state.services


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.services = None
    logger.info("Storage backend: %s", _storage_backend())
    try:
        app.state.services = build_services()
        yield
    finally:
        services = getattr(app.state, "services", None)
        if services is not None and services.driver is not None:
            services.driver.close()


app = FastAPI(title="Actorgraph API", lifespan=lifespan)

_STATUS_BY_ERROR: dict[type[ActorGraphError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    InvalidStateError: 409,
    ConflictError: 409,
}


@app.exception_handler(ActorGraphError)
async def actorgraph_error_handler(request: Request, exc: ActorGraphError):
    status_code = 400
    for error_type, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            status_code = code
            break
    logger.warning(
        "%s %s rejected (%s): %s", request.method, request.url.path, type(exc).__name__, exc
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# --- REST: health ---


@app.get("/health")
def health():
    return {"status": "ok"}


# --- REST: models ---


class CreateRelationshipBody(BaseModel):
    origin_actor_id: str
    destination_actor_id: str
    relationship_type: str
    sub_type: str | None = None
    notes: str | None = None
    attributes: dict[str, Any] | None = None
    start_date: datetime | None = None
    is_bidirectional: bool = True
    origin_role: str | None = None
    destination_role: str | None = None


class ReclassifyBody(BaseModel):
    sub_type: str | None


class AnnotateBody(BaseModel):
    notes: str | None = None
    attributes: dict[str, Any] | None = None


class EndBody(BaseModel):
    end_date: datetime | None = None
    reason: str | None = None


class RelationshipItem(BaseModel):
    relationship_id: str
    origin_actor_id: str
    destination_actor_id: str
    relationship_type: str
    sub_type: str | None = None
    origin_role: str
    destination_role: str
    state: str
    is_current: bool
    is_bidirectional: bool
    start_date: datetime
    end_date: datetime | None = None
    deleted_at: datetime | None = None
    notes: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class PartyItem(BaseModel):
    actor_id: str
    display_name: str
    gender: str
    actor_type: str
    is_deleted: bool


class EnrichedRelationshipItem(BaseModel):
    relationship_id: str
    relationship_type: str
    sub_type: str | None = None
    origin: PartyItem
    destination: PartyItem
    origin_role: str
    destination_role: str
    counterpart: PartyItem
    counterpart_role: str
    start_date: datetime
    end_date: datetime | None = None
    is_current: bool
    is_bidirectional: bool
    notes: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class CreateAssignmentBody(BaseModel):
    share_id: str
    actor_id: str
    assignment_type: str
    parent_assignment_id: str | None = None
    modality: str | None = None
    commercial_plan: str | None = None
    notes: str | None = None
    attributes: dict[str, Any] | None = None
    start_date: datetime | None = None

    def to_request(self) -> AssignmentRequest:
        return AssignmentRequest(
            share_id=self.share_id,
            actor_id=self.actor_id,
            assignment_type=self.assignment_type,
            parent_assignment_id=self.parent_assignment_id,
            modality=self.modality,
            commercial_plan=self.commercial_plan,
            notes=self.notes,
            attributes=self.attributes,
            start_date=self.start_date,
        )


class AssignmentItem(BaseModel):
    assignment_id: str
    share_id: str
    actor_id: str
    assignment_type: str
    parent_assignment_id: str | None = None
    modality: str
    commercial_plan: str
    subcode: str
    full_code: str
    state: str
    is_current: bool
    start_date: datetime
    end_date: datetime | None = None
    deleted_at: datetime | None = None
    notes: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


def _relationship_item(rel: Relationship) -> RelationshipItem:
    return RelationshipItem(
        relationship_id=rel.id,
        origin_actor_id=rel.origin_actor_id,
        destination_actor_id=rel.destination_actor_id,
        relationship_type=rel.relationship_type.value,
        sub_type=rel.sub_type,
        origin_role=rel.origin_role,
        destination_role=rel.destination_role,
        state=rel.state.value,
        is_current=rel.is_current,
        is_bidirectional=rel.is_bidirectional,
        start_date=rel.start_date,
        end_date=rel.end_date,
        deleted_at=rel.deleted_at,
        notes=rel.notes,
        attributes=rel.attributes,
    )


def _party_item(party: PartySummary) -> PartyItem:
    return PartyItem(
        actor_id=party.actor_id,
        display_name=party.display_name,
        gender=party.gender.value,
        actor_type=party.actor_type.value,
        is_deleted=party.is_deleted,
    )


def _enriched_item(view: EnrichedRelationship) -> EnrichedRelationshipItem:
    return EnrichedRelationshipItem(
        relationship_id=view.relationship_id,
        relationship_type=view.relationship_type,
        sub_type=view.sub_type,
        origin=_party_item(view.origin),
        destination=_party_item(view.destination),
        origin_role=view.origin_role,
        destination_role=view.destination_role,
        counterpart=_party_item(view.counterpart),
        counterpart_role=view.counterpart_role,
        start_date=view.start_date,
        end_date=view.end_date,
        is_current=view.is_current,
        is_bidirectional=view.is_bidirectional,
        notes=view.notes,
        attributes=view.attributes,
    )


def _assignment_item(assignment: Assignment) -> AssignmentItem:
    return AssignmentItem(
        assignment_id=assignment.id,
        share_id=assignment.share_id,
        actor_id=assignment.actor_id,
        assignment_type=assignment.assignment_type.value,
        parent_assignment_id=assignment.parent_assignment_id,
        modality=assignment.modality.value,
        commercial_plan=assignment.commercial_plan.value,
        subcode=assignment.subcode,
        full_code=assignment.full_code,
        state=assignment.state.value,
        is_current=assignment.is_current,
        start_date=assignment.start_date,
        end_date=assignment.end_date,
        deleted_at=assignment.deleted_at,
        notes=assignment.notes,
        attributes=assignment.attributes,
    )


# --- REST: relationships ---


@app.post("/relationships")
def create_relationship(body: CreateRelationshipBody, request: Request):
    service = get_services(request.app).relationships
    created = service.create_relationship(
        body.origin_actor_id,
        body.destination_actor_id,
        body.relationship_type,
        body.sub_type,
        body.notes,
        attributes=body.attributes,
        start_date=body.start_date,
        is_bidirectional=body.is_bidirectional,
        origin_role=body.origin_role,
        destination_role=body.destination_role,
    )
    return JSONResponse(
        content={
            "relationship_id": created.relationship_id,
            "closed_ids": list(created.closed_ids),
        },
        status_code=201,
    )


@app.get("/relationships/{relationship_id}")
def get_relationship(relationship_id: str, request: Request) -> RelationshipItem:
    service = get_services(request.app).relationships
    return _relationship_item(service.get_relationship(relationship_id))


@app.patch("/relationships/{relationship_id}/sub-type")
def reclassify_relationship(relationship_id: str, body: ReclassifyBody, request: Request):
    service = get_services(request.app).relationships
    closed = service.reclassify_relationship(relationship_id, body.sub_type)
    return {"relationship_id": relationship_id, "closed_ids": list(closed)}


@app.patch("/relationships/{relationship_id}")
def annotate_relationship(
    relationship_id: str, body: AnnotateBody, request: Request
) -> RelationshipItem:
    service = get_services(request.app).relationships
    updated = service.annotate_relationship(
        relationship_id, notes=body.notes, attributes=body.attributes
    )
    return _relationship_item(updated)


@app.post("/relationships/{relationship_id}/end")
def end_relationship(relationship_id: str, request: Request, body: EndBody | None = None):
    service = get_services(request.app).relationships
    service.end_relationship(relationship_id, body.end_date if body else None)
    return {"relationship_id": relationship_id, "state": "ended"}


@app.delete("/relationships/{relationship_id}")
def soft_delete_relationship(relationship_id: str, request: Request):
    service = get_services(request.app).relationships
    service.soft_delete_relationship(relationship_id)
    return {"relationship_id": relationship_id, "state": "soft_deleted"}


@app.get("/actors/{actor_id}/relationships")
def list_relationships_for_actor(
    actor_id: str,
    request: Request,
    only_current: bool = True,
    relationship_type: str | None = None,
) -> list[EnrichedRelationshipItem]:
    service = get_services(request.app).relationships
    views = service.list_relationships_for_actor(
        actor_id, only_current=only_current, relationship_type=relationship_type
    )
    return [_enriched_item(view) for view in views]


# --- REST: assignments ---


@app.post("/assignments")
def create_assignment(body: CreateAssignmentBody, request: Request):
    service = get_services(request.app).assignments
    req = body.to_request()
    created = service.create_assignment(
        req.share_id,
        req.actor_id,
        req.assignment_type,
        parent_assignment_id=req.parent_assignment_id,
        modality=req.modality,
        commercial_plan=req.commercial_plan,
        notes=req.notes,
        attributes=req.attributes,
        start_date=req.start_date,
    )
    return JSONResponse(
        content={
            "assignment_id": created.assignment_id,
            "closed_ids": list(created.closed_ids),
            "full_code": created.full_code,
        },
        status_code=201,
    )


@app.post("/assignments/batch")
def create_assignments_batch(bodies: list[CreateAssignmentBody], request: Request):
    service = get_services(request.app).assignments
    created = service.create_assignments_batch([body.to_request() for body in bodies])
    return JSONResponse(
        content=[
            {
                "assignment_id": c.assignment_id,
                "closed_ids": list(c.closed_ids),
                "full_code": c.full_code,
            }
            for c in created
        ],
        status_code=201,
    )


@app.get("/assignments/{assignment_id}")
def get_assignment(assignment_id: str, request: Request) -> AssignmentItem:
    service = get_services(request.app).assignments
    return _assignment_item(service.get_assignment(assignment_id))


@app.post("/assignments/{assignment_id}/end")
def end_assignment(
    assignment_id: str, request: Request, body: EndBody | None = None
) -> AssignmentItem:
    service = get_services(request.app).assignments
    updated = service.end_assignment(
        assignment_id,
        body.end_date if body else None,
        reason=body.reason if body else None,
    )
    return _assignment_item(updated)


@app.delete("/assignments/{assignment_id}")
def soft_delete_assignment(assignment_id: str, request: Request):
    service = get_services(request.app).assignments
    service.soft_delete_assignment(assignment_id)
    return {"assignment_id": assignment_id, "state": "soft_deleted"}


@app.get("/shares/{share_id}/assignments")
def list_assignments_for_share(
    share_id: str, request: Request, only_current: bool = True
) -> list[AssignmentItem]:
    service = get_services(request.app).assignments
    return [
        _assignment_item(a)
        for a in service.list_assignments_for_share(share_id, only_current=only_current)
    ]


@app.get("/actors/{actor_id}/assignments")
def list_assignments_for_actor(
    actor_id: str, request: Request, only_current: bool = True
) -> list[AssignmentItem]:
    service = get_services(request.app).assignments
    return [
        _assignment_item(a)
        for a in service.list_assignments_for_actor(actor_id, only_current=only_current)
    ]
