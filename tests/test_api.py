"""API tests against the in-memory backend. No Neo4j needed."""

import pytest
from fastapi.testclient import TestClient

from actorgraph.domain import Actor, Gender, Share
from api.main import app, build_services, get_services


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("ACTORGRAPH_STORAGE", "memory")
    monkeypatch.setenv("ACTORGRAPH_EXCLUSIVE_ASSIGNMENT_TYPES", "titleholder")
    app.state.services = None
    directory = get_services(app).directory
    directory.add_actor(Actor(id="A", display_name="Andrés", gender=Gender.MALE))
    directory.add_actor(Actor(id="B", display_name="Beatriz", gender=Gender.FEMALE))
    directory.add_actor(Actor(id="C", display_name="Carla", gender=Gender.FEMALE))
    directory.add_share(Share(id="S1", code="A-0001"))
    yield TestClient(app)
    app.state.services = None


def _create(client, origin, destination, relationship_type="family", sub_type=None, **extra):
    body = {
        "origin_actor_id": origin,
        "destination_actor_id": destination,
        "relationship_type": relationship_type,
        "sub_type": sub_type,
        **extra,
    }
    return client.post("/relationships", json=body)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_build_services_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_services("sqlite")


def test_create_and_get_relationship(client):
    r = _create(client, "A", "B", sub_type="spouse", notes="Casados")
    assert r.status_code == 201
    rel_id = r.json()["relationship_id"]
    assert r.json()["closed_ids"] == []

    r = client.get(f"/relationships/{rel_id}")
    assert r.status_code == 200
    data = r.json()
    assert data["state"] == "active"
    assert data["origin_role"] == "spouse"
    assert data["notes"] == "Casados"


def test_second_spouse_reports_closed_ids(client):
    first = _create(client, "A", "B", sub_type="spouse").json()["relationship_id"]
    r = _create(client, "A", "C", sub_type="spouse")
    assert r.json()["closed_ids"] == [first]
    assert client.get(f"/relationships/{first}").json()["state"] == "ended"


def test_list_for_actor_is_caller_relative(client):
    _create(client, "A", "C", sub_type="child")
    r = client.get("/actors/C/relationships")
    assert r.status_code == 200
    items = r.json()
    assert len(items) == 1
    assert items[0]["counterpart"]["actor_id"] == "A"
    assert items[0]["counterpart"]["display_name"] == "Andrés"
    assert items[0]["counterpart_role"] == "father"


def test_list_filters(client):
    ended = _create(client, "A", "B", relationship_type="commercial").json()["relationship_id"]
    client.post(f"/relationships/{ended}/end")
    _create(client, "A", "C", sub_type="sibling")
    assert len(client.get("/actors/A/relationships").json()) == 1
    assert len(client.get("/actors/A/relationships?only_current=false").json()) == 2
    family = client.get("/actors/A/relationships?only_current=false&relationship_type=family")
    assert [item["relationship_type"] for item in family.json()] == ["family"]


def test_reclassify_and_annotate(client):
    spouse = _create(client, "A", "B", sub_type="spouse").json()["relationship_id"]
    sibling = _create(client, "A", "C", sub_type="sibling").json()["relationship_id"]
    r = client.patch(f"/relationships/{sibling}/sub-type", json={"sub_type": "spouse"})
    assert r.status_code == 200
    assert r.json()["closed_ids"] == [spouse]

    r = client.patch(f"/relationships/{sibling}", json={"attributes": {"ceremony": "civil"}})
    assert r.status_code == 200
    assert r.json()["attributes"]["ceremony"] == "civil"
    assert r.json()["attributes"]["previous_sub_type"] == "sibling"


def test_error_status_mapping(client):
    r = _create(client, "A", "A", relationship_type="commercial")
    assert r.status_code == 400
    assert r.json()["error"] == "ValidationError"

    r = _create(client, "A", "B", relationship_type="friendship")
    assert r.status_code == 400

    r = _create(client, "A", "ghost", sub_type="sibling")
    assert r.status_code == 404
    assert r.json()["error"] == "NotFoundError"

    assert client.get("/relationships/missing").status_code == 404

    rel_id = _create(client, "A", "B", sub_type="sibling").json()["relationship_id"]
    assert client.delete(f"/relationships/{rel_id}").status_code == 200
    r = client.post(f"/relationships/{rel_id}/end")
    assert r.status_code == 409
    assert r.json()["error"] == "InvalidStateError"


def test_end_with_date_before_start_is_rejected(client):
    rel_id = _create(client, "A", "B", relationship_type="employment").json()["relationship_id"]
    r = client.post(f"/relationships/{rel_id}/end", json={"end_date": "2000-01-01T00:00:00Z"})
    assert r.status_code == 400


def test_assignments_flow(client):
    r = client.post(
        "/assignments", json={"share_id": "S1", "actor_id": "A", "assignment_type": "owner"}
    )
    assert r.status_code == 201
    owner_id = r.json()["assignment_id"]

    r = client.post(
        "/assignments/batch",
        json=[
            {
                "share_id": "S1",
                "actor_id": "B",
                "assignment_type": "beneficiary",
                "parent_assignment_id": owner_id,
            },
            {
                "share_id": "S1",
                "actor_id": "C",
                "assignment_type": "beneficiary",
                "parent_assignment_id": owner_id,
            },
        ],
    )
    assert r.status_code == 201
    assert len(r.json()) == 2

    items = client.get("/shares/S1/assignments").json()
    assert len(items) == 3
    assert [i["assignment_type"] for i in client.get("/actors/B/assignments").json()] == [
        "beneficiary"
    ]

    r = client.post(f"/assignments/{owner_id}/end", json={"reason": "Sold"})
    assert r.status_code == 200
    assert r.json()["state"] == "ended"
    assert "Sold" in r.json()["notes"]

    assert client.delete(f"/assignments/{owner_id}").status_code == 200
    assert client.get(f"/assignments/{owner_id}").json()["state"] == "soft_deleted"
    assert client.delete(f"/assignments/{owner_id}").status_code == 409


def test_exclusive_assignment_type_from_env(client):
    first = client.post(
        "/assignments", json={"share_id": "S1", "actor_id": "A", "assignment_type": "titleholder"}
    ).json()["assignment_id"]
    r = client.post(
        "/assignments", json={"share_id": "S1", "actor_id": "B", "assignment_type": "titleholder"}
    )
    assert r.json()["closed_ids"] == [first]


def test_batch_failure_creates_nothing(client):
    r = client.post(
        "/assignments/batch",
        json=[
            {"share_id": "S1", "actor_id": "A", "assignment_type": "owner"},
            {"share_id": "S1", "actor_id": "A", "assignment_type": "landlord"},
        ],
    )
    assert r.status_code == 400
    assert client.get("/shares/S1/assignments?only_current=false").json() == []


def test_assignment_modality_plan_and_full_code(client):
    r = client.post(
        "/assignments",
        json={
            "share_id": "S1",
            "actor_id": "A",
            "assignment_type": "owner",
            "modality": "comodato",
            "commercial_plan": "honorifico",
        },
    )
    assert r.status_code == 201
    assert r.json()["full_code"] == "A-0001-00"
    item = client.get(f"/assignments/{r.json()['assignment_id']}").json()
    assert item["modality"] == "loan"
    assert item["commercial_plan"] == "honorary"
    assert item["subcode"] == "00"

    r = client.post(
        "/assignments",
        json={"share_id": "S1", "actor_id": "B", "assignment_type": "owner", "modality": "rental"},
    )
    assert r.status_code == 400


def test_non_family_roles_from_body(client):
    r = _create(
        client,
        "A",
        "B",
        relationship_type="employment",
        origin_role="Jefe Directo",
        destination_role="Analista",
    )
    assert r.status_code == 201
    items = client.get("/actors/B/relationships").json()
    assert items[0]["counterpart_role"] == "Jefe Directo"

    r = _create(client, "A", "C", sub_type="spouse", origin_role="husband")
    assert r.status_code == 400
