import os

os.environ.setdefault("DB_BACKEND", "sqlite")

import pytest
from starlette.testclient import TestClient

from app.main import app


def _headers(email: str) -> dict:
    return {"X-Account-Email": email}


@pytest.fixture
def client(server_db):
    # No context manager: the lifespan would replace the test database.
    return TestClient(app)


def _register(client, email: str) -> str:
    local = email.split("@", 1)[0]
    response = client.post(
        "/accounts",
        json={"account_id": f"auth_{local}", "display_name": local.title()},
        headers=_headers(email),
    )
    assert response.status_code == 200, response.text
    return response.json()["account"]["linked_member_id"]


def test_liveness_does_not_need_auth(client):
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["status"] == "alive"


def test_requests_without_account_header_are_rejected(client):
    response = client.get("/friends")
    assert response.status_code == 401


def test_unknown_account_maps_to_not_found(client):
    response = client.get("/accounts/me", headers=_headers("ghost@example.com"))
    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "NOT_FOUND"


def test_alias_merge_round_trip(client):
    _register(client, "owner@example.com")

    merged = client.post(
        "/aliases/merge",
        json={"source_id": "old", "target_id": "new"},
        headers=_headers("owner@example.com"),
    )
    assert merged.status_code == 200
    assert merged.json()["canonical_member_id"] == "new"

    canonical = client.get("/members/old/canonical", headers=_headers("owner@example.com"))
    assert canonical.json()["canonical_member_id"] == "new"

    cycle = client.post(
        "/aliases/merge",
        json={"source_id": "new", "target_id": "old"},
        headers=_headers("owner@example.com"),
    )
    assert cycle.status_code == 409
    assert cycle.json()["detail"]["error_code"] == "ALIAS_CYCLE"


def test_friend_request_flow_over_http(client):
    _register(client, "alice@example.com")
    bob_member = _register(client, "bob@example.com")

    sent = client.post(
        "/friend-requests",
        json={"recipient_email": "Bob@Example.com"},
        headers=_headers("alice@example.com"),
    )
    assert sent.status_code == 200
    request_id = sent.json()["request"]["id"]

    duplicate = client.post(
        "/friend-requests",
        json={"recipient_email": "bob@example.com"},
        headers=_headers("alice@example.com"),
    )
    assert duplicate.status_code == 409

    stolen = client.post(f"/friend-requests/{request_id}/accept", headers=_headers("alice@example.com"))
    assert stolen.status_code == 403

    incoming = client.get("/friend-requests/incoming", headers=_headers("bob@example.com"))
    assert [item["id"] for item in incoming.json()["requests"]] == [request_id]

    accepted = client.post(f"/friend-requests/{request_id}/accept", headers=_headers("bob@example.com"))
    assert accepted.status_code == 200

    friend = client.get(f"/friends/{bob_member}", headers=_headers("alice@example.com"))
    assert friend.json()["friend"]["status"] == "friend"


def test_direct_expense_denied_for_group_peer(client):
    _register(client, "alice@example.com")
    bob_member = _register(client, "bob@example.com")

    group = client.post(
        "/groups",
        json={"name": "Pair", "members": [{"id": bob_member, "name": "Bob"}], "is_direct": True},
        headers=_headers("alice@example.com"),
    )
    assert group.status_code == 200
    group_id = group.json()["group"]["id"]

    denied = client.post(
        "/expenses/authorize-direct",
        json={"group_id": group_id, "participant_ids": [bob_member]},
        headers=_headers("alice@example.com"),
    )
    assert denied.status_code == 403
    assert denied.json()["detail"]["data"]["relationship_status"] == "group_peer"


def test_request_id_is_generated_when_missing(client):
    response = client.get("/health/live")
    assert len(response.headers["x-request-id"]) == 32


def test_supplied_request_id_reaches_audit_trail(client, db_session):
    from payback.audit import list_audit_events
    from payback.audit_constants import EVENT_ALIAS_CREATED
    from payback.models import AuditEvent

    _register(client, "owner@example.com")
    headers = dict(_headers("owner@example.com"), **{"X-Request-ID": "req-123"})
    response = client.post("/aliases/merge", json={"source_id": "old", "target_id": "new"}, headers=headers)

    assert response.headers["x-request-id"] == "req-123"
    event = db_session.query(AuditEvent).filter_by(event_type=EVENT_ALIAS_CREATED).one()
    assert event.request_id == "req-123"
    assert list_audit_events(db_session, actor_id="auth_owner")["count"] >= 1


def test_link_request_round_trip(client):
    _register(client, "alice@example.com")
    bob_member = _register(client, "bob@example.com")
    alice = _headers("alice@example.com")
    bob = _headers("bob@example.com")

    created = client.put("/friends/bob-placeholder", json={"name": "Bobby"}, headers=alice)
    assert created.status_code == 200

    sent = client.post(
        "/link-requests",
        json={"recipient_email": "bob@example.com", "target_member_id": "bob-placeholder"},
        headers=alice,
    )
    assert sent.status_code == 200
    request_id = sent.json()["request"]["id"]

    forbidden = client.post(f"/link-requests/{request_id}/accept", headers=alice)
    assert forbidden.status_code == 403

    accepted = client.post(f"/link-requests/{request_id}/accept", headers=bob)
    assert accepted.status_code == 200
    assert accepted.json()["canonical_member_id"] == bob_member

    cancelled = client.delete(f"/link-requests/{request_id}", headers=alice)
    assert cancelled.status_code == 409
