"""
HTTP adapter tests: envelopes, identity headers and status codes.
"""
import pytest
from fastapi.testclient import TestClient

from pulsetime.main import create_app
from pulsetime.services.container import build_services
from pulsetime.storage.memory import MemoryStore

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
ADMIN = {"X-User-Id": "root", "X-User-Role": "admin"}
ALICE_ADMIN = {"X-User-Id": "alice", "X-User-Role": "admin"}


@pytest.fixture
def client(clock):
    app = create_app(build_services(MemoryStore(), clock=clock, timezone="UTC"), metrics=False)
    with TestClient(app) as c:
        yield c


def _project(client, headers=ALICE, **fields):
    body = {"name": "Website", "hourly_rate": 60, **fields}
    resp = client.post("/projects", json=body, headers=headers)
    assert resp.status_code == 200
    return resp.json()["data"]


def test_health(client):
    """Test health endpoint returns the success envelope."""
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}
    assert resp.headers["X-Request-ID"]


def test_request_id_is_echoed(client):
    """Test caller-supplied request ID is echoed back."""
    resp = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert resp.headers["X-Request-ID"] == "req-123"
    assert resp.json()["requestId"] == "req-123"


def test_missing_identity_is_401(client):
    """Test requests without X-User-Id are rejected."""
    resp = client.get("/pulses/active")
    assert resp.status_code == 401
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "unauthenticated"


def test_unknown_role_is_rejected(client):
    """Test an unrecognised role header is a validation error."""
    resp = client.get("/pulses/active", headers={"X-User-Id": "alice", "X-User-Role": "wizard"})
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"


def test_full_session_flow(client, clock):
    """Test start, pause, resume and stop over HTTP."""
    project = _project(client)

    resp = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE)
    assert resp.status_code == 200
    pulse = resp.json()["data"]
    assert pulse["status"] == "active"
    assert pulse["hourly_rate"] == 60

    assert client.get("/pulses/active", headers=ALICE).json()["data"]["id"] == pulse["id"]

    clock.advance(minutes=20)
    paused = client.post(f"/pulses/{pulse['id']}/pause", headers=ALICE).json()["data"]
    assert paused["status"] == "paused"

    clock.advance(minutes=10)
    resumed = client.post(f"/pulses/{pulse['id']}/resume", headers=ALICE).json()["data"]
    assert resumed["paused_duration"] == 10

    clock.advance(minutes=30)
    resp = client.post(f"/pulses/{pulse['id']}/stop", json={"notes": "done"}, headers=ALICE)
    stopped = resp.json()["data"]
    assert stopped["status"] == "completed"
    assert stopped["duration"] == 60
    assert stopped["actual_duration"] == 50
    assert stopped["notes"] == "done"
    assert stopped["earnings"] == 50.0

    assert client.get("/pulses/active", headers=ALICE).json()["data"] is None
    refreshed = client.get(f"/projects/{project['id']}", headers=ALICE).json()["data"]
    assert refreshed["actual_minutes"] == 60
    assert refreshed["actual_hours"] == 1.0


def test_stop_without_body(client, clock):
    """Test stop accepts an empty request body."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]
    clock.advance(minutes=5)
    resp = client.post(f"/pulses/{pulse['id']}/stop", headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["data"]["duration"] == 5


def test_second_start_is_409(client):
    """Test a second start while one pulse is open."""
    project = _project(client)
    client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE)
    resp = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE)
    assert resp.status_code == 409
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "active_session_exists"


def test_illegal_transition_is_409(client):
    """Test an illegal transition returns a conflict envelope."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]
    resp = client.post(f"/pulses/{pulse['id']}/resume", headers=ALICE)
    assert resp.status_code == 409
    error = resp.json()["error"]
    assert error["code"] == "conflict"
    assert error["details"]["actual"] == "active"


def test_foreign_records_are_404(client):
    """Test another user's records look missing."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]

    assert client.get(f"/pulses/{pulse['id']}", headers=BOB).status_code == 404
    assert client.post(f"/pulses/{pulse['id']}/stop", headers=BOB).status_code == 404
    assert client.get(f"/projects/{project['id']}", headers=BOB).status_code == 404
    resp = client.post("/pulses/start", json={"project_id": project["id"]}, headers=BOB)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_body_validation_uses_envelope(client):
    """Test request body errors use the error envelope."""
    resp = client.post("/pulses/start", json={}, headers=ALICE)
    assert resp.status_code == 422
    body = resp.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["details"]["errors"]


def test_list_sessions_paginates(client, clock):
    """Test session listing pages and bounds the limit."""
    project = _project(client)
    for _ in range(3):
        pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]
        clock.advance(minutes=10)
        client.post(f"/pulses/{pulse['id']}/stop", headers=ALICE)

    resp = client.get("/pulses", params={"limit": 2, "page": 2}, headers=ALICE)
    page = resp.json()["data"]
    assert page["total"] == 3
    assert page["totalPages"] == 2
    assert len(page["items"]) == 1

    assert client.get("/pulses", params={"limit": 1000}, headers=ALICE).status_code == 422


def test_delete_rules(client):
    """Test open pulses block deletes and project delete cascades."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]

    assert client.delete(f"/pulses/{pulse['id']}", headers=ALICE).status_code == 409
    assert client.delete(f"/projects/{project['id']}", headers=ALICE).status_code == 409

    client.post(f"/pulses/{pulse['id']}/stop", headers=ALICE)
    resp = client.delete(f"/projects/{project['id']}", headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["data"]["sessionsRemoved"] == 1
    assert client.get(f"/pulses/{pulse['id']}", headers=ALICE).status_code == 404


def test_analytics_endpoint(client, clock):
    """Test analytics report over HTTP."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]
    clock.advance(minutes=45)
    client.post(f"/pulses/{pulse['id']}/stop", headers=ALICE)

    resp = client.get("/analytics", params={"period": "today", "compare": True}, headers=ALICE)
    assert resp.status_code == 200
    report = resp.json()["data"]
    assert report["totals"]["total_duration"] == 45
    assert report["totals"]["total_earnings"] == 45.0
    assert report["projects"][0]["project_name"] == "Website"
    assert len(report["hourly"]["rows"]) == 24
    assert report["comparison"]["duration_change"] == 100.0

    bad = client.get("/analytics", params={"start_date": "2024-03-01"}, headers=ALICE)
    assert bad.status_code == 422


def test_recompute_requires_admin(client, clock):
    """Test recompute is limited to admins."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]
    clock.advance(minutes=25)
    client.post(f"/pulses/{pulse['id']}/stop", headers=ALICE)
    client.patch(f"/projects/{project['id']}", json={"actual_minutes": 999}, headers=ALICE_ADMIN)

    resp = client.post(f"/projects/{project['id']}/recompute", headers=ALICE)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "forbidden"

    resp = client.post(f"/projects/{project['id']}/recompute", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["data"]["actual_minutes"] == 25


def test_adjusting_tracked_minutes_requires_admin(client):
    """Test owners can edit project fields but not overwrite tracked time."""
    project = _project(client)

    resp = client.patch(f"/projects/{project['id']}", json={"actual_minutes": 500}, headers=ALICE)
    assert resp.status_code == 403
    assert resp.json()["error"]["details"]["capability"] == "adjust_totals"
    assert client.get(f"/projects/{project['id']}", headers=ALICE).json()["data"]["actual_minutes"] == 0

    resp = client.patch(f"/projects/{project['id']}", json={"name": "Renamed"}, headers=ALICE)
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Renamed"

    resp = client.patch(f"/projects/{project['id']}", json={"actual_minutes": 500}, headers=ALICE_ADMIN)
    assert resp.status_code == 200
    assert resp.json()["data"]["actual_minutes"] == 500


def test_session_edit_rejects_long_tags(client):
    """Test editing a pulse applies the same tag rules as starting one."""
    project = _project(client)
    pulse = client.post("/pulses/start", json={"project_id": project["id"]}, headers=ALICE).json()["data"]

    resp = client.patch(f"/pulses/{pulse['id']}", json={"tags": ["t" * 31]}, headers=ALICE)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "validation_error"

    resp = client.patch(f"/pulses/{pulse['id']}", json={"tags": [" focus ", ""]}, headers=ALICE)
    assert resp.json()["data"]["tags"] == ["focus"]
