import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from idengine import main
from idengine.core import config


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(main, "DB_PATH", str(tmp_path / "api.db"))
    monkeypatch.setattr(main, "ensure_dirs", lambda: None)
    monkeypatch.setattr(main, "attach_file_handler", lambda: None)
    with TestClient(main.app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_enqueue_and_fetch_job(client):
    response = client.post("/jobs", json={"kind": "health_check_all", "payload": {}})
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"

    fetched = client.get(f"/jobs/{body['job_id']}")
    assert fetched.status_code == 200
    job = fetched.json()
    assert job["kind"] == "health_check_all"
    assert job["status"] in {"queued", "running", "done"}

    listed = client.get("/jobs").json()["jobs"]
    assert body["job_id"] in [j["job_id"] for j in listed]


def test_unknown_kind_and_missing_job(client):
    assert client.post("/jobs", json={"kind": "make_coffee"}).status_code == 422
    assert client.get("/jobs/job_missing").status_code == 404


def test_status_and_read_endpoints(client):
    status = client.get("/status").json()
    assert status["worker"]["running"] is True
    assert "queue_depth" in status

    assert client.get("/trends").json() == {"trends": []}
    assert client.get("/trends/gaming").json() == {"trends": []}
    assert client.get("/trends/not_a_category").status_code == 422
    assert client.get("/sources/attention").json() == {"sources": []}
    assert client.get("/sources/health-stats").json() == {"categories": {}}


def test_events_socket_sends_worker_status(client):
    with client.websocket_connect("/events") as websocket:
        greeting = websocket.receive_json()
        assert greeting["type"] == "status"
        assert greeting["data"]["worker"]["running"] is True
        assert "queue_depth" in greeting["data"]

        websocket.send_text("status")
        assert websocket.receive_json()["type"] == "status"


def test_backend_token_guards_http_and_events(client, monkeypatch):
    monkeypatch.setattr(config, "BACKEND_TOKEN", "s3cret")

    assert client.get("/status").status_code == 401
    assert client.get("/status", headers={"X-Backend-Token": "wrong"}).status_code == 401
    assert client.get("/status", headers={"X-Backend-Token": "s3cret"}).status_code == 200

    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect("/events") as websocket:
            websocket.receive_json()
    assert excinfo.value.code == 1008

    with client.websocket_connect("/events", headers={"X-Backend-Token": "s3cret"}) as websocket:
        assert websocket.receive_json()["type"] == "status"
