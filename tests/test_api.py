"""HTTP surface: POST / (one-shot and streamed), GET / history, error envelopes."""

import json
import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from guardian.ai.sse import decode_fragments
from guardian.ai.vision_base import MOCK_VERDICT, MockVisionModel
from guardian.api.main import _get_registry, app
from guardian.core.errors import UpstreamModelError
from guardian.repository.history_repo import HistoryStore
from guardian.session.endpoint import SessionRegistry
from guardian.session.stream_tee import CaptureStatus

pytestmark = [pytest.mark.fast]


@pytest.fixture
def client(registry, fresh_app_caches):
    app.dependency_overrides[_get_registry] = lambda: registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_empty_history(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json() == []


def test_post_non_streaming_returns_verdict_and_records_it(client, image_b64):
    resp = client.post("/", json={"image": image_b64, "stream": False})
    assert resp.status_code == 200
    body = resp.json()
    assert body["verdict"] == MOCK_VERDICT["verdict"]
    assert body["score"] == MOCK_VERDICT["score"]
    assert body["tactic"] == MOCK_VERDICT["tactic"]
    assert body["id"].startswith("scan_")

    history = client.get("/").json()
    assert [h["id"] for h in history] == [body["id"]]


def test_post_streaming_returns_event_stream(client, registry, image_b64):
    resp = client.post("/", json={"image": image_b64})
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.content.endswith(b"data: [DONE]\n\n")

    endpoint = registry.get("global-demo-user")
    assert endpoint.wait_for_captures(5)
    [stored] = endpoint.list_recent(5)
    assert stored.analysis == "".join(decode_fragments([resp.content]))
    assert stored.analysis == json.dumps(MOCK_VERDICT)


@pytest.mark.parametrize(
    "body",
    [{}, {"image": ""}, {"image": None, "stream": False}, {"prompt": "hi"}],
)
def test_missing_image_is_400_and_history_unchanged(client, body):
    resp = client.post("/", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing image"}
    assert client.get("/").json() == []


def test_non_base64_image_is_400(client):
    resp = client.post("/", json={"image": "not base64 at all!", "stream": False})
    assert resp.status_code == 400
    assert "base64" in resp.json()["error"]


def test_malformed_json_is_400(client):
    resp = client.post("/", content=b"{not json", headers={"Content-Type": "application/json"})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_non_object_body_is_400(client):
    resp = client.post("/", json=["image"])
    assert resp.status_code == 400
    assert resp.json() == {"error": "Request body must be a JSON object"}


def test_history_limit_and_order(client, image_b64):
    ids = [client.post("/", json={"image": image_b64, "stream": False}).json()["id"] for _ in range(5)]
    resp = client.get("/", params={"limit": 3})
    assert [h["id"] for h in resp.json()] == list(reversed(ids))[:3]


def test_history_limit_must_be_positive(client):
    resp = client.get("/", params={"limit": 0})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_client_id_header_isolates_history(client, image_b64):
    client.post("/", json={"image": image_b64, "stream": False}, headers={"X-Client-Id": "alice"})
    assert len(client.get("/", headers={"X-Client-Id": "alice"}).json()) == 1
    assert client.get("/", headers={"X-Client-Id": "bob"}).json() == []
    assert client.get("/").json() == []


def test_unsupported_method_is_405(client):
    assert client.delete("/").status_code == 405


def test_captures_endpoint_reports_background_jobs(client, registry, image_b64):
    client.post("/", json={"image": image_b64})
    assert registry.get("global-demo-user").wait_for_captures(5)
    jobs = client.get("/captures").json()
    assert len(jobs) == 1
    assert jobs[0]["status"] == "completed"
    assert jobs[0]["record_id"].startswith("scan_")


@pytest.fixture
def failing_client(session_factory, fresh_app_caches):
    model = MagicMock(spec=MockVisionModel)
    model.invoke.side_effect = UpstreamModelError("Model returned HTTP 503")
    failing_registry = SessionRegistry(session_factory, model)
    app.dependency_overrides[_get_registry] = lambda: failing_registry
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_upstream_failure_non_streaming_is_degraded_200(failing_client, image_b64):
    resp = failing_client.post("/", json={"image": image_b64, "stream": False})
    assert resp.status_code == 200
    body = resp.json()
    assert body["verdict"] == "CAUTION"
    assert body["score"] == 50
    assert body["tactic"] == "AI Response Error"
    assert "HTTP 503" in body["explanation"]
    assert failing_client.get("/").json() == []


def test_upstream_failure_streaming_is_502(failing_client, image_b64):
    resp = failing_client.post("/", json={"image": image_b64, "stream": True})
    assert resp.status_code == 502
    assert resp.json() == {"error": "Model returned HTTP 503"}


def test_history_limit_above_max_is_400(client):
    resp = client.get("/", params={"limit": 101})
    assert resp.status_code == 400
    assert "at most 100" in resp.json()["error"]


def test_shutdown_waits_for_running_captures(tmp_path, monkeypatch, fresh_app_caches, image_b64):
    cfg = tmp_path / "guardian_config.yml"
    cfg.write_text(f"database_url: sqlite:///{tmp_path / 'guardian.db'}\nvision_model: mock\n")
    monkeypatch.setenv("GUARDIAN_CONFIG", str(cfg))
    monkeypatch.delenv("DATABASE_URL", raising=False)

    original_append = HistoryStore.append

    def slow_append(self, record):
        time.sleep(0.5)
        return original_append(self, record)

    monkeypatch.setattr(HistoryStore, "append", slow_append)

    with TestClient(app) as client:
        resp = client.post("/", json={"image": image_b64})
        assert resp.status_code == 200
        [job] = _get_registry().get("global-demo-user").recent_captures()

    assert job.status == CaptureStatus.completed
    assert job.record_id.startswith("scan_")
