from __future__ import annotations

from typing import List

import pytest
from fastapi.testclient import TestClient

from rag_agent.app import create_app
from rag_agent.config import Config
from rag_agent.services.hashing import create_40_char_hash
from rag_agent.services.sync_orchestrator import SyncPhase, SyncResult, SyncStatus
from tests.rag_test_utils import make_ai


class FakeOrchestrator:
    def __init__(self, result: SyncResult):
        self.result = result
        self.runs = 0

    async def run_cycle(self):
        self.runs += 1
        return self.result


def _client(temp_env, monkeypatch, **overrides):
    cfg = Config(**overrides)
    app = create_app(cfg)
    ai, store = make_ai()
    calls: List[tuple] = []

    def fake_ai(key, openai_api_key=None):
        calls.append((key, openai_api_key))
        return ai

    monkeypatch.setattr(app.state.initializer, "rag_agent_ai", fake_ai)
    return app, ai, store, calls


@pytest.fixture
def api(temp_env, monkeypatch):
    app, ai, store, calls = _client(temp_env, monkeypatch)
    with TestClient(app) as client:
        yield client, ai, store, calls


def test_health(api):
    client, *_ = api
    assert client.get("/health").json() == {"status": "ok"}


def test_create_then_similar(api):
    client, ai, store, calls = api
    resp = client.post("/acme/widgets/file", json={"path": "src/a.py", "content": "x = 1"})
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"data": {"created": True}}

    resp = client.post("/acme/widgets/similar", json={"content": "what sets x", "type": "file", "top_k": 5})
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data[0]["id"] == create_40_char_hash("src/a.py")
    assert data[0]["metadata"]["path"] == "src/a.py"
    assert store.last_query == {"top_k": 5, "filter": {"type": "file"}}
    assert calls[0][0].name == "acme-widgets"


def test_similar_on_empty_index(api):
    client, *_ = api
    resp = client.post("/acme/widgets/similar", json={"content": "anything"})
    assert resp.status_code == 200
    assert resp.json() == {"data": []}


def test_openai_key_header_is_forwarded(api):
    client, _, _, calls = api
    client.post("/acme/widgets/similar", json={"content": "q"}, headers={"openai-api-key": "sk-user"})
    assert calls[-1][1] == "sk-user"


def test_create_failure_is_500(api):
    client, ai, *_ = api
    ai.summaries.summary = None
    resp = client.post("/acme/widgets/file", json={"path": "a.py", "content": "x"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to embed file"}


def test_missing_content_is_422(api):
    client, *_ = api
    resp = client.post("/acme/widgets/file", json={"path": "a.py"})
    assert resp.status_code == 422
    assert resp.json()["error"] == "Invalid request body"


def test_delete_file(api):
    client, ai, store, _ = api
    ai.create("a.py", "x")
    resp = client.request("DELETE", "/acme/widgets/file", json={"path": "a.py"})
    assert resp.json() == {"data": {"deleted": True}}
    assert store.entries == {}

    resp = client.request("DELETE", "/acme/widgets/file", json={"path": "a.py"})
    assert resp.json() == {"data": {"deleted": False}}


def test_add_metadata_routes(api):
    client, ai, store, _ = api
    ai.create("a.py", "x", {"type": "file"})

    ok = client.post("/acme/widgets/metadata", json={"path": "a.py", "metadata": {"lang": "python"}})
    assert ok.json() == {"data": {"updated": True}}
    assert store.entries[create_40_char_hash("a.py")].metadata["lang"] == "python"

    bad = client.post("/acme/widgets/metadata", json={"path": "a.py", "metadata": {"tags": ["x"]}})
    assert bad.status_code == 400

    missing = client.post("/acme/widgets/metadata", json={"path": "nope.py", "metadata": {"lang": "go"}})
    assert missing.status_code == 404


def test_latest_commit_round_trip(api):
    client, *_ = api
    assert client.get("/acme/widgets/latest_commit").json() == {"data": None}

    resp = client.post("/acme/widgets/latest_commit", json={"sha": "abc123"})
    assert resp.json() == {"data": "abc123"}
    assert client.get("/acme/widgets/latest_commit").json() == {"data": "abc123"}
    assert client.get("/acme/gadgets/latest_commit").json() == {"data": None}


def test_sync_status_reports_errored_files(api):
    client, *_ = api
    tracker = client.app.state.initializer.tracker_store().get("acme-widgets")
    tracker.set_latest_commit("abc")
    tracker.file_errored("bad.py", "content")

    status = client.get("/acme/widgets/sync/status").json()
    assert status["key"] == "acme-widgets"
    assert status["latest_commit"] == "abc"
    assert status["errored_files"] == ["bad.py"]


def test_sync_endpoint(api, monkeypatch):
    client, *_ = api
    result = SyncResult(repository="acme-widgets", status=SyncStatus.COMPLETED, commit="c1")
    orchestrator = FakeOrchestrator(result)
    monkeypatch.setattr(client.app.state.initializer, "sync_orchestrator", lambda key, openai_api_key=None: orchestrator)

    resp = client.post("/acme/widgets/sync")
    assert resp.status_code == 200, resp.text
    assert resp.json()["data"]["status"] == "completed"
    data = resp.json()["data"]
    assert data["commit"] == "c1"
    assert data["files_embedded"] == 0
    assert data["errored_files"] == []
    assert data["started_at"]
    assert orchestrator.runs == 1


def test_failed_sync_is_500(api, monkeypatch):
    client, *_ = api
    result = SyncResult(
        repository="acme-widgets",
        status=SyncStatus.FAILED,
        phase=SyncPhase.FAILED,
        error="Comparison c1...c2 is unavailable",
    )
    monkeypatch.setattr(
        client.app.state.initializer, "sync_orchestrator", lambda key, openai_api_key=None: FakeOrchestrator(result)
    )

    resp = client.post("/acme/widgets/sync")
    assert resp.status_code == 500
    assert resp.json()["error"] == "Comparison c1...c2 is unavailable"
    assert resp.json()["data"]["status"] == "failed"


def test_api_key_required_when_configured(temp_env, monkeypatch):
    app, *_ = _client(temp_env, monkeypatch, RAG_AGENT_API_KEY="secret")
    with TestClient(app) as client:
        denied = client.get("/acme/widgets/latest_commit")
        assert denied.status_code == 401
        assert denied.json() == {"error": "Unauthorized"}

        wrong = client.get("/acme/widgets/latest_commit", headers={"rag-agent-api-key": "nope"})
        assert wrong.status_code == 401

        allowed = client.get("/acme/widgets/latest_commit", headers={"rag-agent-api-key": "secret"})
        assert allowed.status_code == 200
        assert client.get("/health").status_code == 200


def test_initialization_failure_is_503(temp_env, monkeypatch):
    app = create_app(Config())

    def broken(key, openai_api_key=None):
        raise ConnectionError("qdrant unreachable")

    monkeypatch.setattr(app.state.initializer, "rag_agent_ai", broken)
    with TestClient(app) as client:
        resp = client.post("/acme/widgets/similar", json={"content": "q"})
    assert resp.status_code == 503
    assert "qdrant unreachable" in resp.json()["error"]
