import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Ensure the repo root is on sys.path so imports like `import rag_agent` resolve
REPO_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def temp_env(monkeypatch, tmp_path) -> SimpleNamespace:
    """Isolate the tracker DB and keep tests off real Qdrant, OpenAI and GitHub."""
    data_dir = tmp_path / "data"
    tracker_db = data_dir / "tracker.db"

    monkeypatch.setenv("DATA_DIR", str(data_dir))
    monkeypatch.setenv("TRACKER_DB_PATH", str(tracker_db))
    monkeypatch.setenv("SKIP_COLLECTION_INIT", "1")
    monkeypatch.setenv("RAG_AGENT_API_KEY", "")
    monkeypatch.setenv("SYNC_REPOSITORIES", "")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    return SimpleNamespace(data_dir=data_dir, tracker_db=tracker_db)
