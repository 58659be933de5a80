from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

# Load repo-level .env so default_factory lookups see those values.
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env", override=False)


def _env_bool(key: str, default: str = "0") -> bool:
    return os.getenv(key, default).lower() in {"1", "true", "yes"}


@dataclass
class Config:
    """Shared configuration loaded from environment variables."""

    ENV: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev"))
    LOG_LEVEL: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    QDRANT_URL: str = field(default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333"))
    QDRANT_API_KEY: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    OPENAI_API_KEY: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))
    OPENAI_BASE_URL: Optional[str] = field(default_factory=lambda: os.getenv("OPENAI_BASE_URL") or None)
    EMB_MODEL: str = field(default_factory=lambda: os.getenv("EMB_MODEL", "text-embedding-3-small"))
    DIM: Optional[int] = field(default_factory=lambda: int(os.getenv("DIM", "0")) or None)

    SUMMARY_FAST_BASE_URL: str = field(default_factory=lambda: os.getenv("SUMMARY_FAST_BASE_URL", ""))
    SUMMARY_FAST_API_KEY: str = field(default_factory=lambda: os.getenv("SUMMARY_FAST_API_KEY", ""))
    SUMMARY_FAST_MODEL: str = field(default_factory=lambda: os.getenv("SUMMARY_FAST_MODEL", "llama-3-8b-instruct"))
    SUMMARY_MODEL: str = field(default_factory=lambda: os.getenv("SUMMARY_MODEL", "gpt-3.5-turbo-0125"))
    SUMMARY_TRUNCATED_MODEL: str = field(default_factory=lambda: os.getenv("SUMMARY_TRUNCATED_MODEL", "gpt-4o"))
    SUMMARY_TRUNCATE_CHARS: int = field(default_factory=lambda: int(os.getenv("SUMMARY_TRUNCATE_CHARS", "100000")))
    SUMMARY_TIMEOUT: float = field(default_factory=lambda: float(os.getenv("SUMMARY_TIMEOUT", "120")))

    GITHUB_API_URL: str = field(default_factory=lambda: os.getenv("GITHUB_API_URL", "https://api.github.com"))
    GITHUB_API_TOKEN: str = field(default_factory=lambda: os.getenv("GITHUB_API_TOKEN", ""))
    BRANCH: str = field(default_factory=lambda: os.getenv("GIT_BRANCH", "main"))
    FETCH_BATCH_SIZE: int = field(default_factory=lambda: int(os.getenv("FETCH_BATCH_SIZE", "10")))
    FETCH_BATCH_DELAY: float = field(default_factory=lambda: float(os.getenv("FETCH_BATCH_DELAY", "5")))

    EMBED_MAX_ATTEMPTS: int = field(default_factory=lambda: int(os.getenv("EMBED_MAX_ATTEMPTS", "5")))
    EMBED_RETRY_DELAY: float = field(default_factory=lambda: float(os.getenv("EMBED_RETRY_DELAY", "1")))
    QUERY_TOP_K: int = field(default_factory=lambda: int(os.getenv("QUERY_TOP_K", "20")))

    DATA_DIR: Path = field(default_factory=lambda: Path(os.getenv("DATA_DIR", "data")))
    TRACKER_DB_PATH: Optional[Path] = field(default=None)
    RAG_AGENT_API_KEY: str = field(default_factory=lambda: os.getenv("RAG_AGENT_API_KEY", ""))
    SKIP_COLLECTION_INIT: bool = field(default=False)
    SYNC_REPOSITORIES: List[str] = field(default_factory=list)

    RAG_URL: str = field(default_factory=lambda: os.getenv("RAG_URL", "http://localhost:8000"))
    MCP_PORT: int = field(default_factory=lambda: int(os.getenv("MCP_PORT", "8083")))

    def __post_init__(self) -> None:
        self.SKIP_COLLECTION_INIT = _env_bool("SKIP_COLLECTION_INIT")
        if not self.SYNC_REPOSITORIES:
            raw = os.getenv("SYNC_REPOSITORIES", "")
            self.SYNC_REPOSITORIES = [item.strip() for item in raw.split(",") if item.strip()]
        self.MODEL_SLUG = re.sub(r"[^a-z0-9]+", "", self.EMB_MODEL.lower())
        if self.TRACKER_DB_PATH is None:
            self.TRACKER_DB_PATH = self._resolve_tracker_db_path()

    def _resolve_tracker_db_path(self) -> Path:
        explicit = os.getenv("TRACKER_DB_PATH")
        if explicit:
            return Path(explicit).expanduser()
        return (Path(self.DATA_DIR) / "tracker.db").expanduser()

    def collection_for(self, owner: str, repo: str) -> str:
        """Qdrant collection that holds every vector of one repository."""
        repo_part = re.sub(r"[^a-z0-9]+", "-", f"{owner}-{repo}".lower()).strip("-")
        return f"rag_agent-{self.ENV}-{self.MODEL_SLUG}-{repo_part}"
