from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Set

from openai import OpenAI
from qdrant_client import QdrantClient
from qdrant_client.models import Distance, VectorParams

from rag_agent.config import Config
from .embedding_tracker import EmbeddingTrackerStore
from .generation import Embeddings, SummaryBackend, SummaryChain
from .github_repo import GithubRepo
from .rag_agent_ai import RagAgentAi
from .sync_orchestrator import SyncOrchestrator
from .types import RepositoryKey
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


class Initializer:
    """Manages external client initialization and caching."""

    def __init__(self, config: Config):
        self.config = config
        self._embedding_cache: Dict[str, Embeddings] = {}
        self._vector_store_cache: Dict[str, VectorStore] = {}
        self._collection_lock = threading.Lock()
        self._cache_lock = threading.Lock()
        self._collection_ready: Set[str] = set()
        self._qdrant_admin: QdrantClient | None = None
        self._tracker_store: EmbeddingTrackerStore | None = None

    def _qdrant(self) -> QdrantClient:
        if self._qdrant_admin is None:
            self._qdrant_admin = QdrantClient(
                url=self.config.QDRANT_URL,
                api_key=self.config.QDRANT_API_KEY or None,
            )
        return self._qdrant_admin

    def tracker_store(self) -> EmbeddingTrackerStore:
        with self._cache_lock:
            if self._tracker_store is None:
                self._tracker_store = EmbeddingTrackerStore(db_path=self.config.TRACKER_DB_PATH)
            return self._tracker_store

    def get_embeddings_client(self, openai_api_key: Optional[str] = None) -> Embeddings:
        api_key = openai_api_key or self.config.OPENAI_API_KEY
        with self._cache_lock:
            client = self._embedding_cache.get(api_key)
            if client is None:
                client = Embeddings(
                    model=self.config.EMB_MODEL,
                    api_key=api_key,
                    base_url=self.config.OPENAI_BASE_URL,
                )
                self._embedding_cache[api_key] = client
            return client

    def ensure_collection(self, collection_name: str) -> None:
        with self._collection_lock:
            if collection_name in self._collection_ready:
                return

            admin = self._qdrant()
            if admin.collection_exists(collection_name=collection_name):
                self._collection_ready.add(collection_name)
                return

            if not self.config.DIM:
                logger.info("DIM not set; computing dynamically from sample embedding.")
                sample_vector = self.get_embeddings_client().embed(["dimension probe"])[0]
                dynamic_dim = len(sample_vector)
            else:
                dynamic_dim = self.config.DIM

            admin.create_collection(
                collection_name=collection_name,
                vectors_config=VectorParams(size=dynamic_dim, distance=Distance.COSINE),
            )
            self._collection_ready.add(collection_name)
            logger.info("Created collection '%s' with dim=%s", collection_name, dynamic_dim)

    def get_vector_store(self, key: RepositoryKey) -> VectorStore:
        collection_name = self.config.collection_for(key.owner, key.repo)
        if not self.config.SKIP_COLLECTION_INIT:
            self.ensure_collection(collection_name)
        with self._cache_lock:
            store = self._vector_store_cache.get(collection_name)
            if store is None:
                store = VectorStore(collection=collection_name, client=self._qdrant())
                self._vector_store_cache[collection_name] = store
            return store

    def summary_chain(self, openai_api_key: Optional[str] = None) -> SummaryChain:
        cfg = self.config
        fast_client = None
        if cfg.SUMMARY_FAST_BASE_URL:
            fast_client = OpenAI(
                base_url=cfg.SUMMARY_FAST_BASE_URL,
                api_key=cfg.SUMMARY_FAST_API_KEY or "unused",
            )
        openai_client = OpenAI(
            api_key=openai_api_key or cfg.OPENAI_API_KEY or "unused",
            base_url=cfg.OPENAI_BASE_URL,
        )
        return SummaryChain(
            [
                SummaryBackend("fast", fast_client, cfg.SUMMARY_FAST_MODEL, system_prompt=None, timeout=cfg.SUMMARY_TIMEOUT),
                SummaryBackend("fallback", openai_client, cfg.SUMMARY_MODEL, timeout=cfg.SUMMARY_TIMEOUT),
                SummaryBackend(
                    "truncated",
                    openai_client,
                    cfg.SUMMARY_TRUNCATED_MODEL,
                    max_content_chars=cfg.SUMMARY_TRUNCATE_CHARS,
                    timeout=cfg.SUMMARY_TIMEOUT,
                ),
            ]
        )

    def rag_agent_ai(self, key: RepositoryKey, openai_api_key: Optional[str] = None) -> RagAgentAi:
        return RagAgentAi(
            self.summary_chain(openai_api_key),
            self.get_embeddings_client(openai_api_key),
            self.get_vector_store(key),
            top_k=self.config.QUERY_TOP_K,
        )

    def github_repo(self, key: RepositoryKey) -> GithubRepo:
        return GithubRepo(
            key.owner,
            key.repo,
            token=self.config.GITHUB_API_TOKEN,
            main_branch=self.config.BRANCH,
            api_url=self.config.GITHUB_API_URL,
            batch_size=self.config.FETCH_BATCH_SIZE,
            batch_delay=self.config.FETCH_BATCH_DELAY,
        )

    def sync_orchestrator(self, key: RepositoryKey, openai_api_key: Optional[str] = None) -> SyncOrchestrator:
        return SyncOrchestrator(
            self.github_repo(key),
            self.rag_agent_ai(key, openai_api_key),
            self.tracker_store().for_repository(key),
            max_attempts=self.config.EMBED_MAX_ATTEMPTS,
            retry_delay=self.config.EMBED_RETRY_DELAY,
        )
