from __future__ import annotations

from typing import Dict, List, Optional

from rag_agent.services.rag_agent_ai import RagAgentAi
from rag_agent.services.types import VectorEntry, VectorMatch


class DummySummaries:
    def __init__(self, summary: Optional[str] = "a summary"):
        self.summary = summary
        self.calls: List[str] = []

    def summarize(self, filename, content):
        self.calls.append(filename)
        return self.summary


class DummyEmbeddings:
    model = "dummy-embedding"

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.texts: List[str] = []

    def embed(self, texts):
        if self.fail:
            raise RuntimeError("embedding service down")
        self.texts.extend(texts)
        return [[float(len(t)), 0.5] for t in texts]


class DummyStore:
    """Dict-backed stand-in for VectorStore."""

    def __init__(self):
        self.entries: Dict[str, VectorEntry] = {}
        self.writes = 0
        self.last_query = None

    def upsert(self, entries):
        self.writes += 1
        for entry in entries:
            self.entries[entry.id] = entry

    def get_by_ids(self, ids):
        return [self.entries[i] for i in ids if i in self.entries]

    def delete_by_ids(self, ids):
        removed = [i for i in ids if self.entries.pop(i, None) is not None]
        return len(removed)

    def query(self, vector, top_k=20, filter=None, return_metadata=True):
        self.last_query = {"top_k": top_k, "filter": filter}
        return [
            VectorMatch(id=e.id, score=1.0, metadata=dict(e.metadata) if return_metadata else None)
            for e in list(self.entries.values())[:top_k]
        ]


def make_ai(summary: Optional[str] = "a summary", fail_embed: bool = False, top_k: int = 20):
    """RagAgentAi wired to in-memory dummies; returns ``(ai, store)``."""
    store = DummyStore()
    return RagAgentAi(DummySummaries(summary), DummyEmbeddings(fail_embed), store, top_k=top_k), store
