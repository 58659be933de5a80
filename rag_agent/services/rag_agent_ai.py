from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .generation import Embeddings, SummaryChain
from .hashing import create_40_char_hash
from .types import Metadata, VectorEntry, VectorMatch, invalid_metadata_keys, is_metadata_value
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 20


class RagAgentAi:
    """Summarize, embed and index files of one repository; answer similarity queries."""

    def __init__(self, summaries: SummaryChain, embeddings: Embeddings, store: VectorStore, top_k: int = DEFAULT_TOP_K):
        self.summaries = summaries
        self.embeddings = embeddings
        self.store = store
        self.top_k = top_k

    def delete(self, path: str) -> int:
        logger.info("Deleting vector for %s.", path)
        count = self.store.delete_by_ids([create_40_char_hash(path)])
        logger.info("Deleted %s vectors.", count)
        return count

    def create(self, path: str, content: str, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        logger.info("Creating vector for %s.", path)
        if metadata and not self.is_valid_metadata(metadata):
            logger.error("Invalid metadata for %s. Aborting vector creation.", path)
            return False

        summary = self.generate_summary(path, content)
        if not summary:
            logger.error("Failed to create summary for %s. Aborting vector creation.", path)
            return False

        vector = self.generate_vector(summary)
        if not vector:
            logger.error("Failed to create embeddings for %s. Aborting vector creation.", path)
            return False

        meta: Dict[str, Any] = {"path": path, "summary": summary}
        meta.update(metadata or {})
        self.store.upsert([VectorEntry(id=create_40_char_hash(path), values=vector, metadata=meta)])
        logger.info("Inserted vector for %s", path)
        return True

    def add_metadata(self, path: str, metadata: Mapping[str, Any]) -> bool:
        """Merge ``metadata`` onto the stored entry for ``path`` without re-embedding."""
        logger.info("Adding metadata for %s.", path)
        if not self.is_valid_metadata(metadata):
            logger.error("Invalid metadata for %s. Aborting metadata addition.", path)
            return False

        vector_id = create_40_char_hash(path)
        existing = self.store.get_by_ids([vector_id])
        if not existing:
            logger.error("Vector for %s not found. Aborting metadata addition.", path)
            return False

        entry = existing[0]
        merged = {**entry.metadata, **metadata}
        self.store.upsert([VectorEntry(id=vector_id, values=entry.values, metadata=merged)])
        logger.info("Added metadata for %s", path)
        return True

    def similar(
        self,
        content: str,
        metadata: Optional[Mapping[str, Any]] = None,
        num_results: Optional[int] = None,
    ) -> List[VectorMatch]:
        logger.info("Searching for similar content.")
        query_vector = self.generate_vector(content)
        if not query_vector:
            logger.error("Failed to generate embeddings for query.")
            return []

        matches = self.store.query(
            query_vector,
            top_k=num_results or self.top_k,
            filter=self.convert_metadata_to_filter(metadata) if metadata else None,
            return_metadata=True,
        )
        logger.info("Found %s matches.", len(matches))
        return matches

    def generate_summary(self, path: str, content: str) -> Optional[str]:
        return self.summaries.summarize(path, content)

    def generate_vector(self, text: str) -> Optional[List[float]]:
        logger.info("Generating vector.")
        try:
            vectors = self.embeddings.embed([text])
        except Exception as exc:  # noqa: BLE001
            logger.error('Error generating vector with model "%s": %s', self.embeddings.model, exc)
            return None
        if not vectors or not vectors[0]:
            logger.error('Embedding model "%s" returned an empty vector.', self.embeddings.model)
            return None
        return list(vectors[0])

    @staticmethod
    def convert_metadata_to_filter(metadata: Mapping[str, Any]) -> Metadata:
        filt: Metadata = {}
        for key, value in metadata.items():
            if is_metadata_value(value):
                filt[key] = value
            else:
                logger.warning("Invalid metadata filter value for key %s: %r", key, value)
        return filt

    @staticmethod
    def is_valid_metadata(metadata: Mapping[str, Any]) -> bool:
        bad = invalid_metadata_keys(metadata)
        for key in bad:
            logger.warning("Invalid metadata value for key %s: %r", key, metadata[key])
        return not bad
