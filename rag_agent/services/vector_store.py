from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Mapping, Optional

from qdrant_client import QdrantClient
from qdrant_client.http.models import (
    FieldCondition,
    Filter,
    IsNullCondition,
    MatchValue,
    PayloadField,
    PointIdsList,
    PointStruct,
    Range,
)

from .hashing import point_id_for
from .types import MetadataValue, VectorEntry, VectorMatch

logger = logging.getLogger(__name__)

QDRANT_TIMEOUT = float(os.getenv("QDRANT_TIMEOUT", "30"))

# Payload key holding the 40-hex vector id next to the caller's metadata.
VECTOR_ID_KEY = "vector_id"


def build_filter(metadata: Optional[Mapping[str, MetadataValue]]) -> Optional[Filter]:
    """Exact-match ``must`` filter over scalar metadata values."""
    if not metadata:
        return None
    must: List[Any] = []
    for key, value in metadata.items():
        if value is None:
            must.append(IsNullCondition(is_null=PayloadField(key=key)))
        elif isinstance(value, float) and not isinstance(value, bool):
            must.append(FieldCondition(key=key, range=Range(gte=value, lte=value)))
        else:
            must.append(FieldCondition(key=key, match=MatchValue(value=value)))
    return Filter(must=must)


class VectorStore:
    """Qdrant-backed index of one repository, keyed by 40-hex vector ids."""

    def __init__(
        self,
        collection: str,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[QdrantClient] = None,
    ):
        self.collection = collection
        self.client = client or QdrantClient(url=url, api_key=api_key or None, timeout=QDRANT_TIMEOUT)

    def upsert(self, entries: List[VectorEntry]) -> None:
        if not entries:
            return
        points = [
            PointStruct(
                id=point_id_for(entry.id),
                vector=list(entry.values),
                payload={**entry.metadata, VECTOR_ID_KEY: entry.id},
            )
            for entry in entries
        ]
        self.client.upsert(collection_name=self.collection, points=points)

    def get_by_ids(self, ids: List[str]) -> List[VectorEntry]:
        if not ids:
            return []
        records = self.client.retrieve(
            collection_name=self.collection,
            ids=[point_id_for(i) for i in ids],
            with_payload=True,
            with_vectors=True,
        )
        return [self._to_entry(r) for r in records]

    def delete_by_ids(self, ids: List[str]) -> int:
        """Delete the given ids; returns how many of them actually existed."""
        if not ids:
            return 0
        existing = self.client.retrieve(
            collection_name=self.collection,
            ids=[point_id_for(i) for i in ids],
            with_payload=False,
            with_vectors=False,
        )
        if not existing:
            return 0
        self.client.delete(
            collection_name=self.collection,
            points_selector=PointIdsList(points=[r.id for r in existing]),
        )
        return len(existing)

    def query(
        self,
        vector: List[float],
        top_k: int = 20,
        filter: Optional[Mapping[str, MetadataValue]] = None,
        return_metadata: bool = True,
    ) -> List[VectorMatch]:
        response = self.client.query_points(
            collection_name=self.collection,
            query=list(vector),
            limit=top_k,
            query_filter=build_filter(filter),
            with_payload=True,
            with_vectors=False,
        )
        matches = []
        for point in response.points:
            payload = dict(point.payload or {})
            vector_id = payload.pop(VECTOR_ID_KEY, None) or str(point.id)
            matches.append(VectorMatch(id=vector_id, score=point.score, metadata=payload if return_metadata else None))
        return matches

    @staticmethod
    def _to_entry(record: Any) -> VectorEntry:
        payload: Dict[str, Any] = dict(record.payload or {})
        vector_id = payload.pop(VECTOR_ID_KEY, None) or str(record.id)
        values = record.vector or []
        if isinstance(values, dict):
            # Named vectors: this collection only ever has the default one.
            values = next(iter(values.values()), [])
        return VectorEntry(id=vector_id, values=list(values), metadata=payload)
