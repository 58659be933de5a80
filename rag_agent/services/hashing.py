from __future__ import annotations

import hashlib
import uuid


def create_40_char_hash(message: str) -> str:
    """SHA-1 hex digest of ``message`` (UTF-8). Used as the vector id of a path."""
    return hashlib.sha1(message.encode("utf-8")).hexdigest()


def point_id_for(vector_id: str) -> str:
    # Qdrant only accepts UUIDs or unsigned ints as point ids.
    return str(uuid.UUID(hex=vector_id[:32]))
