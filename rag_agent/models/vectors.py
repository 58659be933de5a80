from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

MetadataValue = Union[str, int, float, bool, None]


class FileCreateRequest(BaseModel):
    path: str = Field(min_length=1)
    content: str = Field(min_length=1)


class FileDeleteRequest(BaseModel):
    path: str = Field(min_length=1)


class MetadataRequest(BaseModel):
    path: str = Field(min_length=1)
    # Values are checked for scalar types by the service so the whole call can be rejected.
    metadata: Dict[str, Any]


class SimilarRequest(BaseModel):
    content: str = Field(min_length=1)
    type: Optional[str] = None
    top_k: Optional[int] = Field(default=None, ge=1, le=100)


class VectorMatchOut(BaseModel):
    id: str
    score: float
    metadata: Optional[Dict[str, MetadataValue]] = None


class SimilarResponse(BaseModel):
    data: List[VectorMatchOut]
