from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from rag_agent.models.vectors import (
    FileCreateRequest,
    FileDeleteRequest,
    MetadataRequest,
    SimilarRequest,
    SimilarResponse,
)
from rag_agent.services.rag_agent_ai import RagAgentAi
from rag_agent.services.types import RepositoryKey

from .dependencies import _initializer, openai_key_override, repository_key, require_api_key

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/{owner}/{repo}", tags=["vectors"], dependencies=[Depends(require_api_key)])


def _ai(request: Request, key: RepositoryKey, openai_api_key: Optional[str]) -> RagAgentAi:
    try:
        return _initializer(request).rag_agent_ai(key, openai_api_key)
    except Exception as exc:
        logger.exception("Could not initialize clients for %s", key.name)
        raise HTTPException(status_code=503, detail=f"Vector index unavailable: {exc}")


@router.post("/similar", response_model=SimilarResponse)
def similar(
    request: Request,
    req: SimilarRequest,
    key: RepositoryKey = Depends(repository_key),
    openai_api_key: Optional[str] = Depends(openai_key_override),
):
    ai = _ai(request, key, openai_api_key)
    matches = ai.similar(req.content, {"type": req.type} if req.type else None, req.top_k)
    return {"data": [m.to_dict() for m in matches]}


@router.post("/file")
def create_file(
    request: Request,
    req: FileCreateRequest,
    key: RepositoryKey = Depends(repository_key),
    openai_api_key: Optional[str] = Depends(openai_key_override),
):
    ai = _ai(request, key, openai_api_key)
    if not ai.create(req.path, req.content, {"type": "file"}):
        raise HTTPException(status_code=500, detail="Failed to embed file")
    return {"data": {"created": True}}


@router.delete("/file")
def delete_file(
    request: Request,
    req: FileDeleteRequest,
    key: RepositoryKey = Depends(repository_key),
    openai_api_key: Optional[str] = Depends(openai_key_override),
):
    count = _ai(request, key, openai_api_key).delete(req.path)
    return {"data": {"deleted": count == 1}}


@router.post("/metadata")
def add_metadata(
    request: Request,
    req: MetadataRequest,
    key: RepositoryKey = Depends(repository_key),
    openai_api_key: Optional[str] = Depends(openai_key_override),
):
    ai = _ai(request, key, openai_api_key)
    if not ai.is_valid_metadata(req.metadata):
        raise HTTPException(status_code=400, detail="Metadata values must be strings, numbers, booleans or null")
    if not ai.add_metadata(req.path, req.metadata):
        raise HTTPException(status_code=404, detail=f"Vector for {req.path} not found")
    return {"data": {"updated": True}}
