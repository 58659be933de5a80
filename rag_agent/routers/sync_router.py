from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from rag_agent.models.sync import LatestCommitRequest, LatestCommitResponse, SyncResponse, SyncStatusOut
from rag_agent.services.types import RepositoryKey

from .dependencies import _initializer, openai_key_override, repository_key, require_api_key

router = APIRouter(prefix="/{owner}/{repo}", tags=["sync"], dependencies=[Depends(require_api_key)])


@router.get("/latest_commit", response_model=LatestCommitResponse)
def get_latest_commit(request: Request, key: RepositoryKey = Depends(repository_key)):
    tracker = _initializer(request).tracker_store().for_repository(key)
    return {"data": tracker.get_latest_commit()}


@router.post("/latest_commit", response_model=LatestCommitResponse)
def set_latest_commit(request: Request, req: LatestCommitRequest, key: RepositoryKey = Depends(repository_key)):
    tracker = _initializer(request).tracker_store().for_repository(key)
    tracker.set_latest_commit(req.sha)
    return {"data": req.sha}


@router.get("/sync/status", response_model=SyncStatusOut)
def get_sync_status(request: Request, key: RepositoryKey = Depends(repository_key)):
    return _initializer(request).tracker_store().for_repository(key).snapshot()


@router.post("/sync", response_model=SyncResponse)
async def run_sync(
    request: Request,
    key: RepositoryKey = Depends(repository_key),
    openai_api_key: Optional[str] = Depends(openai_key_override),
):
    # May create the Qdrant collection; blocking.
    orchestrator = await asyncio.to_thread(_initializer(request).sync_orchestrator, key, openai_api_key)
    result = await orchestrator.run_cycle()
    payload = {"data": result.to_dict()}
    if not result.ok:
        payload["error"] = result.error or "Sync failed"
        return JSONResponse(status_code=500, content=payload)
    return payload
