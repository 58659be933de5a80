from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Header, HTTPException, Request

from rag_agent.config import Config
from rag_agent.services.initializers import Initializer
from rag_agent.services.types import RepositoryKey


def _config(request: Request) -> Config:
    return request.app.state.config


def _initializer(request: Request) -> Initializer:
    return request.app.state.initializer


def require_api_key(request: Request, rag_agent_api_key: Optional[str] = Header(default=None)) -> None:
    expected = _config(request).RAG_AGENT_API_KEY
    if not expected:
        return
    if not rag_agent_api_key or not hmac.compare_digest(rag_agent_api_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


def openai_key_override(openai_api_key: Optional[str] = Header(default=None)) -> Optional[str]:
    return openai_api_key or None


def repository_key(owner: str, repo: str) -> RepositoryKey:
    return RepositoryKey(owner=owner, repo=repo)
