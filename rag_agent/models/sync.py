from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class LatestCommitRequest(BaseModel):
    sha: str


class LatestCommitResponse(BaseModel):
    data: Optional[str] = None


class SyncResultOut(BaseModel):
    repository: str
    status: str
    phase: str
    mode: Optional[str] = None
    commit: Optional[str] = None
    previous_commit: Optional[str] = None
    files_targeted: int = 0
    files_fetched: int = 0
    files_embedded: int = 0
    files_errored: int = 0
    files_deleted: int = 0
    errored_files: List[str] = []
    error: Optional[str] = None
    started_at: datetime
    finished_at: Optional[datetime] = None


class SyncStatusOut(BaseModel):
    key: str
    latest_commit: Optional[str] = None
    errored_files: List[str] = []
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = None
    last_sync_started_at: Optional[datetime] = None
    last_sync_finished_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SyncResponse(BaseModel):
    data: SyncResultOut
