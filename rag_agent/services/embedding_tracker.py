from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, Session, SQLModel, create_engine, select

from .types import RepositoryKey


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncState(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(index=True, unique=True)
    latest_commit: Optional[str] = None
    last_sync_status: Optional[str] = None
    last_sync_error: Optional[str] = Field(default=None, sa_column=Column(Text))
    last_sync_started_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    last_sync_finished_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class ErroredFile(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("key", "path"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    key: str = Field(index=True)
    path: str
    content: str = Field(sa_column=Column(Text, nullable=False))
    recorded_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class EmbeddingTrackerStore:
    """SQLite store of per-repository sync state.

    ``get(name)`` hands out a :class:`FileEmbeddingTracker` for one name; all
    handles for the same name share a lock, so calls against one repository
    see a single serialized timeline.
    """

    def __init__(self, db_url: Optional[str] = None, db_path: Optional[Path] = None):
        if not db_url:
            if not db_path:
                raise ValueError("Unable to resolve tracker database path.")
            resolved = Path(db_path).expanduser()
            resolved.parent.mkdir(parents=True, exist_ok=True)
            db_url = f"sqlite:///{resolved.as_posix()}"
        self.db_url = db_url
        self.engine = create_engine(db_url, connect_args={"check_same_thread": False})
        SQLModel.metadata.create_all(self.engine)
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, name: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            return lock

    def get(self, name: str) -> "FileEmbeddingTracker":
        tracker = FileEmbeddingTracker(self, name, self._lock_for(name))
        tracker.ensure()
        return tracker

    def for_repository(self, key: RepositoryKey) -> "FileEmbeddingTracker":
        return self.get(key.name)

    def session(self) -> Session:
        return Session(self.engine)


class FileEmbeddingTracker:
    """Last synced commit and errored files for one repository."""

    def __init__(self, store: EmbeddingTrackerStore, name: str, lock: threading.RLock):
        self.store = store
        self.name = name
        self._lock = lock

    def _state(self, session: Session) -> SyncState:
        state = session.exec(select(SyncState).where(SyncState.key == self.name)).first()
        if state is None:
            state = SyncState(key=self.name)
            session.add(state)
            session.commit()
            session.refresh(state)
        return state

    def ensure(self) -> None:
        with self._lock, self.store.session() as session:
            self._state(session)

    def get_latest_commit(self) -> Optional[str]:
        with self._lock, self.store.session() as session:
            return self._state(session).latest_commit

    def set_latest_commit(self, commit: str) -> None:
        with self._lock, self.store.session() as session:
            state = self._state(session)
            state.latest_commit = commit
            state.updated_at = _utcnow()
            session.add(state)
            session.commit()

    def file_errored(self, filename: str, content: str) -> None:
        with self._lock, self.store.session() as session:
            row = session.exec(
                select(ErroredFile).where(ErroredFile.key == self.name, ErroredFile.path == filename)
            ).first()
            if row is None:
                row = ErroredFile(key=self.name, path=filename, content=content)
            else:
                row.content = content
                row.recorded_at = _utcnow()
            session.add(row)
            session.commit()

    def clear_errored_files(self) -> None:
        with self._lock, self.store.session() as session:
            for row in session.exec(select(ErroredFile).where(ErroredFile.key == self.name)).all():
                session.delete(row)
            session.commit()

    def get_errored_files(self) -> Dict[str, str]:
        with self._lock, self.store.session() as session:
            rows = session.exec(
                select(ErroredFile).where(ErroredFile.key == self.name).order_by(ErroredFile.id)
            ).all()
            return {row.path: row.content for row in rows}

    def get_errored_filenames_as_array(self) -> List[str]:
        return list(self.get_errored_files().keys())

    def record_sync_status(
        self,
        status: str,
        *,
        error: Optional[str] = None,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
    ) -> None:
        with self._lock, self.store.session() as session:
            state = self._state(session)
            state.last_sync_status = status
            state.last_sync_error = error
            if started_at is not None:
                state.last_sync_started_at = started_at
            if finished_at is not None:
                state.last_sync_finished_at = finished_at
            state.updated_at = _utcnow()
            session.add(state)
            session.commit()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock, self.store.session() as session:
            state = self._state(session)
            data = {
                "key": self.name,
                "latest_commit": state.latest_commit,
                "last_sync_status": state.last_sync_status,
                "last_sync_error": state.last_sync_error,
                "last_sync_started_at": state.last_sync_started_at,
                "last_sync_finished_at": state.last_sync_finished_at,
                "updated_at": state.updated_at,
            }
        data["errored_files"] = self.get_errored_filenames_as_array()
        return data
