from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from .embedding_tracker import FileEmbeddingTracker
from .github_repo import GithubRepo
from .rag_agent_ai import RagAgentAi
from .types import FileChangeSet, FileRecord

logger = logging.getLogger(__name__)

DEFAULT_FILE_METADATA = {"type": "file"}


class SyncPhase(str, Enum):
    IDLE = "idle"
    DIFFING = "diffing"
    FETCHING = "fetching"
    EMBEDDING = "embedding"
    RECONCILING = "reconciling"
    FAILED = "failed"


class SyncStatus(str, Enum):
    RUNNING = "running"
    NOOP = "noop"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class SyncError(RuntimeError):
    """Raised inside a cycle when a step cannot produce a trustworthy result."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncResult:
    """Outcome of one sync cycle."""

    repository: str
    status: SyncStatus = SyncStatus.RUNNING
    phase: SyncPhase = SyncPhase.IDLE
    mode: Optional[str] = None
    commit: Optional[str] = None
    previous_commit: Optional[str] = None
    files_targeted: int = 0
    files_fetched: int = 0
    files_embedded: int = 0
    files_errored: int = 0
    files_deleted: int = 0
    errored_files: List[str] = field(default_factory=list)
    error: Optional[str] = None
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status != SyncStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["phase"] = self.phase.value
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


def merge_targets(*groups: Iterable[str], exclude: Iterable[str] = ()) -> List[str]:
    """Concatenate path groups in order, dropping duplicates and excluded paths."""
    skip = set(exclude)
    seen = set()
    out: List[str] = []
    for group in groups:
        for path in group:
            if path in skip or path in seen:
                continue
            seen.add(path)
            out.append(path)
    return out


class SyncOrchestrator:
    """Runs one diff, fetch, embed, reconcile cycle for a single repository."""

    def __init__(
        self,
        github: GithubRepo,
        ai: RagAgentAi,
        tracker: FileEmbeddingTracker,
        max_attempts: int = 5,
        retry_delay: float = 1.0,
        file_metadata: Optional[Mapping[str, Any]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.github = github
        self.ai = ai
        self.tracker = tracker
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.file_metadata = dict(DEFAULT_FILE_METADATA if file_metadata is None else file_metadata)
        self._sleep = sleep

    async def run_cycle(self) -> SyncResult:
        result = SyncResult(repository=self.tracker.name)
        await self._record_status(result)
        try:
            await self._run(result)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Sync cycle failed for %s during %s", self.tracker.name, result.phase.value)
            result.status = SyncStatus.FAILED
            result.phase = SyncPhase.FAILED
            result.error = str(exc) or exc.__class__.__name__
        result.finished_at = _utcnow()
        await self._record_status(result)
        return result

    async def _run(self, result: SyncResult) -> None:
        result.phase = SyncPhase.DIFFING
        current = await self.github.get_current_commit_sha()
        if not current:
            raise SyncError("Could not resolve the current commit of the main branch")
        result.commit = current

        previous = await asyncio.to_thread(self.tracker.get_latest_commit)
        result.previous_commit = previous
        if previous and previous == current:
            logger.info("No new commits for %s (at %s)", self.tracker.name, current)
            result.status = SyncStatus.NOOP
            result.phase = SyncPhase.IDLE
            return

        if not previous:
            logger.info("No tracked commit for %s. Fetching all files.", self.tracker.name)
            result.mode = "full"
            changes = FileChangeSet()
            targets = await self.github.get_all_file_paths()
            if not targets:
                raise SyncError("Repository tree listing returned no files")
            logger.info("%s files found.", len(targets))
        else:
            result.mode = "incremental"
            previous_errored = await asyncio.to_thread(self.tracker.get_errored_filenames_as_array)
            changes = await self.github.get_file_changes(previous, current)
            if changes.is_unavailable:
                raise SyncError(f"Comparison {previous}...{current} is unavailable")
            targets = merge_targets(previous_errored, changes.created, changes.modified, exclude=changes.deleted)
            logger.info(
                "Changes for %s: %s created, %s modified, %s deleted, %s previously errored",
                self.tracker.name,
                len(changes.created),
                len(changes.modified),
                len(changes.deleted),
                len(previous_errored),
            )

        # Files that fail again in this cycle are re-recorded by embed_file.
        await asyncio.to_thread(self.tracker.clear_errored_files)
        result.files_targeted = len(targets)

        async def embed_batch(files: List[FileRecord]) -> None:
            result.phase = SyncPhase.EMBEDDING
            logger.info("Embedding %s files", len(files))
            for record in files:
                result.files_fetched += 1
                if await self.embed_file(record):
                    result.files_embedded += 1
                else:
                    result.files_errored += 1
                    result.errored_files.append(record.path)
            result.phase = SyncPhase.FETCHING

        result.phase = SyncPhase.FETCHING
        await self.github.get_many_files(targets, embed_batch)

        result.phase = SyncPhase.RECONCILING
        for path in changes.deleted:
            result.files_deleted += await asyncio.to_thread(self.ai.delete, path)

        await asyncio.to_thread(self.tracker.set_latest_commit, current)
        result.status = SyncStatus.COMPLETED_WITH_ERRORS if result.files_errored else SyncStatus.COMPLETED
        result.phase = SyncPhase.IDLE
        logger.info(
            "Sync %s for %s at %s: %s embedded, %s errored, %s deleted",
            result.status.value,
            self.tracker.name,
            current,
            result.files_embedded,
            result.files_errored,
            result.files_deleted,
        )

    async def embed_file(self, record: FileRecord) -> bool:
        """Create the vector for one file, retrying up to ``max_attempts`` times."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                created = await asyncio.to_thread(self.ai.create, record.path, record.content, self.file_metadata)
            except Exception as exc:  # noqa: BLE001
                logger.error("Error embedding %s on attempt %s: %s", record.path, attempt, exc)
                created = False
            if created:
                logger.info("Successfully embedded %s", record.path)
                return True
            if attempt < self.max_attempts:
                logger.error("Failed to embed %s. Retrying in %s seconds...", record.path, self.retry_delay)
                await self._sleep(self.retry_delay)

        logger.error("Failed %s times to embed %s. Adding to errored files.", self.max_attempts, record.path)
        await asyncio.to_thread(self.tracker.file_errored, record.path, record.content)
        return False

    async def _record_status(self, result: SyncResult) -> None:
        try:
            await asyncio.to_thread(
                self.tracker.record_sync_status,
                result.status.value,
                error=result.error,
                started_at=result.started_at,
                finished_at=result.finished_at,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to record sync status for %s: %s", self.tracker.name, exc)
