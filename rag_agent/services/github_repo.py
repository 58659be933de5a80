from __future__ import annotations

import asyncio
import base64
import binascii
import inspect
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import quote

import httpx

from .types import ChangeStatus, FileChangeSet, FileRecord

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "rag-agent"

BatchCallback = Callable[[List[FileRecord]], Union[None, Awaitable[None]]]


class GithubRepo:
    """Read-only view of one GitHub repository through the REST API.

    Every call logs and swallows transport or HTTP errors: callers get an empty
    result (``""``, ``[]``, ``None`` or an ``unavailable`` change set) instead of
    an exception.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str = "",
        main_branch: str = "main",
        api_url: str = "https://api.github.com",
        batch_size: int = 10,
        batch_delay: float = 5.0,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.owner = owner
        self.repo = repo
        self.token = token
        self.main_branch = main_branch
        self.api_url = api_url.rstrip("/")
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.timeout = timeout
        self._client = client
        self._sleep = sleep

    @property
    def base_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    async def get_current_commit_sha(self) -> str:
        data = await self._request_json(f"{self.base_url}/branches/{self.main_branch}")
        sha = (data.get("commit") or {}).get("sha") if isinstance(data, dict) else None
        if not sha:
            logger.error("Error fetching %s branch for %s/%s", self.main_branch, self.owner, self.repo)
            return ""
        return sha

    async def get_all_file_paths(self) -> List[str]:
        data = await self._request_json(
            f"{self.base_url}/git/trees/{self.main_branch}",
            params={"recursive": "1"},
        )
        if not isinstance(data, dict):
            return []
        if data.get("truncated"):
            logger.warning("Tree listing for %s/%s was truncated by GitHub", self.owner, self.repo)
        return [entry["path"] for entry in data.get("tree") or [] if entry.get("type") == "blob" and entry.get("path")]

    async def get_file_changes(self, base: str, head: str) -> FileChangeSet:
        data = await self._request_json(f"{self.base_url}/compare/{base}...{head}")
        if not isinstance(data, dict):
            logger.error("Error fetching file changes %s...%s for %s/%s", base, head, self.owner, self.repo)
            return FileChangeSet.unavailable()
        return self.partition_changes(data.get("files") or [])

    @staticmethod
    def partition_changes(files: List[Dict[str, Any]]) -> FileChangeSet:
        """Split compare-API file entries into disjoint created/modified/deleted lists."""
        changes = FileChangeSet()
        seen = set()

        def _add(bucket: List[str], path: Optional[str]) -> None:
            if not path or path in seen:
                return
            seen.add(path)
            bucket.append(path)

        for entry in files:
            status = entry.get("status")
            filename = entry.get("filename")
            if status == "added":
                _add(changes.created, filename)
            elif status == "removed":
                _add(changes.deleted, filename)
            elif status == "modified":
                _add(changes.modified, filename)
            elif status == "renamed":
                _add(changes.deleted, entry.get("previous_filename"))
                _add(changes.created, filename)
        changes.status = ChangeStatus.CHANGES if seen else ChangeStatus.NO_CHANGES
        return changes

    async def get_file_content(self, file_path: str) -> Optional[str]:
        data = await self._request_json(
            f"{self.base_url}/contents/{quote(file_path)}",
            params={"ref": self.main_branch},
        )
        if not isinstance(data, dict):
            return None
        raw = data.get("content")
        if not raw:
            return None
        if data.get("encoding", "base64") != "base64":
            return raw
        try:
            return base64.b64decode(raw).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as exc:
            logger.warning("Could not decode content of %s: %s", file_path, exc)
            return None

    async def get_many_files(self, file_paths: List[str], batch_callback: BatchCallback) -> List[FileRecord]:
        """Fetch contents window by window, handing each window to ``batch_callback``."""
        results: List[FileRecord] = []
        windows = [file_paths[i:i + self.batch_size] for i in range(0, len(file_paths), self.batch_size)]
        for index, window in enumerate(windows):
            contents = await asyncio.gather(*(self.get_file_content(path) for path in window))
            batch = [FileRecord(path=path, content=content) for path, content in zip(window, contents) if content]
            skipped = len(window) - len(batch)
            if skipped:
                logger.info("Skipped %s of %s files in window %s (no content)", skipped, len(window), index + 1)
            if batch:
                outcome = batch_callback(batch)
                if inspect.isawaitable(outcome):
                    await outcome
                results.extend(batch)
            if index < len(windows) - 1:
                await self._sleep(self.batch_delay)
        return results

    async def _request_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Optional[Any]:
        try:
            logger.info("Making request to %s", url)
            if self._client is not None:
                response = await self._client.get(url, headers=self._headers(), params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(url, headers=self._headers(), params=params)
            self._log_rate_limit(response)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error making request to %s: %s", url, exc)
            return None

    @staticmethod
    def _log_rate_limit(response: httpx.Response) -> None:
        if response.headers.get("x-ratelimit-remaining") != "0":
            return
        logger.warning("GitHub rate limited.")
        limit = response.headers.get("x-ratelimit-limit")
        if limit:
            logger.warning("Hourly rate limit: %s", limit)
        used = response.headers.get("x-ratelimit-used")
        if used:
            logger.warning("Requests used in current window: %s", used)
        reset = response.headers.get("x-ratelimit-reset")
        if reset:
            try:
                reset_at = datetime.fromtimestamp(int(reset), tz=timezone.utc).isoformat()
            except ValueError:
                reset_at = "unknown"
            logger.warning("Window resets at: %s (%s)", reset, reset_at)
