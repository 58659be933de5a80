from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from rag_agent.config import Config
from rag_agent.logging_setup import configure_logging
from rag_agent.services.initializers import Initializer
from rag_agent.services.sync_orchestrator import SyncPhase, SyncResult, SyncStatus
from rag_agent.services.types import RepositoryKey

logger = logging.getLogger(__name__)


def parse_repository(value: str) -> RepositoryKey:
    owner, sep, repo = value.strip().partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ValueError(f"Expected <owner>/<repo>, got {value!r}")
    return RepositoryKey(owner=owner, repo=repo)


async def scheduled_handler(config: Config, repositories: List[RepositoryKey]) -> List[SyncResult]:
    """Run one sync cycle per repository, one after the other."""
    initializer = Initializer(config)
    results = []
    for key in repositories:
        logger.info("Starting sync cycle for %s/%s", key.owner, key.repo)
        try:
            orchestrator = await asyncio.to_thread(initializer.sync_orchestrator, key)
        except Exception:
            logger.exception("Could not initialize sync for %s/%s", key.owner, key.repo)
            results.append(
                SyncResult(
                    repository=key.name,
                    status=SyncStatus.FAILED,
                    phase=SyncPhase.FAILED,
                    error="initialization failed",
                )
            )
            continue
        results.append(await orchestrator.run_cycle())
    return results


def main(argv: Optional[List[str]] = None) -> int:
    config = Config()
    parser = argparse.ArgumentParser(description="Run one embedding sync cycle per repository.")
    parser.add_argument(
        "repositories",
        nargs="*",
        help="repositories as owner/repo (default: SYNC_REPOSITORIES)",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL)
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    names = args.repositories or config.SYNC_REPOSITORIES
    if not names:
        parser.error("no repositories given and SYNC_REPOSITORIES is empty")
    try:
        keys = [parse_repository(name) for name in names]
    except ValueError as exc:
        parser.error(str(exc))

    results = asyncio.run(scheduled_handler(config, keys))
    print(json.dumps([r.to_dict() for r in results], indent=2))
    return 0 if all(r.ok for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
