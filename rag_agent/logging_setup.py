from __future__ import annotations

import logging
import sys
from typing import Optional


def configure_logging(level: Optional[str] = None) -> None:
    """Route every ``rag_agent`` logger to stdout with one shared format."""
    resolved = logging.getLevelName((level or "INFO").upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(
        stream=sys.stdout,
        level=resolved,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    # httpx logs every request at INFO; the GitHub client already does that.
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
