import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx
from fastmcp import FastMCP
from mcp.types import TextContent

from rag_agent.config import Config
from rag_agent.logging_setup import configure_logging

config = Config()
configure_logging(config.LOG_LEVEL)

logger = logging.getLogger(__name__)

RAG_URL = config.RAG_URL.rstrip("/")
MCP_PORT = config.MCP_PORT

mcp = FastMCP("rag-agent")


def _headers() -> Dict[str, str]:
    if config.RAG_AGENT_API_KEY:
        return {"rag-agent-api-key": config.RAG_AGENT_API_KEY}
    return {}


async def _call(method: str, path: str, payload: Optional[Dict[str, Any]] = None, timeout: float = 30) -> Any:
    async with httpx.AsyncClient(timeout=timeout) as client:
        if method == "GET":
            resp = await client.get(f"{RAG_URL}{path}", headers=_headers())
        else:
            resp = await client.post(f"{RAG_URL}{path}", json=payload, headers=_headers())
        resp.raise_for_status()
        return resp.json()


@mcp.tool()
async def similar_files(owner: str, repo: str, content: str, type: str | None = None, top_k: int = 8):
    """
    Find the files of `owner/repo` whose summaries are closest to `content`.

    Parameters
    ----------
    owner : str
        Repository owner (user or organization).
    repo : str
        Repository name.
    content : str
        Code or prose to compare against the indexed file summaries.
    type : str | None, optional
        Only return entries whose ``type`` metadata equals this value.
    top_k : int, optional
        Number of matches to return (default 8).

    Returns
    -------
    TextContent
        One block per match with the path, score and stored summary.
    """
    logger.info("called similar_files : %s/%s", owner, repo)
    try:
        payload: Dict[str, Any] = {"content": content, "top_k": top_k}
        if type:
            payload["type"] = type
        body = await _call("POST", f"/{owner}/{repo}/similar", payload)

        blocks = []
        for match in body.get("data", []):
            meta = match.get("metadata") or {}
            blocks.append(
                f"{meta.get('path', match.get('id'))}\n"
                f"score={match.get('score', 0.0):.4f}\n\n"
                f"{meta.get('summary', '')}\n{'-' * 60}\n"
            )
        if not blocks:
            return TextContent(type="text", text="No similar files found.")
        return TextContent(type="text", text="".join(blocks))
    except Exception as e:
        logger.error("Error in similar_files: %s", e)
        return TextContent(type="text", text=f"Error: {str(e)}")


@mcp.tool()
async def latest_commit(owner: str, repo: str):
    """Return the last commit of `owner/repo` whose files were embedded, and the sync status."""
    logger.info("called latest_commit : %s/%s", owner, repo)
    try:
        status = await _call("GET", f"/{owner}/{repo}/sync/status")
        return TextContent(type="text", text=json.dumps(status, ensure_ascii=False, indent=2))
    except Exception as e:
        return TextContent(type="text", text=f"Error: {str(e)}")


@mcp.tool()
async def sync_repository(owner: str, repo: str):
    """
    Run one sync cycle for `owner/repo`: diff against the last synced commit,
    embed created, modified and previously errored files, remove deleted ones.
    Returns the cycle result as JSON.
    """
    logger.info("called sync_repository : %s/%s", owner, repo)
    try:
        async with httpx.AsyncClient(timeout=None) as client:
            resp = await client.post(f"{RAG_URL}/{owner}/{repo}/sync", headers=_headers())
            body = resp.json()
        if resp.status_code >= 400:
            return TextContent(type="text", text=f"Error: {body.get('error', resp.status_code)}\n{json.dumps(body.get('data'), indent=2)}")
        return TextContent(type="text", text=json.dumps(body.get("data"), ensure_ascii=False, indent=2))
    except Exception as e:
        return TextContent(type="text", text=f"Error: {str(e)}")


if __name__ == "__main__":
    logger.info("Starting MCP server with HTTP transport on port %s", MCP_PORT)
    asyncio.run(mcp.run_async(transport="http", host="0.0.0.0", port=MCP_PORT))
