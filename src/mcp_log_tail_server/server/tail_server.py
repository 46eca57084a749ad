"""MCP server entrypoint (stdio transport).

This module wires together:
- Tools: session control and reads (open/pause/resume/close a tail, read lines)
- Resources: addressable data blobs (e.g., current tail text via URI)
- Prompts: reusable conversation templates that clients can invoke

Run locally (stdio):
    python -m mcp_log_tail_server.server.tail_server
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from mcp_log_tail_server.core.config import TailConfig, resolve_tail_config
from mcp_log_tail_server.core.session_manager import SessionManager
from mcp_log_tail_server.core.sources import CaptainLogSource, FileSnapshotSource
from mcp_log_tail_server.prompts.registry import register_prompts
from mcp_log_tail_server.resources.registry import register_resources
from mcp_log_tail_server.tools.tail import (
    clear_tail_impl,
    close_tail_impl,
    export_logs_impl,
    get_visible_lines_impl,
    list_tails_impl,
    open_tail_impl,
    pause_tail_impl,
    refresh_tail_impl,
    resume_tail_impl,
    tail_status_impl,
)

LOGGER = logging.getLogger(__name__)

SOURCE_ENV = "LOG_TAIL_SOURCE"
API_URL_ENV = "LOG_TAIL_API_URL"
API_TOKEN_ENV = "LOG_TAIL_API_TOKEN"


def _configure_logging() -> None:
    """Configure a reasonable default logging setup.

    The MCP client typically captures stderr; keeping logs concise makes them easier to consume.
    """
    level_name = os.getenv("LOG_TAIL_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_source_from_env(config: TailConfig) -> CaptainLogSource | FileSnapshotSource:
    """Build the snapshot source selected by LOG_TAIL_SOURCE."""
    kind = os.getenv(SOURCE_ENV, "file").strip().lower()

    if kind == "captain":
        base_url = os.getenv(API_URL_ENV, "").strip()
        if not base_url:
            raise ValueError(f"{API_URL_ENV} is required when {SOURCE_ENV}=captain")
        return CaptainLogSource(
            base_url,
            os.getenv(API_TOKEN_ENV, ""),
            timeout=config.fetch_timeout or 10.0,
        )

    if kind == "file":
        return FileSnapshotSource()

    raise ValueError(f"{SOURCE_ENV} must be 'captain' or 'file'")


def make_lifespan(
    manager: SessionManager,
    source: CaptainLogSource | FileSnapshotSource | None = None,
) -> Callable[[FastMCP], AbstractAsyncContextManager[None]]:
    """Return a server lifespan that stops every tail and closes the source on shutdown."""

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await manager.close_all()
            if isinstance(source, CaptainLogSource):
                await source.aclose()
            LOGGER.debug("Log tail server shut down")

    return lifespan


config = resolve_tail_config()
log_source = build_source_from_env(config)
manager = SessionManager(fetch_snapshot=log_source.fetch_snapshot, config=config)

mcp = FastMCP("log-tail", json_response=True, lifespan=make_lifespan(manager, log_source))

register_resources(mcp, manager)
register_prompts(mcp)


@mcp.tool()
async def open_tail(source: str) -> dict[str, Any]:
    """Start (or reuse) a live tail for a source and return its status.

    Parameters
    ----------
    source:
        App name (captain source) or path under LOG_TAIL_BASE_DIR (file source).
    """
    return await open_tail_impl(manager, source=source)


@mcp.tool()
async def close_tail(source: str) -> dict[str, Any]:
    """Stop a tail and discard its lines."""
    return await close_tail_impl(manager, source=source)


@mcp.tool()
def pause_tail(source: str) -> dict[str, Any]:
    """Freeze the visible lines; fetching continues in the background."""
    return pause_tail_impl(manager, source=source)


@mcp.tool()
def resume_tail(source: str) -> dict[str, Any]:
    """Unfreeze and apply the newest data fetched while paused."""
    return resume_tail_impl(manager, source=source)


@mcp.tool()
async def refresh_tail(source: str) -> dict[str, Any]:
    """Fetch now instead of waiting for the next poll."""
    return await refresh_tail_impl(manager, source=source)


@mcp.tool()
def clear_tail(source: str) -> dict[str, Any]:
    """Clear the visible lines of a tail."""
    return clear_tail_impl(manager, source=source)


@mcp.tool()
def tail_status(source: str) -> dict[str, Any]:
    """Return status flags (loading, paused, line count, last error)."""
    return tail_status_impl(manager, source=source)


@mcp.tool()
def list_tails() -> dict[str, Any]:
    """List open tails and their status."""
    return list_tails_impl(manager)


@mcp.tool()
def get_visible_lines(
    source: str,
    level: str = "all",
    search: str = "",
    limit: int | None = None,
    after_sequence_id: int | None = None,
) -> dict[str, Any]:
    """Return filtered lines of an open tail.

    Parameters
    ----------
    level:
        "all", "error", "warning", "info" or "debug". Case-insensitive.
    search:
        Case-insensitive substring filter; combined with level as AND.
    limit:
        Maximum number of (newest) lines returned (hard-capped in the implementation).
    after_sequence_id:
        Only return lines newer than this sequence id.

    Returns
    -------
    dict:
        {"count": int, "total_matching": int, "lines": list[dict], "status": dict}
    """
    return get_visible_lines_impl(
        manager,
        source=source,
        level=level,
        search=search,
        limit=limit,
        after_sequence_id=after_sequence_id,
    )


@mcp.tool()
async def export_logs(
    source: str,
    level: str = "all",
    search: str = "",
    directory: str | None = None,
) -> dict[str, Any]:
    """Export filtered lines as newline-joined text, or write them into a directory.

    ``directory`` must be inside LOG_TAIL_BASE_DIR (default: the working directory).
    """
    return await export_logs_impl(
        manager,
        source=source,
        level=level,
        search=search,
        directory=directory,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Start the MCP server over stdio."""
    _configure_logging()
    LOGGER.debug("Starting MCP server (transport=stdio)")
    _ = argv or sys.argv[1:]
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
