"""MCP resource registry.

Resources are addressable by URI and can be fetched by the MCP client on demand.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import unquote

from mcp.server.fastmcp import FastMCP

from mcp_log_tail_server.core.classifier import LEVEL_KEYWORDS
from mcp_log_tail_server.core.filter_view import export_text
from mcp_log_tail_server.core.models import TailStatus
from mcp_log_tail_server.core.session_manager import SessionManager


def read_tail_text(manager: SessionManager, source: str) -> str:
    """Return all lines currently held by an open tail.

    ``source`` may be percent-encoded so names containing '/' fit in one URI segment.
    """
    name = unquote(source)
    session = manager.get(name)
    if session is None:
        raise ValueError(f"No open tail for '{name}'")
    return export_text(session.get_visible_lines())


def register_resources(mcp: FastMCP, manager: SessionManager) -> None:
    """Register resource handlers on the MCP server."""

    @mcp.resource("app://log-tail/help")
    def help_resource() -> str:
        """Return a short list of available resource URIs."""
        open_tails = ", ".join(manager.names()) or "(none)"
        return (
            "Resources:\n"
            "- app://log-tail/help\n"
            "- app://log-tail/config/level-keywords\n"
            "- app://log-tail/schemas/tail-status\n"
            "- tail://{source} (current lines of an open tail, newline-joined; encode '/' as %2F)\n"
            f"\nOpen tails: {open_tails}\n"
        )

    @mcp.resource("app://log-tail/config/level-keywords")
    def level_keywords() -> dict[str, list[str]]:
        """Return the substrings used to classify levels, in priority order."""
        return {level.value: list(keys) for level, keys in LEVEL_KEYWORDS}

    @mcp.resource("app://log-tail/schemas/tail-status")
    def tail_status_schema() -> dict[str, Any]:
        """Return the JSON schema for tail status flags."""
        return TailStatus.model_json_schema()

    @mcp.resource("tail://{source}")
    def tail_text(source: str) -> str:
        """Return all lines currently held by an open tail (percent-encode '/' in the source)."""
        return read_tail_text(manager, source)
