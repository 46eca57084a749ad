"""MCP prompt registry.

Prompts are predefined conversation/workflow templates that the client can invoke explicitly.
"""

from __future__ import annotations

from typing import Any

from mcp.server.fastmcp import FastMCP


def _format_level(level: str) -> str:
    """Normalize a level filter for prompt display."""
    name = level.strip().lower()
    return name or "all"


def register_prompts(mcp: FastMCP) -> None:
    """Register prompt templates on the MCP server."""

    @mcp.prompt()
    def triage_live_logs(source: str, level: str = "error", search: str = "") -> list[dict[str, Any]]:
        """Build a prompt for triaging a live tail."""
        call_lines = [f"- source: {source}", f"- level: {_format_level(level)}"]
        if search.strip():
            call_lines.append(f"- search: {search.strip()}")
        call_block = "\n".join(call_lines)
        return [
            {
                "role": "system",
                "content": (
                    "You are a senior incident triage assistant for deployed services. "
                    "Provide concise, evidence-based summaries from live log output. "
                    "Do not invent details; if the evidence is insufficient, say so."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Triage the live logs of a service. Follow this workflow:\n"
                    "- Call open_tail for the source first (it is safe to call if already open).\n"
                    "- Call get_visible_lines with the parameters below.\n"
                    "- If no lines are returned, check tail_status: a last_error means the "
                    "source could not be fetched; otherwise suggest widening the level to 'all'.\n"
                    "- To follow new output, call get_visible_lines again with after_sequence_id "
                    "set to the largest sequence_id you have seen.\n"
                    "- Use only tool output for evidence; do not fabricate lines.\n\n"
                    "Call get_visible_lines with:\n"
                    f"{call_block}\n\n"
                    "Return this structure:\n"
                    "1) What is happening (1-3 bullets)\n"
                    "2) Evidence (2-5 quoted lines with their sequence_id)\n"
                    "3) Suspected root cause (1-2 sentences; say 'Unknown' if unclear)\n"
                    "4) Next actions (2-4 bullets)\n"
                ),
            },
            {
                "role": "user",
                "content": [
                    {
                        "type": "text",
                        "text": "Optional: the full current tail is available via:",
                    },
                    {"type": "resource", "uri": f"tail://{source}"},
                ],
            },
        ]
