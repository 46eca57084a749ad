"""MCP tool implementations.

This module contains the *implementation* behind the exposed MCP tools.
Keep this layer thin: validate inputs, translate them into core calls, and
return JSON-serializable data structures.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from mcp_log_tail_server.core.filter_view import (
    export_filename,
    export_text,
    export_to_file,
    parse_level_filter,
)
from mcp_log_tail_server.core.models import LogLine
from mcp_log_tail_server.core.session_manager import SessionManager
from mcp_log_tail_server.core.sources import base_dir_from_env, safe_resolve
from mcp_log_tail_server.core.tail_session import TailSession

DEFAULT_LIMIT = 200
HARD_LIMIT = 5000


def _line_to_dict(line: LogLine) -> dict[str, Any]:
    """Convert a LogLine into a JSON-serializable dict."""
    return {
        "sequence_id": line.sequence_id,
        "text": line.text,
        "timestamp": line.timestamp.isoformat() if line.timestamp is not None else None,
        "level": line.level.value,
        "stream": line.stream.value if line.stream is not None else None,
    }


def _require_session(manager: SessionManager, source: str) -> TailSession:
    session = manager.get(source)
    if session is None:
        raise ValueError(f"No open tail for '{source}'. Call open_tail first.")
    return session


def _status_dict(session: TailSession) -> dict[str, Any]:
    return session.status().model_dump(mode="json")


async def open_tail_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    session = await manager.open(source)
    return _status_dict(session)


async def close_tail_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    closed = await manager.close(source)
    return {"source": source, "closed": closed}


def pause_tail_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    session = _require_session(manager, source)
    changed = session.pause()
    return {"changed": changed, **_status_dict(session)}


def resume_tail_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    session = _require_session(manager, source)
    changed = session.resume()
    return {"changed": changed, **_status_dict(session)}


async def refresh_tail_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    session = _require_session(manager, source)
    ran = await session.refresh()
    return {"refreshed": ran, **_status_dict(session)}


def clear_tail_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    session = _require_session(manager, source)
    session.clear()
    return _status_dict(session)


def tail_status_impl(manager: SessionManager, *, source: str) -> dict[str, Any]:
    return _status_dict(_require_session(manager, source))


def list_tails_impl(manager: SessionManager) -> dict[str, Any]:
    tails: list[dict[str, Any]] = []
    for name in manager.names():
        session = manager.get(name)
        if session is not None:
            tails.append(_status_dict(session))
    return {"tails": tails}


def get_visible_lines_impl(
    manager: SessionManager,
    *,
    source: str,
    level: str = "all",
    search: str = "",
    limit: int | None = None,
    after_sequence_id: int | None = None,
) -> dict[str, Any]:
    """Return the newest filtered lines, oldest first.

    Notes
    -----
    - ``after_sequence_id`` lets a follower fetch only lines it has not seen.
    - ``limit`` keeps the newest lines and is hard-capped.
    """
    if limit is None:
        limit = DEFAULT_LIMIT
    if limit <= 0:
        raise ValueError("limit must be > 0")
    limit = min(limit, HARD_LIMIT)

    session = _require_session(manager, source)
    lines = session.get_visible_lines(parse_level_filter(level), search)
    total = len(lines)
    if after_sequence_id is not None:
        lines = [ln for ln in lines if ln.sequence_id > after_sequence_id]
    lines = lines[-limit:]

    return {
        "source": source,
        "count": len(lines),
        "total_matching": total,
        "lines": [_line_to_dict(ln) for ln in lines],
        "status": _status_dict(session),
    }


async def export_logs_impl(
    manager: SessionManager,
    *,
    source: str,
    level: str = "all",
    search: str = "",
    directory: str | None = None,
    base_dir: str | Path | None = None,
) -> dict[str, Any]:
    """Export filtered lines as text, optionally writing them to a file.

    ``directory`` must resolve inside ``base_dir`` (default: LOG_TAIL_BASE_DIR or cwd).
    """
    session = _require_session(manager, source)
    lines = session.get_visible_lines(parse_level_filter(level), search)
    filename = export_filename(Path(source).name)

    if directory is None:
        return {"filename": filename, "count": len(lines), "text": export_text(lines)}

    root = Path(base_dir).resolve() if base_dir is not None else base_dir_from_env()
    out_dir = safe_resolve(root, directory, allow_base=True)
    path = await export_to_file(lines, out_dir / filename)
    return {"filename": filename, "count": len(lines), "path": str(path)}
