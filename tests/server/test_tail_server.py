from __future__ import annotations

from pathlib import Path

import pytest
from mcp.server.fastmcp import FastMCP

from mcp_log_tail_server.core.config import TailConfig
from mcp_log_tail_server.core.models import SessionState
from mcp_log_tail_server.core.session_manager import SessionManager
from mcp_log_tail_server.core.sources import CaptainLogSource, FileSnapshotSource
from mcp_log_tail_server.server.tail_server import build_source_from_env, make_lifespan


@pytest.mark.asyncio
async def test_lifespan_stops_tails_and_closes_http_client(tmp_path: Path) -> None:
    (tmp_path / "app.log").write_text("hello\n", encoding="utf-8")
    files = FileSnapshotSource(tmp_path)
    manager = SessionManager(fetch_snapshot=files.fetch_snapshot, config=TailConfig(poll_interval=60))
    captain = CaptainLogSource("https://captain.example.com")

    async with make_lifespan(manager, captain)(FastMCP("test")):
        session = await manager.open("app.log")
        assert session.state is SessionState.POLLING

    assert session.state is SessionState.CLOSED
    assert manager.names() == []
    assert captain._client.is_closed


def test_build_source_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    config = TailConfig()
    monkeypatch.setenv("LOG_TAIL_BASE_DIR", str(tmp_path))
    monkeypatch.delenv("LOG_TAIL_SOURCE", raising=False)
    source = build_source_from_env(config)
    assert isinstance(source, FileSnapshotSource)
    assert source.base_dir == tmp_path.resolve()

    monkeypatch.setenv("LOG_TAIL_SOURCE", "captain")
    monkeypatch.delenv("LOG_TAIL_API_URL", raising=False)
    with pytest.raises(ValueError, match="LOG_TAIL_API_URL"):
        build_source_from_env(config)

    monkeypatch.setenv("LOG_TAIL_API_URL", "https://captain.example.com/")
    assert isinstance(build_source_from_env(config), CaptainLogSource)

    monkeypatch.setenv("LOG_TAIL_SOURCE", "s3")
    with pytest.raises(ValueError, match="captain"):
        build_source_from_env(config)
