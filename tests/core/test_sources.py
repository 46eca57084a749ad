from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from mcp_log_tail_server.core.decoder import decode, decode_fragments
from mcp_log_tail_server.core.models import Stream
from mcp_log_tail_server.core.sources import (
    CaptainLogSource,
    FileSnapshotSource,
    PushHub,
    SourceError,
    encode_records,
)


def _captain(handler) -> CaptainLogSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CaptainLogSource("https://captain.example.com/", "secret", client=client)


@pytest.mark.asyncio
async def test_captain_fetch_returns_hex_logs() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": 100, "data": {"logs": "01000000" + "6869"}})

    source = _captain(handler)
    blob = await source.fetch_snapshot("api")

    assert blob == "010000006869"
    assert decode(blob) == "hi"
    request = seen[0]
    assert request.url.path == "/api/v2/user/apps/appData/api/logs"
    assert request.url.params["encoding"] == "hex"
    assert request.headers["x-captain-auth"] == "secret"


@pytest.mark.asyncio
async def test_captain_non_ok_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": 1106, "description": "Auth token corrupted"})

    with pytest.raises(SourceError, match="Auth token corrupted"):
        await _captain(handler).fetch_snapshot("api")


@pytest.mark.asyncio
async def test_captain_missing_logs_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": 100, "data": {}})

    with pytest.raises(SourceError, match="data.logs"):
        await _captain(handler).fetch_snapshot("api")


@pytest.mark.asyncio
async def test_captain_http_error_raises_source_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(SourceError, match="HTTP 502") as info:
        await _captain(handler).fetch_snapshot("api")
    assert isinstance(info.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_captain_non_json_body_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>login</html>")

    with pytest.raises(SourceError, match="non-JSON"):
        await _captain(handler).fetch_snapshot("api")


@pytest.mark.asyncio
async def test_file_source_serves_whole_file_in_order(tmp_path: Path) -> None:
    text = "2025-12-30T08:12:05 second\nno timestamp\n2025-12-30T08:12:01 first\n"
    (tmp_path / "app.log").write_text(text, encoding="utf-8")
    source = FileSnapshotSource(tmp_path)

    blob = await source.fetch_snapshot("app.log")

    assert decode(blob) == text
    assert [f.stream for f in decode_fragments(blob)] == [Stream.STDOUT]


@pytest.mark.asyncio
async def test_file_source_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        await FileSnapshotSource(tmp_path).fetch_snapshot("missing.log")


def test_file_source_rejects_paths_outside_base_dir(tmp_path: Path) -> None:
    source = FileSnapshotSource(tmp_path / "logs")
    with pytest.raises(ValueError, match="escapes"):
        source.resolve("../secrets.log")


def test_file_source_base_dir_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_TAIL_BASE_DIR", str(tmp_path))
    assert FileSnapshotSource().base_dir == tmp_path.resolve()


def test_encode_records_decodes_back() -> None:
    blob = encode_records(["one\n", "two\n"])
    assert decode(blob) == "one\ntwo\n"


def test_push_hub_delivers_until_unsubscribed() -> None:
    hub = PushHub()
    got: list[tuple[str, object]] = []
    unsubscribe = hub.subscribe_push("api", lambda line, stream: got.append((line, stream)))

    assert hub.publish("api", "hello", "stderr") == 1
    assert hub.publish("other", "ignored") == 0

    unsubscribe()
    unsubscribe()
    assert hub.publish("api", "late") == 0
    assert got == [("hello", "stderr")]
    assert hub.subscriber_count("api") == 0


def test_push_hub_isolates_failing_subscriber() -> None:
    hub = PushHub()
    got: list[str] = []

    def broken(line: str, stream: object) -> None:
        raise RuntimeError("subscriber bug")

    hub.subscribe_push("api", broken)
    hub.subscribe_push("api", lambda line, stream: got.append(line))

    assert hub.publish("api", "hello") == 2
    assert got == ["hello"]
