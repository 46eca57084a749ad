from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

STDIN = "00000000"
STDOUT = "01000000"
STDERR = "02000000"


def hex_record(text: str, marker: str = STDOUT) -> str:
    return marker + text.encode("utf-8").hex()


class ScriptedSource:
    """Fake snapshot source returning queued blobs; repeats the last one when drained.

    Set ``gate`` to an asyncio.Event to hold fetches until it is set.
    """

    def __init__(self, *blobs: str | Exception) -> None:
        self._queue: list[str | Exception] = list(blobs)
        self._last: str | Exception = ""
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    def push(self, blob: str | Exception) -> None:
        self._queue.append(blob)

    async def fetch_snapshot(self, source_name: str) -> str:
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self._queue:
            self._last = self._queue.pop(0)
        if isinstance(self._last, Exception):
            raise self._last
        return self._last


@pytest.fixture
def make_blob() -> Callable[..., str]:
    def _make(*lines: str, marker: str = STDOUT) -> str:
        return "".join(hex_record(line + "\n", marker) for line in lines)

    return _make


@pytest.fixture
def scripted_source() -> type[ScriptedSource]:
    return ScriptedSource
