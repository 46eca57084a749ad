"""Ingestion collaborators.

Snapshot sources return the complete accumulated log history as a raw hex
blob on every call. Push sources deliver one line at a time to a callback.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Any

import aiofiles
import httpx

from .decoder import HEX_MARKERS
from .models import Stream

logger = logging.getLogger(__name__)

CAPTAIN_STATUS_OK = 100
CAPTAIN_AUTH_HEADER = "x-captain-auth"
BASE_DIR_ENV = "LOG_TAIL_BASE_DIR"
TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "replace"

_STDOUT_MARKER = next(h for h, s in HEX_MARKERS.items() if s is Stream.STDOUT)


class SourceError(RuntimeError):
    """A log source answered, but not with usable log data."""


class CaptainLogSource:
    """Fetch hex-encoded app logs from a CapRover-style REST API."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=5.0))
        self._owns_client = client is None

    def logs_url(self, source_name: str) -> str:
        return f"{self._base_url}/api/v2/user/apps/appData/{source_name}/logs"

    async def fetch_snapshot(self, source_name: str) -> str:
        """Return the raw hex log blob for one app."""
        headers = {CAPTAIN_AUTH_HEADER: self._token} if self._token else {}
        resp = await self._client.get(
            self.logs_url(source_name),
            params={"encoding": "hex"},
            headers=headers,
        )
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SourceError(f"Log fetch for {source_name} failed: HTTP {resp.status_code}") from e

        try:
            payload: dict[str, Any] = resp.json()
        except ValueError as e:
            raise SourceError(f"Log endpoint for {source_name} returned non-JSON body") from e

        status = payload.get("status")
        if status != CAPTAIN_STATUS_OK:
            description = payload.get("description") or "unknown error"
            raise SourceError(f"Log fetch for {source_name} failed (status={status}): {description}")

        logs = (payload.get("data") or {}).get("logs")
        if not isinstance(logs, str):
            raise SourceError(f"Log payload for {source_name} has no 'data.logs' string")
        return logs

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def base_dir_from_env() -> Path:
    raw = os.getenv(BASE_DIR_ENV, os.getcwd())
    return Path(raw).resolve()


def safe_resolve(base_dir: Path, name: str | Path, *, allow_base: bool = False) -> Path:
    """Resolve a path under base_dir, rejecting anything that escapes it."""
    p = Path(name).expanduser()
    if not p.is_absolute():
        p = base_dir / p
    p = p.resolve()
    if allow_base and p == base_dir:
        return p
    if base_dir not in p.parents:
        raise ValueError("Path escapes base dir")
    return p


class FileSnapshotSource:
    """Serve local log files as snapshot blobs.

    Source names are paths relative to the base directory. The whole file is
    sent as one stdout record, so line order is kept exactly as written.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir).resolve() if base_dir is not None else base_dir_from_env()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def resolve(self, source_name: str) -> Path:
        """Resolve a source name under the base directory."""
        return safe_resolve(self._base_dir, source_name)

    async def fetch_snapshot(self, source_name: str) -> str:
        path = self.resolve(source_name)
        if not path.is_file():
            raise FileNotFoundError(f"Log file not found: {path}")
        async with aiofiles.open(path, mode="rb") as f:
            data = await f.read()
        return encode_records([data.decode(TEXT_ENCODING, errors=TEXT_ERRORS)])


def encode_records(records: list[str], *, marker: str = _STDOUT_MARKER) -> str:
    """Encode text records as a raw hex blob, one marker per record."""
    return "".join(marker + r.encode(TEXT_ENCODING).hex() for r in records)


class PushHub:
    """In-memory publish/subscribe for pushed log lines."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callable[..., None]]] = defaultdict(list)

    def subscribe_push(self, source_name: str, on_line: Callable[..., None]) -> Callable[[], None]:
        """Register a line callback; returns the unsubscribe function."""
        self._subscribers[source_name].append(on_line)

        def unsubscribe() -> None:
            subs = self._subscribers.get(source_name)
            if subs and on_line in subs:
                subs.remove(on_line)
                if not subs:
                    del self._subscribers[source_name]

        return unsubscribe

    def subscriber_count(self, source_name: str) -> int:
        return len(self._subscribers.get(source_name, ()))

    def publish(self, source_name: str, line: str, stream: Stream | str | None = None) -> int:
        """Deliver a line to every subscriber of a source; return how many got it."""
        subs = list(self._subscribers.get(source_name, ()))
        for on_line in subs:
            try:
                on_line(line, stream)
            except Exception:
                logger.exception("Push subscriber failed for %s", source_name)
        return len(subs)
