"""One tail session per named source."""

from __future__ import annotations

import asyncio
import logging

from .config import TailConfig
from .models import SessionState
from .tail_session import FetchSnapshot, SubscribePush, TailSession

logger = logging.getLogger(__name__)


class SessionManager:
    """Create, reuse and destroy TailSessions keyed by source name.

    When a push subscription function is available it is preferred over
    snapshot polling, which costs O(total log size) per tick.
    """

    def __init__(
        self,
        *,
        fetch_snapshot: FetchSnapshot | None = None,
        subscribe_push: SubscribePush | None = None,
        config: TailConfig | None = None,
    ) -> None:
        if fetch_snapshot is None and subscribe_push is None:
            raise ValueError("SessionManager needs fetch_snapshot or subscribe_push.")
        self._fetch_snapshot = fetch_snapshot
        self._subscribe_push = subscribe_push
        self._config = config or TailConfig()
        self._sessions: dict[str, TailSession] = {}
        self._lock = asyncio.Lock()

    def _new_session(self, name: str) -> TailSession:
        if self._subscribe_push is not None:
            return TailSession(name, subscribe_push=self._subscribe_push, config=self._config)
        return TailSession(name, fetch_snapshot=self._fetch_snapshot, config=self._config)

    async def open(self, source_name: str) -> TailSession:
        """Return the live session for a source, creating and subscribing one if needed."""
        name = source_name.strip()
        if not name:
            raise ValueError("source_name must be non-empty")

        async with self._lock:
            existing = self._sessions.get(name)
            if existing is not None and existing.state is not SessionState.CLOSED:
                return existing
            session = self._new_session(name)
            self._sessions[name] = session

        # Registered before subscribing so a concurrent open() reuses it.
        await session.subscribe()
        return session

    def get(self, source_name: str) -> TailSession | None:
        session = self._sessions.get(source_name.strip())
        if session is None or session.state is SessionState.CLOSED:
            return None
        return session

    def names(self) -> list[str]:
        return sorted(n for n, s in self._sessions.items() if s.state is not SessionState.CLOSED)

    async def close(self, source_name: str) -> bool:
        """Stop and discard the session for a source."""
        session = self._sessions.pop(source_name.strip(), None)
        if session is None:
            return False
        await session.stop()
        return True

    async def close_all(self) -> None:
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.stop()
        if sessions:
            logger.info("Closed %s tail session(s)", len(sessions))
