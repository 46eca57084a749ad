"""Live tail state machine for one log source.

States: IDLE -> POLLING <-> PAUSED -> CLOSED (terminal).

A session ingests either by polling full snapshots on a fixed interval or by
receiving pushed lines. While PAUSED, ingestion keeps running but results are
buffered, so readers see a frozen store; resume applies only the latest
buffered snapshot (or all buffered pushed lines) in one merge.

Ticks never overlap. A scheduled tick that fires while another is in flight
is skipped, not queued. ``stop()`` cancels the timer and any in-flight tick,
and a fetch that completes after the session closed is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from .config import TailConfig
from .decoder import decode, extract_time_millis
from .filter_view import ALL_LEVELS, FilterView
from .line_store import LineStore
from .models import LogFragment, LogLevel, LogLine, MergeResult, SessionState, Stream, TailStatus

logger = logging.getLogger(__name__)

FetchSnapshot = Callable[[str], Awaitable[str]]
PushLineCallback = Callable[..., None]
SubscribePush = Callable[[str, PushLineCallback], Callable[[], None]]
MergeListener = Callable[[MergeResult], None]


def _describe_error(exc: BaseException) -> str:
    msg = str(exc)
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


class TailSession:
    """Own one LineStore and drive its ingestion source."""

    def __init__(
        self,
        source_name: str,
        *,
        fetch_snapshot: FetchSnapshot | None = None,
        subscribe_push: SubscribePush | None = None,
        config: TailConfig | None = None,
    ) -> None:
        if (fetch_snapshot is None) == (subscribe_push is None):
            raise ValueError("Provide exactly one of fetch_snapshot or subscribe_push.")

        self.source_name = source_name
        self._config = config or TailConfig()
        self._fetch_snapshot = fetch_snapshot
        self._subscribe_push = subscribe_push

        self._store = LineStore(self._config.capacity)
        self._view = FilterView(self._store)
        self._state = SessionState.IDLE

        self._pending_raw_blob: str | None = None
        self._pending_pushed: deque[LogFragment] = deque(maxlen=self._config.capacity)

        self._timer_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._listeners: list[MergeListener] = []

        self._is_loading = False
        self._last_error: str | None = None
        self._error_count = 0
        self._suppressed_ticks = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_push(self) -> bool:
        return self._subscribe_push is not None

    @property
    def line_count(self) -> int:
        return len(self._store)

    @property
    def last_sequence_id(self) -> int | None:
        return self._store.last_sequence_id

    def add_listener(self, listener: MergeListener) -> None:
        """Register a callback for every merge that changed the store."""
        self._listeners.append(listener)

    def remove_listener(self, listener: MergeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ---- transitions ----

    async def subscribe(self) -> bool:
        """IDLE -> POLLING. Fetch once immediately, then schedule ticks."""
        if self._state is not SessionState.IDLE:
            return False
        self._state = SessionState.POLLING

        if self._subscribe_push is not None:
            try:
                self._unsubscribe = self._subscribe_push(self.source_name, self._on_pushed_line)
            except Exception as exc:
                self._record_error(exc)
            logger.info("Tail session for %s subscribed (push)", self.source_name)
            return True

        await self.refresh()
        # stop() may have run during the first fetch.
        if self._state is not SessionState.CLOSED:
            self._timer_task = asyncio.create_task(
                self._run_timer(), name=f"tail-timer:{self.source_name}"
            )
            logger.info(
                "Tail session for %s subscribed (poll every %ss)",
                self.source_name,
                self._config.poll_interval,
            )
        return True

    def pause(self) -> bool:
        """POLLING -> PAUSED. The store stays frozen until resume()."""
        if self._state is not SessionState.POLLING:
            return False
        self._state = SessionState.PAUSED
        return True

    def resume(self) -> bool:
        """PAUSED -> POLLING, applying buffered data in a single merge."""
        if self._state is not SessionState.PAUSED:
            return False
        self._state = SessionState.POLLING

        blob, self._pending_raw_blob = self._pending_raw_blob, None
        if blob is not None:
            self._merge_snapshot(blob)

        if self._pending_pushed:
            fragments = list(self._pending_pushed)
            self._pending_pushed.clear()
            self._emit(MergeResult(lines=tuple(self._store.append_fragments(fragments))))
        return True

    async def stop(self) -> bool:
        """Any state -> CLOSED. Cancels scheduled and in-flight ticks."""
        if self._state is SessionState.CLOSED:
            return False
        self._state = SessionState.CLOSED
        self._pending_raw_blob = None
        self._pending_pushed.clear()
        self._is_loading = False

        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            try:
                unsubscribe()
            except Exception:
                logger.exception("Unsubscribe failed for %s", self.source_name)

        current = asyncio.current_task()
        tasks = [
            t
            for t in (self._timer_task, self._tick_task)
            if t is not None and not t.done() and t is not current
        ]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        logger.info("Tail session for %s closed", self.source_name)
        return True

    # ---- ingestion ----

    async def refresh(self) -> bool:
        """Fetch and merge now. Returns False if skipped or cancelled."""
        if self._subscribe_push is not None or self._state in (SessionState.IDLE, SessionState.CLOSED):
            return False
        task = self._spawn_tick()
        if task is None:
            self._suppressed_ticks += 1
            return False
        self._is_loading = True
        # A tick cancelled by stop() must not raise out of refresh().
        await asyncio.wait({task})
        return not task.cancelled()

    def _spawn_tick(self) -> asyncio.Task[None] | None:
        if self._tick_task is not None and not self._tick_task.done():
            return None
        self._tick_task = asyncio.create_task(self._tick(), name=f"tail-tick:{self.source_name}")
        return self._tick_task

    async def _run_timer(self) -> None:
        while self._state is not SessionState.CLOSED:
            await asyncio.sleep(self._config.poll_interval)
            if self._state is SessionState.CLOSED:
                break
            if self._spawn_tick() is None:
                self._suppressed_ticks += 1
                logger.debug("Tick for %s suppressed: previous fetch still in flight", self.source_name)

    async def _tick(self) -> None:
        fetch = self._fetch_snapshot
        if fetch is None:
            return
        try:
            async with asyncio.timeout(self._config.fetch_timeout):
                blob = await fetch(self.source_name)
        except Exception as exc:
            if self._state is not SessionState.CLOSED:
                self._record_error(exc)
            return
        finally:
            self._is_loading = False

        if self._state is SessionState.CLOSED:
            logger.debug("Discarding fetch result for %s: session closed", self.source_name)
            return

        self._error_count = 0
        self._last_error = None

        if self._state is SessionState.PAUSED:
            # Only the most recent snapshot is kept; it restates everything.
            self._pending_raw_blob = blob
            return
        self._merge_snapshot(blob)

    def _on_pushed_line(self, text: str, stream: Stream | str | None = None) -> None:
        if self._state in (SessionState.IDLE, SessionState.CLOSED):
            return
        if isinstance(stream, str) and not isinstance(stream, Stream):
            try:
                stream = Stream(stream.lower())
            except ValueError:
                stream = None
        fragment = LogFragment(text=text, extracted_time_millis=extract_time_millis(text), stream=stream)
        if self._state is SessionState.PAUSED:
            self._pending_pushed.append(fragment)
            return
        self._emit(MergeResult(lines=tuple(self._store.append_fragments([fragment]))))

    def _merge_snapshot(self, blob: str) -> None:
        result = self._store.replace_from_snapshot(decode(blob))
        if result.discontinuity:
            logger.info("Log source %s was truncated or rotated; view reset", self.source_name)
        self._emit(result)

    def _emit(self, result: MergeResult) -> None:
        if not result.changed:
            return
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Merge listener failed for %s", self.source_name)

    def _record_error(self, exc: BaseException) -> None:
        self._error_count += 1
        self._last_error = _describe_error(exc)
        logger.warning(
            "Log fetch failed for %s (%s consecutive): %s",
            self.source_name,
            self._error_count,
            self._last_error,
        )

    # ---- reads ----

    def clear(self) -> bool:
        """Empty the store and drop buffered data."""
        if self._state is SessionState.CLOSED:
            return False
        self._store.clear()
        self._pending_raw_blob = None
        self._pending_pushed.clear()
        return True

    def get_visible_lines(
        self,
        level_filter: LogLevel | str | None = ALL_LEVELS,
        search_text: str = "",
    ) -> list[LogLine]:
        """Filtered, read-only projection of the store."""
        return self._view.view(level_filter, search_text)

    def status(self) -> TailStatus:
        return TailStatus(
            source=self.source_name,
            state=self._state,
            is_loading=self._is_loading,
            is_paused=self._state is SessionState.PAUSED,
            line_count=len(self._store),
            last_error=self._last_error,
            error_count=self._error_count,
            suppressed_ticks=self._suppressed_ticks,
            last_sequence_id=self._store.last_sequence_id,
        )
