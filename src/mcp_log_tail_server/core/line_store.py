"""Bounded, append-only line storage with snapshot diffing."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Sequence

from .classifier import classify
from .decoder import split_lines, strip_ansi
from .models import LogFragment, LogLine, MergeResult, Stream

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class LineStore:
    """Ordered collection of LogLines with FIFO eviction.

    Sequence IDs are allocated once per inserted line and never reused, not
    even after ``clear()``. Poll-based sources restate the full history each
    time, so ``replace_from_snapshot`` diffs against the last snapshot by
    position and only classifies lines past the previously known count.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._lines: deque[LogLine] = deque(maxlen=capacity)
        self._next_id = 1
        self._version = 0
        self._snapshot_text: str | None = None
        self._snapshot_lines: list[str] = []

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def version(self) -> int:
        """Bumped on every mutation."""
        return self._version

    @property
    def last_sequence_id(self) -> int | None:
        return self._lines[-1].sequence_id if self._lines else None

    def __len__(self) -> int:
        return len(self._lines)

    def lines(self) -> list[LogLine]:
        """Return a copy of the stored lines in sequence order."""
        return list(self._lines)

    def _insert(self, entries: Sequence[tuple[str, Stream | None]]) -> list[LogLine]:
        # Entries that would be evicted within this same merge are skipped but
        # still consume their sequence ids.
        overflow = len(entries) - self._capacity
        if overflow > 0:
            self._next_id += overflow
            entries = entries[overflow:]

        inserted: list[LogLine] = []
        for text, stream in entries:
            c = classify(text)
            line = LogLine(
                sequence_id=self._next_id,
                text=text,
                timestamp=c.timestamp,
                level=c.level,
                stream=stream,
            )
            self._next_id += 1
            # deque(maxlen) drops from the left, so eviction keeps order.
            self._lines.append(line)
            inserted.append(line)
        if inserted:
            self._version += 1
        return inserted

    def append_fragments(self, fragments: Sequence[LogFragment]) -> list[LogLine]:
        """Classify and append fragments; return only the new lines still stored."""
        entries = [
            (text, fragment.stream)
            for fragment in fragments
            for text in split_lines(strip_ansi(fragment.text))
        ]
        return self._insert(entries)

    def replace_from_snapshot(self, new_full_text: str) -> MergeResult:
        """Merge a full-history snapshot, appending only lines not seen before.

        An identical snapshot is a no-op. A snapshot that is shorter than, or
        diverges from, the previous one resets the store and is flagged as a
        discontinuity.
        """
        if new_full_text == self._snapshot_text:
            return MergeResult()

        new_lines = split_lines(new_full_text)
        old_lines = self._snapshot_lines
        self._snapshot_text = new_full_text
        self._snapshot_lines = new_lines

        known = len(old_lines)
        if len(new_lines) >= known and new_lines[:known] == old_lines:
            return MergeResult(lines=tuple(self._insert([(t, None) for t in new_lines[known:]])))

        logger.info(
            "Snapshot discontinuity (previous=%s lines, new=%s lines); resetting store",
            known,
            len(new_lines),
        )
        self._lines.clear()
        self._version += 1
        return MergeResult(lines=tuple(self._insert([(t, None) for t in new_lines])), discontinuity=True)

    def clear(self) -> None:
        """Drop all lines and forget the last snapshot. IDs keep increasing."""
        self._lines.clear()
        self._snapshot_text = None
        self._snapshot_lines = []
        self._version += 1
