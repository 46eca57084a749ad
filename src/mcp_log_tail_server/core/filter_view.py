"""Read-only projections of a LineStore, plus export helpers."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from pathlib import Path

import aiofiles

from .line_store import LineStore
from .models import LogLevel, LogLine

ALL_LEVELS = "all"


def parse_level_filter(level: LogLevel | str | None) -> LogLevel | None:
    """Return the level to match, or None for 'all'."""
    if level is None or isinstance(level, LogLevel):
        return level
    name = level.strip().lower()
    if not name or name == ALL_LEVELS:
        return None
    try:
        return LogLevel(name)
    except ValueError as e:
        valid = ", ".join([ALL_LEVELS, *(lvl.value for lvl in LogLevel)])
        raise ValueError(f"Unknown level filter '{level}'. Valid values: {valid}.") from e


def filter_lines(
    lines: Iterable[LogLine],
    level_filter: LogLevel | str | None = ALL_LEVELS,
    search_text: str = "",
) -> list[LogLine]:
    """Apply level AND case-insensitive substring filters, keeping order."""
    level = parse_level_filter(level_filter)
    query = (search_text or "").strip().lower()
    out: list[LogLine] = []
    for line in lines:
        if level is not None and line.level is not level:
            continue
        if query and query not in line.text.lower():
            continue
        out.append(line)
    return out


class FilterView:
    """Memoized filter over a store, keyed by store version and filter params."""

    def __init__(self, store: LineStore) -> None:
        self._store = store
        self._key: tuple[int, LogLevel | None, str] | None = None
        self._cached: tuple[LogLine, ...] = ()

    def view(self, level_filter: LogLevel | str | None = ALL_LEVELS, search_text: str = "") -> list[LogLine]:
        key = (self._store.version, parse_level_filter(level_filter), (search_text or "").strip().lower())
        if key != self._key:
            self._cached = tuple(filter_lines(self._store.lines(), key[1], key[2]))
            self._key = key
        return list(self._cached)


def export_text(lines: Sequence[LogLine]) -> str:
    """Join line texts with newlines."""
    return "\n".join(line.text for line in lines)


def export_filename(source_name: str, day: date | None = None) -> str:
    day = day or date.today()
    return f"{source_name}-logs-{day.isoformat()}.txt"


async def export_to_file(lines: Sequence[LogLine], path: str | Path) -> Path:
    """Write exported text to a file and return its path."""
    p = Path(path)
    async with aiofiles.open(p, mode="w", encoding="utf-8") as f:
        await f.write(export_text(lines))
    return p
