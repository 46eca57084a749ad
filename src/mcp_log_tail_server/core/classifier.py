"""Severity and timestamp classification for decoded lines.

Classification is a heuristic: the level comes from the first keyword group
that appears anywhere in the line, and only the substrings listed here are
recognized.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

from .models import LogLevel

_TS_RE = re.compile(r"^[\x00-\x20]*(?P<date>\d{4}-\d{2}-\d{2})[T ](?P<time>\d{2}:\d{2}:\d{2})")

# Priority order; first match wins.
LEVEL_KEYWORDS: tuple[tuple[LogLevel, Sequence[str]], ...] = (
    (LogLevel.ERROR, ("error", "exception", "fatal")),
    (LogLevel.WARNING, ("warn", "warning")),
    (LogLevel.DEBUG, ("debug",)),
)


@dataclass(frozen=True, slots=True)
class Classification:
    level: LogLevel
    timestamp: datetime | None


def parse_timestamp(line: str) -> datetime | None:
    """Parse a leading YYYY-MM-DD[T ]HH:MM:SS timestamp as UTC.

    Leading control and whitespace characters are skipped, as in the decoder.
    """
    m = _TS_RE.match(line)
    if not m:
        return None
    try:
        return datetime.fromisoformat(f"{m.group('date')}T{m.group('time')}").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def classify_level(line: str) -> LogLevel:
    lower = line.lower()
    for level, keywords in LEVEL_KEYWORDS:
        if any(k in lower for k in keywords):
            return level
    return LogLevel.INFO


def classify(line: str) -> Classification:
    """Return the level and leading timestamp of a line."""
    return Classification(level=classify_level(line), timestamp=parse_timestamp(line))
