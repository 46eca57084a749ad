"""Core data models for live log tailing."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    """Best-effort severity assigned to each line."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"


class Stream(str, Enum):
    """Stream origin denoted by a multiplexing marker."""

    STDIN = "stdin"
    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


class SessionState(str, Enum):
    """TailSession lifecycle. CLOSED is terminal."""

    IDLE = "idle"
    POLLING = "polling"
    PAUSED = "paused"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class LogFragment:
    """One decoded record, pre-classification."""

    text: str
    extracted_time_millis: int = 0  # 0 when no leading timestamp was found
    stream: Stream | None = None


@dataclass(frozen=True, slots=True)
class LogLine:
    """Classified, sequence-numbered line exposed to consumers."""

    sequence_id: int
    text: str
    timestamp: datetime | None
    level: LogLevel
    stream: Stream | None = None


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Lines inserted by one merge, plus whether the store was reset first."""

    lines: tuple[LogLine, ...] = field(default_factory=tuple)
    discontinuity: bool = False

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[LogLine]:
        return iter(self.lines)

    @property
    def changed(self) -> bool:
        return bool(self.lines) or self.discontinuity


class TailStatus(BaseModel):
    """Status flags for one tail session."""

    source: str
    state: SessionState
    is_loading: bool = False
    is_paused: bool = False
    line_count: int = Field(default=0, ge=0)
    last_error: str | None = None
    error_count: int = Field(default=0, ge=0, description="Consecutive failed fetches.")
    suppressed_ticks: int = Field(
        default=0, ge=0, description="Scheduled ticks skipped because one was in flight."
    )
    last_sequence_id: int | None = None
