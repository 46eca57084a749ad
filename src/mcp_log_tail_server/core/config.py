"""Tail engine configuration and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from .line_store import DEFAULT_CAPACITY

ENV_POLL_INTERVAL = "LOG_TAIL_POLL_INTERVAL"
ENV_CAPACITY = "LOG_TAIL_CAPACITY"
ENV_FETCH_TIMEOUT = "LOG_TAIL_FETCH_TIMEOUT"


@dataclass(frozen=True, slots=True)
class TailConfig:
    poll_interval: float = 2.5  # seconds between scheduled ticks
    capacity: int = DEFAULT_CAPACITY
    fetch_timeout: float | None = 10.0  # None disables the per-fetch timeout

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.capacity < 1:
            raise ValueError("capacity must be >= 1")
        if self.fetch_timeout is not None and self.fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be > 0")


def _env_number(name: str, cast: type[int] | type[float]) -> int | float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        kind = "an integer" if cast is int else "a number"
        raise ValueError(f"{name} must be {kind}") from exc


def resolve_tail_config(cfg: TailConfig | None = None) -> TailConfig:
    """Return config with optional env overrides applied."""
    if cfg is None:
        cfg = TailConfig()

    changes: dict[str, int | float] = {}
    poll_interval = _env_number(ENV_POLL_INTERVAL, float)
    if poll_interval is not None:
        if poll_interval <= 0:
            raise ValueError(f"{ENV_POLL_INTERVAL} must be > 0")
        changes["poll_interval"] = poll_interval

    capacity = _env_number(ENV_CAPACITY, int)
    if capacity is not None:
        if capacity < 1:
            raise ValueError(f"{ENV_CAPACITY} must be >= 1")
        changes["capacity"] = capacity

    fetch_timeout = _env_number(ENV_FETCH_TIMEOUT, float)
    if fetch_timeout is not None:
        if fetch_timeout <= 0:
            raise ValueError(f"{ENV_FETCH_TIMEOUT} must be > 0")
        changes["fetch_timeout"] = fetch_timeout

    if not changes:
        return cfg
    return replace(cfg, **changes)
