"""Raw blob decoding.

A raw blob is a hex string holding concatenated records, each prefixed by a
4-byte multiplexing marker. Records carry no length or sequence number, so
ordering is rebuilt from the leading timestamp of each record.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from .models import LogFragment, Stream

logger = logging.getLogger(__name__)

MARKERS: dict[bytes, Stream] = {
    b"\x00\x00\x00\x00": Stream.STDIN,
    b"\x01\x00\x00\x00": Stream.STDOUT,
    b"\x02\x00\x00\x00": Stream.STDERR,
    b"\x03\x00\x00\x00": Stream.SYSTEM,
}
HEX_MARKERS: dict[str, Stream] = {m.hex(): s for m, s in MARKERS.items()}

_MARKER_RE = re.compile(b"(" + b"|".join(re.escape(m) for m in MARKERS) + b")")
_HEX_MARKER_RE = re.compile("(" + "|".join(HEX_MARKERS) + ")")

# CSI / ANSI color sequences (ESC [ ... letter and friends).
_ANSI_RE = re.compile(
    r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]"
)

TIMESTAMP_PROBE_CHARS = 30
_LEADING_TS_RE = re.compile(
    r"^[\x00-\x20]*"
    r"(?P<date>\d{4}-\d{2}-\d{2})[T ](?P<time>\d{2}:\d{2}(?::\d{2})?)"
    r"(?:[.,](?P<frac>\d+))?"
    r"\s*(?P<tz>Z|[+-]\d{2}:?\d{2})?"
)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)


def split_lines(text: str) -> list[str]:
    """Split decoded text into non-blank lines."""
    return [line.rstrip("\r") for line in text.split("\n") if line.strip()]


def extract_time_millis(text: str) -> int:
    """Parse the leading ISO-8601-like timestamp into epoch millis (0 on failure)."""
    m = _LEADING_TS_RE.match(text[:TIMESTAMP_PROBE_CHARS])
    if not m:
        return 0

    iso = f"{m.group('date')}T{m.group('time')}"
    frac = m.group("frac")
    if frac:
        # fromisoformat only takes up to microseconds; container runtimes emit nanos.
        iso += "." + frac[:6].ljust(6, "0")
    tz = m.group("tz")
    if tz:
        iso += "+00:00" if tz == "Z" else tz

    try:
        dt = datetime.fromisoformat(iso)
    except ValueError:
        return 0
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    try:
        return (dt - _EPOCH) // timedelta(milliseconds=1)
    except OverflowError:
        return 0


def _fragments_from_bytes(raw: bytes) -> list[LogFragment]:
    parts = _MARKER_RE.split(raw)
    out: list[LogFragment] = []
    stream: Stream | None = None
    # re.split with a capture group alternates: segment, marker, segment, ...
    for i, part in enumerate(parts):
        if i % 2 == 1:
            stream = MARKERS[part]
            continue
        if not part:
            continue
        text = part.decode("utf-8", errors="replace")
        out.append(LogFragment(text=text, extracted_time_millis=extract_time_millis(text), stream=stream))
    return out


def _fragments_from_hex_text(blob: str) -> list[LogFragment]:
    """Fallback for blobs that do not hex-decode as a whole."""
    parts = _HEX_MARKER_RE.split(blob)
    out: list[LogFragment] = []
    stream: Stream | None = None
    for i, part in enumerate(parts):
        if i % 2 == 1:
            stream = HEX_MARKERS[part]
            continue
        if not part:
            continue
        try:
            text = bytes.fromhex(part).decode("utf-8", errors="replace")
        except ValueError:
            text = part
        out.append(LogFragment(text=text, extracted_time_millis=extract_time_millis(text), stream=stream))
    return out


def decode_fragments(blob: str) -> list[LogFragment]:
    """Decode a raw blob into fragments, stable-sorted by extracted time.

    Never raises: segments that cannot be hex-decoded are kept as plain text.
    """
    if not blob:
        return []
    try:
        raw = bytes.fromhex(blob)
    except ValueError:
        logger.debug("Blob is not clean hex (len=%s); decoding per segment", len(blob))
        fragments = _fragments_from_hex_text(blob)
    else:
        fragments = _fragments_from_bytes(raw)

    # list.sort is stable: equal (or unparseable) timestamps keep emission order.
    fragments.sort(key=lambda f: f.extracted_time_millis)
    return fragments


def join_fragments(fragments: Iterable[LogFragment]) -> str:
    """Concatenate fragment texts and strip ANSI escapes from the result."""
    return strip_ansi("".join(f.text for f in fragments))


def decode(blob: str) -> str:
    """Decode a raw blob into cleaned, time-ordered text."""
    return join_fragments(decode_fragments(blob))
