from __future__ import annotations

from mcp_log_tail_server.core.decoder import (
    decode,
    decode_fragments,
    extract_time_millis,
    split_lines,
    strip_ansi,
)
from mcp_log_tail_server.core.models import Stream


def _hex(text: str) -> str:
    return text.encode("utf-8").hex()


def test_decode_reorders_records_by_timestamp() -> None:
    blob = "00000000" + _hex("2024-01-01T00:00:02 B") + "00000000" + _hex("2024-01-01T00:00:01 A")

    assert decode(blob) == "2024-01-01T00:00:01 A" + "2024-01-01T00:00:02 B"


def test_decode_fragments_order_is_stable_for_equal_and_missing_timestamps() -> None:
    blob = (
        "01000000" + _hex("2024-01-01T00:00:05 late\n")
        + "01000000" + _hex("no timestamp one\n")
        + "02000000" + _hex("2024-01-01T00:00:01 early\n")
        + "01000000" + _hex("no timestamp two\n")
        + "01000000" + _hex("2024-01-01T00:00:01 early twin\n")
    )

    fragments = decode_fragments(blob)

    times = [f.extracted_time_millis for f in fragments]
    assert times == sorted(times)
    assert [f.text.strip() for f in fragments] == [
        "no timestamp one",
        "no timestamp two",
        "2024-01-01T00:00:01 early",
        "2024-01-01T00:00:01 early twin",
        "2024-01-01T00:00:05 late",
    ]


def test_decode_fragments_records_stream_marker() -> None:
    blob = "01000000" + _hex("out\n") + "02000000" + _hex("err\n") + "03000000" + _hex("sys\n")

    fragments = decode_fragments(blob)

    assert [f.stream for f in fragments] == [Stream.STDOUT, Stream.STDERR, Stream.SYSTEM]


def test_decode_strips_ansi_sequences() -> None:
    blob = "01000000" + _hex("\x1b[32mgreen\x1b[0m text\n")

    assert decode(blob) == "green text\n"


def test_decode_replaces_invalid_utf8() -> None:
    blob = "01000000" + "ff" + _hex("ok\n")

    assert decode(blob) == "\ufffdok\n"


def test_decode_falls_back_to_raw_segment_on_bad_hex() -> None:
    blob = "01000000" + _hex("good\n") + "01000000" + "zz-not-hex"

    text = decode(blob)

    assert "good\n" in text
    assert "zz-not-hex" in text


def test_decode_empty_blob() -> None:
    assert decode("") == ""
    assert decode_fragments("") == []


def test_extract_time_millis_variants() -> None:
    assert extract_time_millis("1970-01-01T00:00:01 x") == 1000
    assert extract_time_millis("1970-01-01 00:00:01.250 x") == 1250
    assert extract_time_millis("1970-01-01T00:00:02.123456789Z x") == 2123
    assert extract_time_millis("1970-01-01T02:00:00+01:00 x") == 3_600_000
    assert extract_time_millis("no time here") == 0
    assert extract_time_millis("2024-13-45T00:00:00 invalid") == 0


def test_extract_time_millis_only_reads_leading_text() -> None:
    assert extract_time_millis("prefix that is long enough 2024-01-01T00:00:01") == 0


def test_split_lines_drops_blank_lines_and_carriage_returns() -> None:
    assert split_lines("a\r\n\n  \nb\n") == ["a", "b"]


def test_strip_ansi_leaves_plain_text() -> None:
    assert strip_ansi("plain [brackets]") == "plain [brackets]"
