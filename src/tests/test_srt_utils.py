"""
Tests for SRT utilities.
"""

import os
import tempfile

import pytest

from src.dubassembly.errors import InvalidInput
from src.dubassembly.models import SubtitleEntry
from src.dubassembly.srt_utils import (
    parse_srt,
    parse_srt_text,
    seconds_to_timecode,
    timecode_to_seconds,
    write_srt,
)


def test_write_and_parse_srt():
    """Test SRT write/parse roundtrip."""
    entries = [
        SubtitleEntry(index=1, start=0.0, end=2.5, text="Hello world."),
        SubtitleEntry(index=2, start=2.5, end=5.0, text="This is a test."),
        SubtitleEntry(index=3, start=5.0, end=7.5, text="Goodbye!"),
    ]

    with tempfile.NamedTemporaryFile(mode="w", suffix=".srt", delete=False) as f:
        srt_path = f.name

    try:
        write_srt(entries, srt_path)
        parsed = parse_srt(srt_path)

        assert len(parsed) == 3
        assert parsed[0].text == "Hello world."
        assert parsed[2].text == "Goodbye!"
        assert [e.index for e in parsed] == [1, 2, 3]
        assert parsed[0].start == 0.0
        assert parsed[0].end == 2.5
    finally:
        os.unlink(srt_path)


def test_parse_srt_text_crlf_and_multiline():
    content = "1\r\n00:00:01,000 --> 00:00:02,500\r\nFirst line\r\nsecond line\r\n\r\n2\r\n00:00:03,000 --> 00:00:04,000\r\nNext\r\n"
    entries = parse_srt_text(content)

    assert len(entries) == 2
    assert entries[0].text == "First line\nsecond line"
    assert entries[0].start == 1.0
    assert entries[0].end == 2.5
    assert entries[1].index == 2


def test_parse_srt_text_skips_malformed_blocks():
    content = (
        "x\n00:00:01,000 --> 00:00:02,000\nno index\n\n"
        "2\nnot a time line\ntext\n\n"
        "3\n00:00:05,000 --> 00:00:04,000\nbackwards\n\n"
        "4\n00:00:06,000 --> 00:00:07,000\nkept\n"
    )
    entries = parse_srt_text(content)

    assert [e.index for e in entries] == [4]


def test_parse_srt_text_strips_bom():
    entries = parse_srt_text("\ufeff1\n00:00:00,000 --> 00:00:01,000\nhi\n")
    assert len(entries) == 1
    assert entries[0].index == 1


def test_timecode_to_seconds():
    assert timecode_to_seconds("00:00:00,000") == 0.0
    assert timecode_to_seconds("01:02:03,250") == pytest.approx(3723.25)
    assert timecode_to_seconds("00:01:05.5") == pytest.approx(65.5)
    assert timecode_to_seconds("02:03") == pytest.approx(123.0)
    assert timecode_to_seconds("") == 0.0


def test_timecode_to_seconds_malformed():
    with pytest.raises(InvalidInput):
        timecode_to_seconds("aa:bb:cc,ddd")
    with pytest.raises(InvalidInput):
        timecode_to_seconds("1:2:3:4")


def test_seconds_to_timecode():
    assert seconds_to_timecode(0) == "00:00:00,000"
    assert seconds_to_timecode(3723.25) == "01:02:03,250"
    assert seconds_to_timecode(59.9996) == "00:01:00,000"
