"""
SRT parsing, writing, and timecode conversion utilities.
"""

import logging
import re

from .errors import InvalidInput
from .models import SubtitleEntry

logger = logging.getLogger("dubassembly")

_TIME_RANGE_RE = re.compile(r"(\d{2}:\d{2}:\d{2},\d{3})\s*-->\s*(\d{2}:\d{2}:\d{2},\d{3})")


def timecode_to_seconds(ts: str) -> float:
    """Convert `HH:MM:SS,mmm` (or `MM:SS.mmm`) to seconds."""
    if not ts:
        return 0.0
    hms, _, frac = ts.strip().replace(",", ".").partition(".")
    try:
        parts = [int(p) for p in hms.split(":")]
        millis = float(f"0.{frac}") if frac else 0.0
    except ValueError as e:
        raise InvalidInput(f"Malformed timecode: {ts!r}") from e
    if len(parts) == 3:
        h, m, s = parts
    elif len(parts) == 2:
        h, (m, s) = 0, parts
    else:
        raise InvalidInput(f"Malformed timecode: {ts!r}")
    return h * 3600 + m * 60 + s + millis


def seconds_to_timecode(t: float) -> str:
    """Format seconds as an SRT timecode."""
    total_ms = int(round(max(0.0, t) * 1000))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"


def parse_srt_text(content: str) -> list[SubtitleEntry]:
    """Parse SRT content into ordered entries, skipping malformed blocks."""
    normalized = content.replace("\r\n", "\n").replace("\r", "\n").lstrip("\ufeff")
    blocks = re.split(r"\n\s*\n", normalized.strip())
    out: list[SubtitleEntry] = []
    for b in blocks:
        lines = b.strip().split("\n")
        if len(lines) < 2:
            continue
        try:
            index = int(lines[0].strip())
        except ValueError:
            continue
        m = _TIME_RANGE_RE.search(lines[1])
        if not m:
            continue
        start = timecode_to_seconds(m.group(1))
        end = timecode_to_seconds(m.group(2))
        if end <= start:
            logger.warning("Skipping subtitle #%d: end %.3f is not after start %.3f", index, end, start)
            continue
        text = "\n".join(lines[2:]).strip()
        out.append(SubtitleEntry(index=index, start=start, end=end, text=text))
    return out


def parse_srt(path: str) -> list[SubtitleEntry]:
    """Parse SRT file into entries."""
    with open(path, encoding="utf-8-sig") as f:
        return parse_srt_text(f.read())


def format_srt(entries: list[SubtitleEntry]) -> str:
    return "\n".join(
        f"{e.index}\n{seconds_to_timecode(e.start)} --> {seconds_to_timecode(e.end)}\n{e.text}\n"
        for e in entries
    )


def write_srt(entries: list[SubtitleEntry], path: str) -> None:
    """Write entries to SRT file."""
    with open(path, "w", encoding="utf-8") as f:
        f.write(format_srt(entries))
