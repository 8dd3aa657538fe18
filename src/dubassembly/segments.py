"""
Segment map construction: partition the source timeline into gap and dubbed slices.
"""

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from .errors import InvalidInput
from .io_ffmpeg import probe_duration
from .models import Segment, SegmentKind, SubtitleEntry
from .policy import MAX_AUDIO_SPEEDUP

logger = logging.getLogger("dubassembly")

GAP_TOLERANCE = 0.05


def audio_clip_path(audio_dir: str, index: int, ext: str = ".mp3") -> str:
    """Replacement clip path for a subtitle index, e.g. `0007.mp3`."""
    return os.path.join(audio_dir, f"{index:04d}{ext}")


async def build_segment_map(
    entries: list[SubtitleEntry],
    audio_dir: str,
    total_duration: float,
    *,
    tolerance: float = GAP_TOLERANCE,
    audio_ext: str = ".mp3",
    probe: Callable[[str], Awaitable[float]] = probe_duration,
) -> list[Segment]:
    """
    Build contiguous segments covering [0, total_duration] exactly.

    Gaps shorter than `tolerance` are absorbed into the neighbouring dubbed
    segment. Overlapping entries are clipped to start where the previous one
    ended. A missing or unreadable clip leaves the dubbed segment without audio.
    """
    if total_duration is None or total_duration <= 0:
        raise InvalidInput(f"Total video duration must be positive, got {total_duration}")

    segments: list[Segment] = []
    cursor = 0.0

    for entry in entries:
        start = max(entry.start, cursor)
        end = min(entry.end, total_duration)
        if end <= start:
            logger.warning(
                "Dropping subtitle #%d [%.3f, %.3f]: no room left on the timeline",
                entry.index,
                entry.start,
                entry.end,
            )
            continue

        if start - cursor > tolerance:
            segments.append(Segment(SegmentKind.GAP, cursor, start))
        else:
            start = cursor

        audio_path: str | None = audio_clip_path(audio_dir, entry.index, audio_ext)
        audio_duration = 0.0
        if os.path.isfile(audio_path):
            audio_duration = await probe(audio_path)
        if audio_duration <= 0:
            audio_path = None
            audio_duration = 0.0

        segments.append(
            Segment(
                SegmentKind.DUBBED,
                start,
                end,
                subtitle_index=entry.index,
                audio_path=audio_path,
                audio_duration=audio_duration,
            )
        )
        cursor = end

    if total_duration - cursor > tolerance or not segments:
        segments.append(Segment(SegmentKind.GAP, cursor, total_duration))
    elif cursor < total_duration:
        segments[-1].video_end = total_duration

    return segments


@dataclass
class SegmentStats:
    total: int
    dubbed: int
    gaps: int
    slowdowns: int
    missing_audio: int

    def describe(self) -> str:
        return (
            f"{self.total} segments: {self.dubbed} dubbed, {self.gaps} gap, "
            f"{self.slowdowns} slow-down"
        )


def segment_stats(segments: list[Segment], max_speedup: float = MAX_AUDIO_SPEEDUP) -> SegmentStats:
    dubbed = [s for s in segments if s.kind is SegmentKind.DUBBED]
    slowdowns = sum(
        1 for s in dubbed if s.has_audio and s.video_duration > 0 and s.audio_duration / s.video_duration > max_speedup
    )
    return SegmentStats(
        total=len(segments),
        dubbed=len(dubbed),
        gaps=len(segments) - len(dubbed),
        slowdowns=slowdowns,
        missing_audio=sum(1 for s in dubbed if not s.has_audio),
    )
