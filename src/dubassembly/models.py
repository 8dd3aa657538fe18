"""
Data models for the dubbed video assembly pipeline.
"""

from dataclasses import dataclass, field
from enum import Enum


@dataclass
class SubtitleEntry:
    """A single subtitle block with timing and text."""

    index: int  # 1-based, as written in the SRT
    start: float  # seconds
    end: float  # seconds
    text: str


class SegmentKind(str, Enum):
    GAP = "gap"
    DUBBED = "dubbed"


@dataclass
class Segment:
    """One contiguous slice of the source timeline."""

    kind: SegmentKind
    video_start: float
    video_end: float
    subtitle_index: int | None = None
    audio_path: str | None = None
    audio_duration: float = 0.0

    @property
    def video_duration(self) -> float:
        return self.video_end - self.video_start

    @property
    def has_audio(self) -> bool:
        return self.audio_path is not None and self.audio_duration > 0

    @property
    def label(self) -> str:
        """Short human-readable label used in progress details."""
        if self.kind is SegmentKind.DUBBED:
            return f"#{self.subtitle_index}"
        return "gap"


class Strategy(str, Enum):
    PASSTHROUGH = "passthrough"  # gap: source video and audio
    SILENCE = "silence"  # dubbed without audio
    PAD = "pad"
    SPEED_UP = "speed_up"
    SLOW_VIDEO = "slow_video"


@dataclass(frozen=True)
class EncodingDecision:
    """How a single segment is encoded."""

    strategy: Strategy
    output_duration: float
    audio_tempo: float = 1.0
    video_stretch: float = 1.0
    padding: float = 0.0


@dataclass
class ProgressEvent:
    """Progress update emitted by an assembly run."""

    status: str  # preparing | processing | concatenating | rerendering | done | error
    progress: int  # 0..100
    detail: str
    current: int | None = None
    total: int | None = None


@dataclass
class RunResult:
    """Outcome of a successful assembly run."""

    output_path: str
    total_segments: int
    processed_segments: int
    dubbed_segments: int
    processed_dubbed: int
    failed_indices: list[int] = field(default_factory=list)
    synced: bool = False
    elapsed: float = 0.0
