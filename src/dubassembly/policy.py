"""
Duration reconciliation: how a fixed video interval absorbs a replacement audio clip.
"""

from .errors import InvalidInput
from .models import EncodingDecision, Segment, SegmentKind, Strategy

MAX_AUDIO_SPEEDUP = 1.3


def reconcile(
    video_duration: float,
    audio_duration: float | None,
    max_speedup: float = MAX_AUDIO_SPEEDUP,
) -> EncodingDecision:
    """Pick the encoding strategy for a dubbed interval.

    - no audio: silence for the whole interval
    - ratio <= 1.0: keep video, pad audio with trailing silence
    - ratio <= max_speedup: speed audio up by the ratio
    - otherwise: speed audio up by max_speedup and slow the video to match
    """
    if video_duration <= 0:
        raise InvalidInput(f"Video duration must be positive, got {video_duration}")
    if not audio_duration or audio_duration <= 0:
        return EncodingDecision(Strategy.SILENCE, output_duration=video_duration)

    ratio = audio_duration / video_duration
    if ratio <= 1.0:
        return EncodingDecision(
            Strategy.PAD,
            output_duration=video_duration,
            padding=video_duration - audio_duration,
        )
    if ratio <= max_speedup:
        return EncodingDecision(Strategy.SPEED_UP, output_duration=video_duration, audio_tempo=ratio)

    # the sped-up audio length becomes authoritative for the clip
    target = audio_duration / max_speedup
    return EncodingDecision(
        Strategy.SLOW_VIDEO,
        output_duration=target,
        audio_tempo=max_speedup,
        video_stretch=target / video_duration,
    )


def decide(segment: Segment, max_speedup: float = MAX_AUDIO_SPEEDUP) -> EncodingDecision:
    if segment.kind is SegmentKind.GAP:
        return EncodingDecision(Strategy.PASSTHROUGH, output_duration=segment.video_duration)
    audio = segment.audio_duration if segment.has_audio else None
    return reconcile(segment.video_duration, audio, max_speedup)
