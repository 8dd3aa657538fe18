"""
Per-segment encoding with ffmpeg.

Every segment is fully re-encoded, never stream-copied, so that each clip
starts on a keyframe and all clips share codec parameters. The concat
demuxer join in `concat` depends on that.
"""

import logging
import os

from .config import AssemblyConfig
from .errors import SegmentEncodeFailed
from .io_ffmpeg import atempo_chain, run_process
from .models import EncodingDecision, Segment, Strategy

logger = logging.getLogger("dubassembly")

SILENCE_SOURCE = "anullsrc=channel_layout=stereo:sample_rate={rate}"


def _fmt(seconds: float) -> str:
    return f"{seconds:.3f}"


def audio_filter(decision: EncodingDecision) -> str | None:
    """Tempo change (if any) followed by trailing silence padding."""
    if decision.strategy in (Strategy.PASSTHROUGH, Strategy.SILENCE):
        return None
    if decision.strategy is Strategy.PAD:
        return "apad"
    return f"{atempo_chain(decision.audio_tempo)},apad"


def video_filter(decision: EncodingDecision) -> str | None:
    if decision.strategy is Strategy.SLOW_VIDEO:
        return f"setpts={decision.video_stretch:.4f}*PTS"
    return None


def build_encode_command(
    segment: Segment,
    decision: EncodingDecision,
    source: str,
    output: str,
    config: AssemblyConfig,
) -> list[str]:
    """Build the single ffmpeg invocation that renders one segment."""
    cmd = [
        config.ffmpeg_path,
        "-y",
        "-ss",
        _fmt(segment.video_start),
        "-t",
        _fmt(segment.video_duration),
        "-i",
        source,
    ]

    if decision.strategy is Strategy.PASSTHROUGH:
        return cmd + config.video_args() + config.audio_args() + [output]

    if decision.strategy is Strategy.SILENCE:
        cmd += ["-f", "lavfi", "-i", SILENCE_SOURCE.format(rate=config.sample_rate)]
    else:
        if not segment.audio_path:
            raise SegmentEncodeFailed(f"Segment {segment.label} has no audio for {decision.strategy.value}")
        cmd += ["-i", segment.audio_path]
    cmd += ["-map", "0:v", "-map", "1:a"]

    vf = video_filter(decision)
    if vf:
        cmd += ["-vf", vf]
    af = audio_filter(decision)
    if af:
        cmd += ["-af", af]

    cmd += config.video_args() + config.audio_args()
    cmd += ["-t", _fmt(decision.output_duration), output]
    return cmd


def clip_path(workdir: str, position: int) -> str:
    return os.path.join(workdir, f"seg_{position:04d}.mp4")


async def encode_segment(
    segment: Segment,
    decision: EncodingDecision,
    source: str,
    output: str,
    config: AssemblyConfig,
) -> str:
    """Render one segment to `output`. Raises SegmentEncodeFailed on any failure."""
    cmd = build_encode_command(segment, decision, source, output, config)
    result = await run_process(cmd, timeout=config.encode_timeout)
    if result.timed_out:
        raise SegmentEncodeFailed(f"Segment {segment.label} timed out", result.stderr)
    if not result.ok:
        raise SegmentEncodeFailed(
            f"Segment {segment.label} failed with code {result.returncode}", result.stderr
        )
    if not os.path.isfile(output):
        raise SegmentEncodeFailed(f"Segment {segment.label} produced no output")
    logger.debug(
        "Encoded %s [%.3f-%.3f] as %s", segment.label, segment.video_start, segment.video_end, decision.strategy.value
    )
    return output
