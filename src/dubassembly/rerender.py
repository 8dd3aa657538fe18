"""
Constant frame rate re-render with HandBrakeCLI to remove drift left by stream-copy joins.
"""

import asyncio
import contextlib
import logging
import os
import re
from collections.abc import Callable

from .config import AssemblyConfig
from .errors import EnvironmentUnavailable, RerenderFailed
from .io_ffmpeg import run_process

logger = logging.getLogger("dubassembly")

# HandBrakeCLI progress: "Encoding: task 1 of 1, 45.23 %"
_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%")


def parse_percent(text: str) -> float | None:
    """Last percentage reported in a chunk of HandBrakeCLI output."""
    matches = _PERCENT_RE.findall(text or "")
    if not matches:
        return None
    return min(100.0, float(matches[-1]))


def build_rerender_command(input_path: str, output_path: str, config: AssemblyConfig) -> list[str]:
    # no --rate: keep the source frame rate, but force it constant
    return [
        config.handbrake_path,
        "-i",
        input_path,
        "-o",
        output_path,
        "--encoder",
        "nvenc_h264" if config.hwaccel else "x264",
        "--quality",
        str(config.quality),
        "--cfr",
        "--aencoder",
        "av_aac",
        "--ab",
        str(config.audio_bitrate_k),
        "--mixdown",
        "stereo",
        "--optimize",
    ]


def _remove(path: str) -> None:
    if os.path.exists(path):
        os.unlink(path)


async def rerender(
    input_path: str,
    output_path: str,
    config: AssemblyConfig,
    on_progress: Callable[[float], None] | None = None,
) -> str:
    """Re-encode `input_path` at constant frame rate. Raises RerenderFailed."""
    # HandBrakeCLI waits for confirmation when the output already exists
    try:
        _remove(output_path)
    except OSError as e:
        raise RerenderFailed(f"Could not remove stale output {output_path}: {e}") from e

    pending = ""

    def on_stdout(chunk: str) -> None:
        nonlocal pending
        # a progress line may be split across reads; keep the unfinished tail
        pending += chunk
        pct = parse_percent(pending)
        cut = max(pending.rfind("\r"), pending.rfind("\n"))
        if cut >= 0:
            pending = pending[cut + 1 :]
        if pct is not None and on_progress is not None:
            on_progress(pct)

    try:
        result = await run_process(build_rerender_command(input_path, output_path, config), on_stdout=on_stdout)
    except EnvironmentUnavailable as e:
        raise RerenderFailed(str(e)) from e
    except asyncio.CancelledError:
        with contextlib.suppress(OSError):
            _remove(output_path)
        raise

    if not result.ok or not os.path.isfile(output_path):
        logger.error("HandBrake re-render failed with code %s: %s", result.returncode, result.stderr[-2000:])
        try:
            _remove(output_path)
        except OSError:
            logger.warning("Could not remove partial re-render %s", output_path)
        raise RerenderFailed(f"Re-render failed with code {result.returncode}")
    return output_path


async def sync_in_place(
    path: str,
    config: AssemblyConfig,
    on_progress: Callable[[float], None] | None = None,
) -> str:
    """Re-render `path` and atomically replace it with the synchronized file."""
    root, ext = os.path.splitext(path)
    synced = f"{root}_synced{ext}"
    await rerender(path, synced, config, on_progress)
    try:
        os.replace(synced, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            _remove(synced)
        raise RerenderFailed(f"Could not replace {path} with re-rendered output: {e}") from e
    return path
