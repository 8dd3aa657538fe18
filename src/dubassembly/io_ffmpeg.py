"""
External process helpers: ffmpeg invocation, media probing, binary lookup.
"""

import asyncio
import contextlib
import logging
import os
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from pydub.utils import which

from .errors import EnvironmentUnavailable

logger = logging.getLogger("dubassembly")

_DURATION_RE = re.compile(r"Duration:\s*(\d+):(\d+):(\d+)\.(\d+)")

MIN_ATEMPO = 0.5
MAX_ATEMPO = 2.0


@dataclass
class ProcessResult:
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


def resolve_binary(name: str) -> str:
    """Return an executable path for `name` or raise EnvironmentUnavailable."""
    if os.path.isfile(name):
        return name
    found = which(name)
    if not found:
        raise EnvironmentUnavailable(f"Required program not found: {name}")
    return found


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()


async def run_process(
    cmd: list[str],
    *,
    timeout: float | None = None,
    on_stdout: Callable[[str], None] | None = None,
) -> ProcessResult:
    """Run a command, collecting its output without blocking the event loop.

    The child is killed if the awaiting task is cancelled or the timeout expires.
    """
    cmd = [str(c) for c in cmd]
    logger.debug("Running: %s", " ".join(cmd))
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        raise EnvironmentUnavailable(f"Could not start {cmd[0]}: {e}") from e

    out: list[str] = []
    err: list[str] = []

    async def drain(stream: asyncio.StreamReader, sink: list[str], callback) -> None:
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            text = chunk.decode("utf-8", errors="replace")
            sink.append(text)
            if callback is not None:
                callback(text)

    timed_out = False
    try:
        await asyncio.wait_for(
            asyncio.gather(drain(proc.stdout, out, on_stdout), drain(proc.stderr, err, None), proc.wait()),
            timeout,
        )
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning("Command timed out after %.1fs: %s", timeout, cmd[0])
        await _kill(proc)
    except asyncio.CancelledError:
        await _kill(proc)
        raise

    result = ProcessResult(proc.returncode, "".join(out), "".join(err), timed_out)
    if not result.ok and not timed_out:
        logger.debug("Command failed with code %s: %s", proc.returncode, result.stderr[-2000:])
    return result


def parse_duration(text: str) -> float | None:
    """Parse `Duration: HH:MM:SS.ff` from ffmpeg's banner output."""
    m = _DURATION_RE.search(text or "")
    if not m:
        return None
    h, mi, s = (int(g) for g in m.groups()[:3])
    return h * 3600 + mi * 60 + s + float(f"0.{m.group(4)}")


async def probe_duration(path: str, ffmpeg: str = "ffmpeg") -> float:
    """Media duration in seconds, or 0.0 when it cannot be determined."""
    if not os.path.isfile(path):
        return 0.0
    # ffmpeg exits non-zero without an output file; the banner still carries the duration
    result = await run_process([ffmpeg, "-hide_banner", "-i", path])
    seconds = parse_duration(result.output)
    if seconds is None:
        logger.warning("Could not read duration of %s", path)
        return 0.0
    return seconds


def atempo_chain(ratio: float) -> str:
    """
    Build an atempo filter chain for a tempo ratio.
    atempo > 1.0 => speed up (shorter), atempo < 1.0 => slow down (longer).
    Each atempo step is kept within 0.5..2.0.
    """
    if ratio <= 0:
        ratio = 1.0
    steps: list[float] = []
    r = ratio
    while r < MIN_ATEMPO or r > MAX_ATEMPO:
        step = MIN_ATEMPO if r < 1.0 else MAX_ATEMPO
        steps.append(step)
        r /= step
    steps.append(r)
    return ",".join(f"atempo={s:.4f}" for s in steps)
