"""
Lossless join of encoded segment clips with the ffmpeg concat demuxer.
"""

import contextlib
import logging
import os

from .errors import AssemblyFailed
from .io_ffmpeg import run_process

logger = logging.getLogger("dubassembly")


def _quote(path: str) -> str:
    # concat demuxer syntax: close the quote, escaped quote, reopen
    return "'" + path.replace("\\", "/").replace("'", "'\\''") + "'"


def write_manifest(paths: list[str], manifest_path: str) -> None:
    """Write an ordered concat list."""
    with open(manifest_path, "w", encoding="utf-8") as f:
        f.write("\n".join(f"file {_quote(p)}" for p in paths))


async def concatenate(paths: list[str], output: str, workdir: str, ffmpeg: str = "ffmpeg") -> str:
    """Join clips in the given order into `output` via stream copy."""
    if not paths:
        raise AssemblyFailed("Nothing to concatenate")
    manifest = os.path.join(workdir, "concat_list.txt")
    write_manifest(paths, manifest)
    if os.path.exists(output):
        os.unlink(output)

    # joined under workdir, moved into place only once complete
    joined = os.path.join(workdir, "joined" + os.path.splitext(output)[1])
    try:
        result = await run_process([ffmpeg, "-y", "-f", "concat", "-safe", "0", "-i", manifest, "-c", "copy", joined])
        if not result.ok:
            logger.error("Concatenation failed with code %s: %s", result.returncode, result.stderr[-2000:])
            raise AssemblyFailed(f"Concatenation failed with code {result.returncode}")
        if not os.path.isfile(joined):
            raise AssemblyFailed(f"Concatenation produced no output at {joined}")
        os.replace(joined, output)
    except OSError as e:
        raise AssemblyFailed(f"Could not move joined video to {output}: {e}") from e
    finally:
        if os.path.exists(joined):
            with contextlib.suppress(OSError):
                os.unlink(joined)
    logger.info(f"Concatenated {len(paths)} clips -> {output}")
    return output
