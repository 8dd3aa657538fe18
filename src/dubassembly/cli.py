"""
Command-line interface for final video assembly.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv

from .config import FAILURE_MODES, AssemblyConfig
from .models import ProgressEvent
from .pipeline import create_final_video
from .project import ProjectLayout, check_ready

logger = logging.getLogger("dubassembly")


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Assemble a dubbed video from subtitles and per-line audio")

    # IO
    ap.add_argument("--project", required=True, help="Project directory (original/, transcript/, audio_gene/)")
    ap.add_argument("--video-id", default=None, help="Output name prefix (default: project directory name)")
    ap.add_argument("--check", action="store_true", help="Only check that the project is ready and exit")

    # Encoding
    ap.add_argument("--concurrency", type=int, default=None, help="Max concurrent ffmpeg encodes")
    ap.add_argument("--hwaccel", action="store_true", default=None, help="Encode with NVENC")
    ap.add_argument("--encode-timeout", type=float, default=None, help="Per-segment timeout in seconds")
    ap.add_argument("--retries", type=int, default=None, help="Extra attempts for a failed segment")
    ap.add_argument(
        "--failure-mode",
        choices=FAILURE_MODES,
        default=None,
        help="drop: omit failed segments; original: use the untouched source interval instead",
    )
    ap.add_argument("--no-rerender", action="store_true", help="Skip the HandBrake CFR re-render")
    ap.add_argument("--ffmpeg", default=None, help="Path to ffmpeg")
    ap.add_argument("--handbrake", default=None, help="Path to HandBrakeCLI")

    # Logging
    ap.add_argument("--progress-bar", action="store_true", help="Show a console progress bar")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> AssemblyConfig:
    """Environment defaults overridden by explicit flags."""
    config = AssemblyConfig.from_env()
    overrides = {
        "concurrency": args.concurrency,
        "hwaccel": args.hwaccel,
        "encode_timeout": args.encode_timeout,
        "retries": args.retries,
        "failure_mode": args.failure_mode,
        "ffmpeg_path": args.ffmpeg,
        "handbrake_path": args.handbrake,
    }
    config = replace(config, **{k: v for k, v in overrides.items() if v is not None})
    if args.no_rerender:
        config = replace(config, rerender=False)
    if args.progress_bar:
        config = replace(config, show_progress=True)
    return config


def _log_progress(event: ProgressEvent) -> None:
    if event.status == "processing":
        logger.debug(f"[{event.status} {event.progress}%] {event.detail}")
    elif event.status == "error":
        logger.error(f"[{event.status}] {event.detail}")
    else:
        logger.info(f"[{event.status} {event.progress}%] {event.detail}")


async def main_async(argv: list[str] | None = None) -> int:
    """Main async CLI entry point."""
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.verbose)

    project = str(Path(args.project).resolve())
    video_id = args.video_id or Path(project).name
    config = build_config(args)

    state = check_ready(ProjectLayout(project), video_id, config.audio_ext)
    if not state.ready:
        logger.error(state.missing)
        return 1
    if args.check:
        logger.info("Project is ready" + (f" (existing output: {state.existing_final})" if state.existing_final else ""))
        return 0

    output = await create_final_video(project, video_id, on_progress=_log_progress, config=config)
    if output is None:
        return 1
    logger.info(f"Done -> {output}")
    return 0


def main() -> None:
    """Main CLI entry point."""
    try:
        sys.exit(asyncio.run(main_async()))
    except KeyboardInterrupt:
        logger.error("Interrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
