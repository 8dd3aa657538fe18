"""
Final video assembly: segment map -> per-segment encode -> concat -> CFR re-render.
"""

import asyncio
import functools
import logging
import os
import shutil
import time
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import TypeVar

from .concat import concatenate
from .config import AssemblyConfig
from .encoder import clip_path, encode_segment
from .errors import (
    AssemblyCancelled,
    AssemblyError,
    AssemblyFailed,
    EnvironmentUnavailable,
    InvalidInput,
    RerenderFailed,
)
from .io_ffmpeg import ensure_dir, probe_duration, resolve_binary
from .models import EncodingDecision, ProgressEvent, RunResult, Segment, SegmentKind, Strategy
from .policy import decide
from .project import ProjectLayout, find_original_srt, find_original_video
from .rerender import sync_in_place
from .scheduler import ProgressTick, WorkResult, ordered_values, run_bounded
from .segments import build_segment_map, segment_stats
from .srt_utils import parse_srt

logger = logging.getLogger("dubassembly")

Listener = Callable[[ProgressEvent], None]
T = TypeVar("T")


class AssemblyRun:
    """
    One assembly of a project's final video.

    Progress is published to subscribers as ProgressEvent values. Each run owns
    its scratch directory, which is removed whether the run succeeds or not.
    """

    def __init__(
        self,
        project_root: str,
        video_id: str,
        config: AssemblyConfig | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        self.layout = ProjectLayout(project_root)
        self.video_id = video_id
        self.config = config or AssemblyConfig()
        self.cancel_event = cancel_event or asyncio.Event()
        self.events: list[ProgressEvent] = []
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a progress listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def cancel(self) -> None:
        self.cancel_event.set()

    def _emit(self, status: str, progress: int, detail: str, current: int | None = None, total: int | None = None) -> None:
        event = ProgressEvent(status, progress, detail, current, total)
        self.events.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Progress listener failed: {e}")

    def _check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise AssemblyCancelled("Run cancelled")

    async def _unless_cancelled(self, awaitable: Awaitable[T], stage: str) -> T:
        """Await `awaitable`, cancelling it (and any child process) if the run is cancelled first."""
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.create_task(self.cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
            if not task.done():
                raise AssemblyCancelled(f"Run cancelled while {stage}")
            return task.result()
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

    def _discard(self, path: str) -> None:
        if not os.path.exists(path):
            return
        try:
            os.unlink(path)
            logger.info(f"Removed unfinished output {path}")
        except OSError as e:
            logger.warning(f"Could not remove unfinished output {path}: {e}")

    async def execute(self) -> RunResult:
        """Run the whole assembly. Fatal errors are emitted as `error` events and re-raised."""
        try:
            return await self._execute()
        except AssemblyError as e:
            logger.error("Final video assembly failed: %s", e)
            self._emit("error", 0, str(e))
            raise
        except asyncio.CancelledError:
            self._emit("error", 0, "Run cancelled")
            raise
        finally:
            shutil.rmtree(self.layout.temp_dir, ignore_errors=True)

    async def _execute(self) -> RunResult:
        started = time.monotonic()
        layout = self.layout

        source = find_original_video(layout)
        logger.info(f"Original video in {layout.video_dir}: {source}")
        if source is None:
            raise InvalidInput("Original video not found")
        srt_path = find_original_srt(layout)
        if srt_path is None:
            raise InvalidInput("Original subtitle track not found")
        if not os.path.isdir(layout.audio_dir):
            raise InvalidInput(f"Audio directory not found: {layout.audio_dir}")

        self._emit("preparing", 5, "Analysing video and subtitles...")
        config = replace(self.config, ffmpeg_path=resolve_binary(self.config.ffmpeg_path))

        video_duration = await probe_duration(source, config.ffmpeg_path)
        logger.info(f"Video duration: {video_duration:.3f}s")
        if video_duration <= 0:
            raise InvalidInput(f"Could not read duration of {source}")

        entries = parse_srt(srt_path)
        segments = await build_segment_map(
            entries,
            layout.audio_dir,
            video_duration,
            tolerance=config.gap_tolerance,
            audio_ext=config.audio_ext,
            probe=functools.partial(probe_duration, ffmpeg=config.ffmpeg_path),
        )
        decisions = [decide(s, config.max_speedup) for s in segments]
        stats = segment_stats(segments, config.max_speedup)
        logger.info(stats.describe())
        self._emit("preparing", 10, stats.describe())
        self._check_cancelled()

        shutil.rmtree(layout.temp_dir, ignore_errors=True)
        ensure_dir(layout.temp_dir)

        results = await self._encode_all(source, segments, decisions, config)
        first_pass = {r.index: r.ok for r in results}
        substituted = 0
        if config.failure_mode == "original":
            results, substituted = await self._substitute_failed(source, segments, results, config)

        paths = ordered_values(results)
        failed = [r.index for r in results if not r.ok]
        if not paths:
            raise AssemblyFailed("No segment could be encoded")
        if failed:
            logger.warning(f"{len(failed)} of {len(segments)} segments failed and were dropped")
        self._check_cancelled()

        self._emit("concatenating", 90, f"Joining {len(paths)} segments into the final video...")
        ensure_dir(layout.final_dir)
        output = layout.final_output(self.video_id)
        synced = False
        try:
            await self._unless_cancelled(
                concatenate(paths, output, layout.temp_dir, config.ffmpeg_path), "concatenating"
            )
            shutil.rmtree(layout.temp_dir, ignore_errors=True)
            if config.rerender:
                self._check_cancelled()
                synced = await self._rerender(output, config)
            self._check_cancelled()
        except (AssemblyCancelled, asyncio.CancelledError):
            self._discard(output)
            raise

        dubbed = [i for i, s in enumerate(segments) if s.kind is SegmentKind.DUBBED]
        ok_dubbed = sum(1 for i in dubbed if first_pass[i])
        elapsed = time.monotonic() - started
        detail = (
            f"Done in {round(elapsed)}s: {len(paths)}/{len(segments)} segments, "
            f"{ok_dubbed}/{len(dubbed)} dubbed"
        )
        if substituted:
            detail += f", {substituted} replaced with original footage"
        if not synced and config.rerender:
            detail += " (not re-rendered)"
        self._emit("done", 100, detail)

        return RunResult(
            output_path=output,
            total_segments=len(segments),
            processed_segments=len(paths),
            dubbed_segments=len(dubbed),
            processed_dubbed=ok_dubbed,
            failed_indices=failed,
            synced=synced,
            elapsed=elapsed,
        )

    async def _encode_all(
        self,
        source: str,
        segments: list[Segment],
        decisions: list[EncodingDecision],
        config: AssemblyConfig,
    ) -> list[WorkResult[str]]:
        temp_dir = self.layout.temp_dir

        async def work(position: int, pair: tuple[Segment, EncodingDecision]) -> str:
            segment, decision = pair
            return await encode_segment(segment, decision, source, clip_path(temp_dir, position), config)

        def on_tick(tick: ProgressTick) -> None:
            self._emit(
                "processing",
                10 + round(tick.completed / tick.total * 78),
                f"{tick.completed}/{tick.total} ({tick.label}) - ~{tick.eta_seconds}s left",
                current=tick.completed,
                total=tick.total,
            )

        return await run_bounded(
            list(zip(segments, decisions)),
            work,
            concurrency=config.concurrency,
            retries=config.retries,
            cancel_event=self.cancel_event,
            on_progress=on_tick,
            label=lambda pair: pair[0].label,
            show_progress=config.show_progress,
        )

    async def _substitute_failed(
        self,
        source: str,
        segments: list[Segment],
        results: list[WorkResult[str]],
        config: AssemblyConfig,
    ) -> tuple[list[WorkResult[str]], int]:
        """Re-encode failed dubbed segments from the untouched source interval."""
        failed = [r.index for r in results if not r.ok and segments[r.index].kind is SegmentKind.DUBBED]
        if not failed:
            return results, 0
        logger.warning(f"Substituting original footage for {len(failed)} failed segments")
        temp_dir = self.layout.temp_dir

        async def work(_: int, position: int) -> str:
            segment = segments[position]
            decision = EncodingDecision(Strategy.PASSTHROUGH, output_duration=segment.video_duration)
            return await encode_segment(segment, decision, source, clip_path(temp_dir, position), config)

        retried = await run_bounded(
            failed,
            work,
            concurrency=config.concurrency,
            cancel_event=self.cancel_event,
            label=lambda position: segments[position].label,
        )
        merged = list(results)
        substituted = 0
        for r in retried:
            position = failed[r.index]
            if r.ok:
                merged[position] = WorkResult(position, True, value=r.value, attempts=r.attempts)
                substituted += 1
        return merged, substituted

    async def _rerender(self, output: str, config: AssemblyConfig) -> bool:
        self._emit("rerendering", 92, "Re-rendering at constant frame rate to sync video and audio...")

        def on_percent(pct: float) -> None:
            self._emit("rerendering", 92 + round(pct * 0.07), f"Re-rendering: {pct:.1f}%")

        try:
            handbrake = resolve_binary(config.handbrake_path)
            await self._unless_cancelled(
                sync_in_place(output, replace(config, handbrake_path=handbrake), on_percent), "re-rendering"
            )
            return True
        except (RerenderFailed, EnvironmentUnavailable) as e:
            logger.warning(f"Re-render failed, keeping unsynchronized output (degraded quality): {e}")
            return False


async def create_final_video(
    project_root: str,
    video_id: str,
    on_progress: Listener | None = None,
    config: AssemblyConfig | None = None,
    cancel_event: asyncio.Event | None = None,
) -> str | None:
    """Assemble the final video; returns its path, or None after an `error` event."""
    run = AssemblyRun(project_root, video_id, config, cancel_event)
    if on_progress is not None:
        run.subscribe(on_progress)
    try:
        result = await run.execute()
    except AssemblyError:
        return None
    return result.output_path
