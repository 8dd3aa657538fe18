"""
Bounded-concurrency execution of per-segment work.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from tqdm import tqdm

from .errors import AssemblyCancelled, SegmentEncodeFailed

logger = logging.getLogger("dubassembly")

T = TypeVar("T")


@dataclass
class WorkResult(Generic[T]):
    index: int
    ok: bool
    value: T | None = None
    error: str | None = None
    attempts: int = 0


@dataclass
class ProgressTick:
    completed: int
    total: int
    index: int
    label: str
    ok: bool
    eta_seconds: int


async def run_bounded(
    items: Sequence[Any],
    worker: Callable[[int, Any], Awaitable[T]],
    *,
    concurrency: int,
    retries: int = 0,
    cancel_event: asyncio.Event | None = None,
    on_progress: Callable[[ProgressTick], None] | None = None,
    label: Callable[[Any], str] = str,
    show_progress: bool = False,
) -> list[WorkResult[T]]:
    """
    Run `worker(index, item)` for every item with at most `concurrency` in flight.

    Results are returned in item order regardless of completion order. A worker
    raising SegmentEncodeFailed is retried up to `retries` times and then
    recorded as failed; any other exception aborts the whole batch.
    """
    total = len(items)
    results: list[WorkResult[T] | None] = [None] * total
    semaphore = asyncio.Semaphore(max(1, concurrency))
    started = time.monotonic()
    completed = 0
    bar = tqdm(total=total, desc="Encoding segments", disable=not show_progress)

    def cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    async def process_single(index: int, item: Any) -> None:
        nonlocal completed
        async with semaphore:
            if cancelled():
                return
            attempts = 0
            while True:
                attempts += 1
                try:
                    value = await worker(index, item)
                    result = WorkResult(index, True, value=value, attempts=attempts)
                    break
                except SegmentEncodeFailed as e:
                    if attempts <= retries and not cancelled():
                        logger.warning("Retrying %s (attempt %d failed: %s)", label(item), attempts, e)
                        continue
                    logger.warning("Giving up on %s: %s", label(item), e)
                    result = WorkResult(index, False, error=str(e), attempts=attempts)
                    break

        results[index] = result
        completed += 1
        bar.update(1)
        if on_progress is not None:
            avg = (time.monotonic() - started) / completed
            on_progress(
                ProgressTick(
                    completed=completed,
                    total=total,
                    index=index,
                    label=label(item),
                    ok=result.ok,
                    eta_seconds=round(avg * (total - completed)),
                )
            )

    tasks = [asyncio.create_task(process_single(i, item)) for i, item in enumerate(items)]
    waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
    batch = None
    try:
        if tasks:
            batch = asyncio.gather(*tasks)
            if waiter is not None:
                await asyncio.wait({batch, waiter}, return_when=asyncio.FIRST_COMPLETED)
                if not batch.done():
                    raise AssemblyCancelled("Run cancelled while encoding segments")
            await batch
        if cancelled():
            raise AssemblyCancelled("Run cancelled while encoding segments")
    finally:
        bar.close()
        if waiter is not None:
            waiter.cancel()
        if batch is not None and not batch.done():
            batch.cancel()
        pending = [t for t in tasks if not t.done()]
        for t in pending:
            t.cancel()
        if pending:
            # let cancelled workers kill their subprocesses
            await asyncio.gather(*pending, return_exceptions=True)

    return [r if r is not None else WorkResult(i, False, error="not run") for i, r in enumerate(results)]


def ordered_values(results: list[WorkResult[T]]) -> list[T]:
    """Successful values, in original item order."""
    return [r.value for r in sorted(results, key=lambda r: r.index) if r.ok and r.value is not None]
