"""
Tests for bounded-concurrency segment scheduling.
"""

import asyncio
import random

import pytest

from src.dubassembly.errors import AssemblyCancelled, EnvironmentUnavailable, SegmentEncodeFailed
from src.dubassembly.scheduler import ordered_values, run_bounded


def test_results_keep_item_order_under_random_completion():
    rng = random.Random(7)
    delays = [rng.uniform(0.0, 0.02) for _ in range(30)]
    completion: list[int] = []

    async def worker(index, item):
        await asyncio.sleep(delays[index])
        completion.append(index)
        return f"clip_{item}"

    results = asyncio.run(run_bounded(list(range(30)), worker, concurrency=4))

    assert [r.index for r in results] == list(range(30))
    assert ordered_values(results) == [f"clip_{i}" for i in range(30)]
    assert sorted(completion) == list(range(30))


def test_concurrency_is_bounded():
    in_flight = 0
    peak = 0

    async def worker(index, item):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return item

    asyncio.run(run_bounded(list(range(20)), worker, concurrency=3))
    assert peak == 3


def test_failures_are_recorded_and_skipped():
    async def worker(index, item):
        if item in (3, 8):
            raise SegmentEncodeFailed(f"boom {item}")
        return item

    results = asyncio.run(run_bounded(list(range(10)), worker, concurrency=2))

    assert [r.index for r in results if not r.ok] == [3, 8]
    assert results[3].error == "boom 3"
    assert ordered_values(results) == [0, 1, 2, 4, 5, 6, 7, 9]


def test_retry_budget():
    attempts: dict[int, int] = {}

    async def worker(index, item):
        attempts[index] = attempts.get(index, 0) + 1
        if index == 1 and attempts[index] < 3:
            raise SegmentEncodeFailed("flaky")
        if index == 2:
            raise SegmentEncodeFailed("always")
        return item

    results = asyncio.run(run_bounded(["a", "b", "c"], worker, concurrency=1, retries=2))

    assert results[1].ok and results[1].attempts == 3
    assert not results[2].ok and results[2].attempts == 3
    assert attempts[0] == 1


def test_progress_ticks():
    ticks = []

    async def worker(index, item):
        await asyncio.sleep(0.001 * (5 - index))
        if index == 4:
            raise SegmentEncodeFailed("bad")
        return item

    asyncio.run(
        run_bounded(
            ["a", "b", "c", "d", "e"],
            worker,
            concurrency=5,
            on_progress=ticks.append,
            label=lambda item: f"#{item}",
        )
    )

    assert [t.completed for t in ticks] == [1, 2, 3, 4, 5]
    assert all(t.total == 5 for t in ticks)
    assert sorted(t.label for t in ticks) == ["#a", "#b", "#c", "#d", "#e"]
    assert [t.ok for t in ticks if t.label == "#e"] == [False]
    assert ticks[-1].eta_seconds == 0


def test_fatal_error_propagates():
    async def worker(index, item):
        if index == 2:
            raise EnvironmentUnavailable("ffmpeg missing")
        await asyncio.sleep(0.01)
        return item

    with pytest.raises(EnvironmentUnavailable):
        asyncio.run(run_bounded(list(range(6)), worker, concurrency=2))


def test_cancellation_stops_admission_and_inflight_work():
    started: list[int] = []
    interrupted: list[int] = []

    async def scenario():
        cancel = asyncio.Event()

        async def worker(index, item):
            started.append(index)
            if index == 1:
                cancel.set()
            try:
                await asyncio.sleep(1.0)
            except asyncio.CancelledError:
                interrupted.append(index)
                raise
            return item

        await run_bounded(list(range(10)), worker, concurrency=2, cancel_event=cancel)

    with pytest.raises(AssemblyCancelled):
        asyncio.run(scenario())

    assert sorted(started) == [0, 1]
    assert sorted(interrupted) == [0, 1]


def test_empty_input():
    async def worker(index, item):
        return item

    assert asyncio.run(run_bounded([], worker, concurrency=3)) == []
