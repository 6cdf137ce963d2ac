"""Bounded-concurrency runner tests.

Tests focus on scheduling behavior:
- The concurrency ceiling is never exceeded
- Pacing happens before every start, the first one included
- The stop flag prevents further starts without cancelling started tasks
- A failing task settles as None and does not abort the batch
"""

import asyncio

import pytest

from colorbook.workers.runner import run_concurrent_tasks
from colorbook.workers.session import GenerationSession


def counting_tasks(count: int, tracker: dict, hold: float = 0.01):
    async def run(index: int) -> int:
        tracker["active"] += 1
        tracker["peak"] = max(tracker["peak"], tracker["active"])
        tracker["started"].append(index)
        await asyncio.sleep(hold)
        tracker["active"] -= 1
        return index

    return [lambda index=index: run(index) for index in range(count)]


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [1, 2, 3])
async def test_concurrency_ceiling_is_respected(concurrency, sleep_recorder):
    """At no point are more than `concurrency` tasks in flight."""
    tracker = {"active": 0, "peak": 0, "started": []}
    session = GenerationSession()

    results = await run_concurrent_tasks(
        counting_tasks(7, tracker), concurrency, session, sleep=sleep_recorder
    )

    assert tracker["peak"] <= concurrency
    assert results == list(range(7))
    assert tracker["started"] == list(range(7))


@pytest.mark.asyncio
async def test_pacing_precedes_every_start(sleep_recorder):
    tracker = {"active": 0, "peak": 0, "started": []}

    await run_concurrent_tasks(
        counting_tasks(3, tracker), 2, GenerationSession(), pacing_seconds=1.0, sleep=sleep_recorder
    )

    assert sleep_recorder.calls == [1.0, 1.0, 1.0]


@pytest.mark.asyncio
async def test_empty_task_list_returns_immediately(sleep_recorder):
    assert await run_concurrent_tasks([], 2, GenerationSession(), sleep=sleep_recorder) == []
    assert sleep_recorder.calls == []


@pytest.mark.asyncio
async def test_concurrency_below_one_is_rejected():
    with pytest.raises(ValueError, match="concurrency"):
        await run_concurrent_tasks([], 0, GenerationSession())


@pytest.mark.asyncio
async def test_stop_after_k_starts_runs_exactly_k_tasks(sleep_recorder):
    """Stopping after K starts: at most K tasks ever start, and all of them complete."""
    session = GenerationSession()
    completed = []

    def make(index: int):
        async def run() -> int:
            await asyncio.sleep(0)
            if index == 1:
                session.request_stop()
            completed.append(index)
            return index

        return run

    results = await run_concurrent_tasks(
        [make(i) for i in range(5)], 1, session, sleep=sleep_recorder
    )

    assert results == [0, 1]
    assert completed == [0, 1]


@pytest.mark.asyncio
async def test_stop_during_pacing_wait_skips_the_pending_start():
    """The flag is re-read after the pacing wait, so a stop during it starts nothing more."""
    session = GenerationSession()
    started = []
    waits = []

    async def stopping_sleep(seconds: float) -> None:
        waits.append(seconds)
        if len(waits) == 2:
            session.stop_requested = True

    def make(index: int):
        async def run() -> int:
            started.append(index)
            return index

        return run

    results = await run_concurrent_tasks(
        [make(i) for i in range(4)], 2, session, sleep=stopping_sleep
    )

    assert started == [0]
    assert results == [0]


@pytest.mark.asyncio
async def test_stop_does_not_cancel_in_flight_tasks(sleep_recorder):
    session = GenerationSession()
    release = asyncio.Event()
    finished = []

    async def slow() -> str:
        await release.wait()
        finished.append("slow")
        return "slow"

    async def stopper() -> str:
        session.request_stop()
        release.set()
        return "stopper"

    async def never() -> str:
        finished.append("never")
        return "never"

    results = await run_concurrent_tasks(
        [slow, stopper, never], 2, session, sleep=sleep_recorder
    )

    assert results == ["slow", "stopper"]
    assert finished == ["slow"]


@pytest.mark.asyncio
async def test_failing_task_settles_as_none(sleep_recorder):
    async def ok() -> str:
        return "ok"

    async def boom() -> str:
        raise RuntimeError("storage unavailable")

    results = await run_concurrent_tasks(
        [ok, boom, ok], 2, GenerationSession(), sleep=sleep_recorder
    )

    assert results == ["ok", None, "ok"]
