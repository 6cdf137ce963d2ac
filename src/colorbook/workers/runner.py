"""Bounded-concurrency task runner with pacing and cooperative cancellation."""

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import structlog

from colorbook.workers.session import GenerationSession

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PACING_SECONDS = 1.0
DEFAULT_CONCURRENCY = 2

Task = Callable[[], Awaitable[T]]
Sleep = Callable[[float], Awaitable[Any]]


async def delay(seconds: float) -> None:
    """Pacing wait between task starts.

    Cancelling the awaiting asyncio task interrupts it; the session stop flag does not.
    """
    await asyncio.sleep(seconds)


async def _settle(task: Task[T], index: int) -> T | None:
    try:
        return await task()
    except Exception as e:
        logger.error(
            "runner.task_failed",
            task_index=index,
            error_type=type(e).__name__,
            error_message=str(e),
        )
        return None


async def run_concurrent_tasks(
    tasks: Sequence[Task[T]],
    concurrency: int,
    session: GenerationSession,
    *,
    pacing_seconds: float = PACING_SECONDS,
    sleep: Sleep = delay,
) -> list[T | None]:
    """Run zero-argument async tasks with a concurrency ceiling.

    Workflow per task (in list order):
    1. Stop starting tasks if the session stop flag is set
    2. Wait the pacing interval (also before the first task)
    3. Start the task and add it to the in-flight set
    4. If the in-flight set is full, wait until any one task finishes

    A failing task is logged and settles as None; it never aborts the batch.

    Args:
        tasks: Thunks producing the coroutines to run
        concurrency: Maximum number of tasks in flight
        session: Session whose stop flag is checked before each start
        pacing_seconds: Delay before each task start
        sleep: Awaitable sleep used for pacing

    Returns:
        One result per started task, in start order (None for failed tasks)

    Raises:
        ValueError: If concurrency is below 1
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    started: list[asyncio.Task] = []
    executing: set[asyncio.Task] = set()

    for index, task in enumerate(tasks):
        if session.stop_requested:
            break

        await sleep(pacing_seconds)

        if session.stop_requested:
            break

        running = asyncio.ensure_future(_settle(task, index))
        started.append(running)
        executing.add(running)
        running.add_done_callback(executing.discard)

        if len(executing) >= concurrency:
            done, _ = await asyncio.wait(set(executing), return_when=asyncio.FIRST_COMPLETED)
            executing.difference_update(done)

    if len(started) < len(tasks):
        logger.info("runner.stopped", started=len(started), skipped=len(tasks) - len(started))

    if not started:
        return []

    return list(await asyncio.gather(*started))
