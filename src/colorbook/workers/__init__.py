"""Job orchestration: session state, runner, retrying executor and batch planners."""

from colorbook.workers.executor import JobExecutor
from colorbook.workers.runner import run_concurrent_tasks
from colorbook.workers.session import GenerationSession, LogLevel

__all__ = [
    "GenerationSession",
    "JobExecutor",
    "LogLevel",
    "run_concurrent_tasks",
]
