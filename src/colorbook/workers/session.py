"""Per-batch session state: stop flag, log stream, selection and credential status."""

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator, Optional

import structlog

logger = structlog.get_logger(__name__)


class LogLevel(str, Enum):
    """Severity of a session log entry."""

    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


_STRUCTLOG_METHODS = {
    LogLevel.INFO: "info",
    LogLevel.SUCCESS: "info",
    LogLevel.WARNING: "warning",
    LogLevel.ERROR: "error",
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str
    level: LogLevel


class SessionLog:
    """Append-only user-facing log. Stored in append order, shown newest first."""

    def __init__(self):
        self.entries: list[LogEntry] = []

    def append(self, message: str, level: LogLevel = LogLevel.INFO) -> LogEntry:
        entry = LogEntry(timestamp=datetime.now(), message=message, level=LogLevel(level))
        self.entries.append(entry)
        getattr(logger, _STRUCTLOG_METHODS[entry.level])(
            "session.log", message=message, level=entry.level.value
        )
        return entry

    def newest_first(self) -> list[LogEntry]:
        return list(reversed(self.entries))

    def messages(self) -> list[str]:
        return [entry.message for entry in self.entries]

    def clear(self) -> None:
        self.entries = []


@dataclass
class GenerationSession:
    """Explicit session state passed into the runner and the executor.

    ``stop_requested`` is advisory: it is read at safe points and never
    interrupts a request that is already in flight.
    """

    api_key_present: bool = False
    stop_requested: bool = False
    is_generating: bool = False
    banner_error: Optional[str] = None
    selected_ids: set[str] = field(default_factory=set)
    log: SessionLog = field(default_factory=SessionLog)

    @contextmanager
    def batch(self) -> Iterator["GenerationSession"]:
        """Scope one user-triggered batch; flags are reset whatever happens."""
        self.is_generating = True
        self.stop_requested = False
        self.banner_error = None
        try:
            yield self
        finally:
            self.is_generating = False
            self.stop_requested = False

    def request_stop(self) -> None:
        self.stop_requested = True
        self.log.append("Stopping generation sequence...", LogLevel.WARNING)

    def toggle_selection(self, image_id: str) -> None:
        if image_id in self.selected_ids:
            self.selected_ids = self.selected_ids - {image_id}
        else:
            self.selected_ids = self.selected_ids | {image_id}

    def toggle_select_all(self, image_ids: Iterable[str]) -> None:
        """Select everything, or clear the selection if everything is already selected."""
        all_ids = set(image_ids)
        self.selected_ids = set() if self.selected_ids == all_ids else all_ids

    def clear_selection(self) -> None:
        self.selected_ids = set()
