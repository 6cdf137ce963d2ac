"""Retrying job executor: one job, bounded retries, terminal persistence.

State machine per job:

    Attempting ─┬─> Success                         (return outcome)
                ├─> RateLimited ─> Waiting ─> Attempting   (retries left)
                ├─> RateLimited ─> Exhausted ─> Terminal  (no retries left)
                ├─> PermissionDenied ─> Terminal
                └─> OtherError ─> Terminal

- The stop flag is read at the top of every attempt. Seeing it is an
  abandonment: no log entry, no failed job, the result is None.
- Backoff waits are 10s, 20s, 30s (``backoff_seconds * (retries + 1)``). The
  stop flag is not re-read during a wait, so a pending backoff completes and
  only the next attempt is skipped.
- Terminal and Exhausted both persist a FailedJob. A rate-limited failure
  that still has retries left never does.
- Nothing raised by the generation call escapes ``execute``.
"""

from typing import Awaitable, Callable, Optional

import structlog

from colorbook.models.job import GenerationOutcome, GenerationRequest, JobDescriptor
from colorbook.services.history_store import FailedJobQueue
from colorbook.services.image_generation.classification import (
    ErrorKind,
    classify_error,
    error_message,
)
from colorbook.services.preferences import Catalog
from colorbook.workers.runner import Sleep, delay
from colorbook.workers.session import GenerationSession, LogLevel

logger = structlog.get_logger(__name__)

MAX_RETRIES = 3
RATE_LIMIT_BACKOFF_SECONDS = 10.0
PERMISSION_BANNER = "API Key Invalid or Permission Denied. Please re-enter."

GenerateFn = Callable[[GenerationRequest], Awaitable[Optional[GenerationOutcome]]]
ReauthCallback = Callable[[], Awaitable[Optional[bool]]]


class JobExecutor:
    """Runs one descriptor through the generation call with retry and classification."""

    def __init__(
        self,
        generate: GenerateFn,
        session: GenerationSession,
        failed_jobs: FailedJobQueue,
        get_catalog: Callable[[], Catalog],
        *,
        on_reauthenticate: Optional[ReauthCallback] = None,
        max_retries: int = MAX_RETRIES,
        backoff_seconds: float = RATE_LIMIT_BACKOFF_SECONDS,
        sleep: Sleep = delay,
    ):
        """Initialize the executor.

        Args:
            generate: Remote generation call
            session: Session providing the stop flag, log and credential state
            failed_jobs: Retry queue receiving terminal failures
            get_catalog: Returns the current style/palette catalog
            on_reauthenticate: Awaited once per permission failure; returning True
                marks the API key as present again
            max_retries: Retries after the first attempt for rate-limited jobs
            backoff_seconds: Base backoff, multiplied by the retry number
            sleep: Awaitable sleep used for backoff waits
        """
        self.generate = generate
        self.session = session
        self.failed_jobs = failed_jobs
        self.get_catalog = get_catalog
        self.on_reauthenticate = on_reauthenticate
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def build_request(self, descriptor: JobDescriptor) -> GenerationRequest:
        """Resolve the descriptor's style and palette into a generation request."""
        catalog = self.get_catalog()
        style = catalog.resolve_style(descriptor.style)
        palette = catalog.resolve_palette(descriptor.selected_palette_id)
        return GenerationRequest(
            descriptor=descriptor,
            style_instruction=style.instruction or "",
            style_negatives=style.negative_prompt or "",
            palette_colors=tuple(palette.colors) if palette else (),
        )

    async def _handle_permission_denied(self) -> None:
        self.session.api_key_present = False
        self.session.banner_error = PERMISSION_BANNER

        if self.on_reauthenticate is None:
            return

        try:
            restored = await self.on_reauthenticate()
        except Exception as e:
            logger.error(
                "job.reauthentication_failed",
                error_type=type(e).__name__,
                error_message=str(e),
            )
            return

        if restored:
            self.session.api_key_present = True

    async def execute(self, descriptor: JobDescriptor) -> Optional[GenerationOutcome]:
        """Run one job to success, abandonment or a persisted failure.

        Returns:
            GenerationOutcome on success, None otherwise
        """
        log = self.session.log
        label = descriptor.action_label
        retries = 0

        while retries <= self.max_retries:
            if self.session.stop_requested:
                return None

            if retries == 0:
                log.append(f"{label}...", LogLevel.INFO)
            else:
                log.append(f"Retry {retries}/{self.max_retries}: {label}...", LogLevel.WARNING)

            try:
                result = await self.generate(self.build_request(descriptor))
            except Exception as e:
                message = error_message(e)
                kind = classify_error(message)

                if kind == ErrorKind.RATE_LIMITED:
                    if retries < self.max_retries:
                        wait_seconds = self.backoff_seconds * (retries + 1)
                        log.append(
                            f"Rate Limited (429). Waiting {wait_seconds:g}s...", LogLevel.WARNING
                        )
                        logger.warning(
                            "job.retry",
                            seed=descriptor.seed,
                            attempt_number=retries + 1,
                            wait_seconds=wait_seconds,
                            error_message=message,
                        )
                        await self.sleep(wait_seconds)
                        retries += 1
                        continue

                    log.append(
                        f"Failed after {self.max_retries} retries due to rate limits.",
                        LogLevel.ERROR,
                    )
                else:
                    log.append(f"Generation failed: {message}", LogLevel.ERROR)
                    if kind == ErrorKind.PERMISSION_DENIED:
                        await self._handle_permission_denied()

                logger.error(
                    "job.failed",
                    seed=descriptor.seed,
                    error_kind=kind.value,
                    error_message=message,
                    attempt_number=retries + 1,
                )

                if retries >= self.max_retries or kind != ErrorKind.RATE_LIMITED:
                    await self.failed_jobs.record(descriptor, message)
                    log.append("Saved failed job to Retry Queue.", LogLevel.WARNING)

                return None

            if result is None:
                logger.warning("job.empty_result", seed=descriptor.seed)
            return result

        return None
