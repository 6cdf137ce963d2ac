"""Studio: the user-level operations wired on top of the job orchestration core."""

from pathlib import Path
from typing import Callable, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from colorbook.core.config import Settings
from colorbook.core.database import create_engine, ensure_schema, setup_db_session
from colorbook.models.image import GeneratedImage
from colorbook.models.job import Resolution
from colorbook.services import export
from colorbook.services.history_store import FailedJobQueue, HistoryStore, ImageHistory
from colorbook.services.image_generation.prompt_validator import parse_batch_prompts
from colorbook.services.image_generation.replicate_client import ReplicateImageGenerator
from colorbook.services.preferences import PreferencesStore
from colorbook.uow import create_uow_factory
from colorbook.workers.executor import GenerateFn, JobExecutor, ReauthCallback
from colorbook.workers.planners import (
    PlannedJob,
    PlanningError,
    build_tasks,
    plan_batch_colorize,
    plan_batch_decolorize,
    plan_batch_edit,
    plan_batch_upscale,
    plan_edit,
    plan_new_generation,
    plan_retry,
)
from colorbook.workers.runner import Sleep, delay, run_concurrent_tasks
from colorbook.workers.session import GenerationSession, LogLevel

logger = structlog.get_logger(__name__)

MISSING_KEY_BANNER = "No API key configured. Set REPLICATE_API_TOKEN and try again."


class Studio:
    """Coloring-book studio: history, retry queue, preferences and batch operations.

    Every batch runs inside ``session.batch()`` so the generating and stop
    flags are reset however the batch ends.
    """

    def __init__(
        self,
        settings: Settings,
        uow_factory: Callable,
        generate: GenerateFn,
        *,
        on_reauthenticate: Optional[ReauthCallback] = None,
        sleep: Sleep = delay,
    ):
        self.settings = settings
        self.sleep = sleep
        self.engine: Optional[AsyncEngine] = None

        self.session = GenerationSession(api_key_present=settings.has_api_key)
        self.store = HistoryStore(uow_factory)
        self.history = ImageHistory(self.store)
        self.failed_jobs = FailedJobQueue(self.store)
        self.preferences = PreferencesStore(uow_factory)
        self.executor = JobExecutor(
            generate,
            self.session,
            self.failed_jobs,
            lambda: self.preferences.catalog,
            on_reauthenticate=on_reauthenticate,
            max_retries=settings.max_retries,
            backoff_seconds=settings.rate_limit_backoff_seconds,
            sleep=sleep,
        )

        # Upload state shared by every job of a new-generation batch
        self.uploaded_images: list[str] = []
        self.batch_prompts: list[str] = []

    @classmethod
    async def create(
        cls,
        settings: Settings,
        generate: Optional[GenerateFn] = None,
        **kwargs,
    ) -> "Studio":
        """Open the database, create missing tables and load all state.

        Args:
            settings: Application settings
            generate: Generation call (default: Replicate client built from settings)
        """
        engine = create_engine(settings.database_url)
        await ensure_schema(engine)

        if generate is None:
            generate = ReplicateImageGenerator(
                api_token=settings.replicate_api_token,
                model_version=settings.replicate_model_version,
                hires_model_version=settings.replicate_hires_model_version,
                download_timeout=settings.download_timeout_seconds,
            )

        studio = cls(settings, create_uow_factory(setup_db_session(engine)), generate, **kwargs)
        studio.engine = engine
        await studio.load()
        return studio

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None

    async def load(self) -> None:
        """Load history, retry queue and preferences from storage."""
        await self.history.load()
        await self.failed_jobs.refresh()
        await self.preferences.load()
        logger.info(
            "studio.loaded",
            images=len(self.history.images),
            failed_jobs=len(self.failed_jobs.jobs),
        )

    # --- helpers ---

    def _log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        self.session.log.append(message, level)

    def _report(self, message: str) -> None:
        self.session.banner_error = message
        self._log(message, LogLevel.ERROR)

    def _require_api_key(self) -> bool:
        if self.session.api_key_present:
            return True
        self._report(MISSING_KEY_BANNER)
        return False

    def _plan(self, planner: Callable[..., list[PlannedJob]], *args) -> Optional[list[PlannedJob]]:
        try:
            return planner(*args)
        except PlanningError as e:
            self._report(str(e))
            return None

    async def _run_plan(
        self, plan: Sequence[PlannedJob], *, sync_failed_cache: bool = True
    ) -> list[GeneratedImage]:
        tasks = build_tasks(
            plan,
            self.executor,
            self.history,
            self.failed_jobs,
            sync_failed_cache=sync_failed_cache,
        )
        results = await run_concurrent_tasks(
            tasks,
            self.settings.generation_concurrency,
            self.session,
            pacing_seconds=self.settings.pacing_seconds,
            sleep=self.sleep,
        )
        return [image for image in results if image is not None]

    async def _run_selection_batch(
        self,
        title: str,
        start_message: str,
        planner: Callable[..., list[PlannedJob]],
        *args,
    ) -> list[GeneratedImage]:
        if not self._require_api_key():
            return []

        targets = self.history.select(self.session.selected_ids)
        with self.session.batch():
            plan = self._plan(planner, self.preferences.config, targets, *args)
            if plan is None:
                return []

            self._log(start_message)
            images = await self._run_plan(plan)
            self.session.clear_selection()
            self._log(f"{title} Finished.", LogLevel.SUCCESS)

        logger.info("studio.batch.finished", batch=title, planned=len(plan), succeeded=len(images))
        return images

    # --- input state ---

    def set_batch_prompts(self, text: str) -> list[str]:
        """Use one prompt per non-blank line for the next new-generation batch."""
        try:
            self.batch_prompts = parse_batch_prompts(text)
        except ValueError as e:
            self._report(str(e))
            self.batch_prompts = []
        return self.batch_prompts

    def set_reference_images(self, images: Sequence[str]) -> None:
        self.uploaded_images = [image for image in images if image]

    def stop(self) -> None:
        """Ask the running batch to stop starting new work."""
        self.session.request_stop()

    # --- generation ---

    async def generate(self) -> list[GeneratedImage]:
        """Batch-edit the selection, or start a new generation batch if nothing is selected."""
        if not self._require_api_key():
            return []

        config = self.preferences.config

        if self.session.selected_ids:
            targets = self.history.select(self.session.selected_ids)
            with self.session.batch():
                plan = self._plan(plan_batch_edit, config, targets, config.prompt)
                if plan is None:
                    return []
                self._log(f"Batch Edit: {len(plan)} images.")
                images = await self._run_plan(plan)
                self.session.clear_selection()
                self._log("Batch Edit Finished.", LogLevel.SUCCESS)
            return images

        prompts = self.batch_prompts or [config.prompt]
        with self.session.batch():
            plan = self._plan(plan_new_generation, config, prompts, self.uploaded_images)
            if plan is None:
                return []
            try:
                self._log(
                    f"Queueing {len(plan)} tasks "
                    f"({self.settings.generation_concurrency} threads)..."
                )
                images = await self._run_plan(plan)
            finally:
                self._log("Finished.")

        logger.info("studio.batch.finished", batch="generate", planned=len(plan), succeeded=len(images))
        return images

    async def edit_image(self, image_id: str, prompt: str) -> Optional[GeneratedImage]:
        """Edit one history entry with a new prompt."""
        if not self._require_api_key():
            return None

        target = self.history.get(image_id)
        if target is None:
            self._report(f"Image {image_id} not found.")
            return None

        with self.session.batch():
            plan = self._plan(plan_edit, self.preferences.config, target, prompt)
            if plan is None:
                return None
            [task] = build_tasks(plan, self.executor, self.history, self.failed_jobs)
            return await task()

    async def batch_upscale(self, target_resolution: Resolution) -> list[GeneratedImage]:
        count = len(self.session.selected_ids)
        resolution = Resolution(target_resolution)
        return await self._run_selection_batch(
            "Batch Upscale",
            f"Upscaling {count} images to {resolution.value}...",
            plan_batch_upscale,
            resolution,
        )

    async def batch_colorize(self) -> list[GeneratedImage]:
        count = len(self.session.selected_ids)
        return await self._run_selection_batch(
            "Batch Colorize", f"Colorizing {count} images...", plan_batch_colorize
        )

    async def batch_decolorize(self) -> list[GeneratedImage]:
        count = len(self.session.selected_ids)
        return await self._run_selection_batch(
            "Batch Decolorize", f"Decolorizing {count} images...", plan_batch_decolorize
        )

    # --- retry queue ---

    async def retry_job(self, job_id: str) -> Optional[GeneratedImage]:
        """Replay one failed job; on success it leaves the queue."""
        if not self._require_api_key():
            return None

        job = self.failed_jobs.get(job_id)
        if job is None:
            self._report(f"Failed job {job_id} not found.")
            return None

        with self.session.batch():
            self._log(f"Retrying job: {job.to_descriptor().prompt[:20]}...")
            [task] = build_tasks(plan_retry([job]), self.executor, self.history, self.failed_jobs)
            image = await task()

        if image is not None:
            self._log("Retry successful. Job removed from queue.", LogLevel.SUCCESS)
        else:
            self._log("Retry failed again.", LogLevel.ERROR)
        return image

    async def retry_all_failed(self) -> list[GeneratedImage]:
        """Replay the whole queue, then reload it from storage."""
        jobs = list(self.failed_jobs.jobs)
        if not jobs:
            return []
        if not self._require_api_key():
            return []

        with self.session.batch():
            self._log(f"Retrying all {len(jobs)} failed jobs...")
            try:
                images = await self._run_plan(plan_retry(jobs), sync_failed_cache=False)
            finally:
                await self.failed_jobs.refresh()

        logger.info("studio.batch.finished", batch="retry_all", planned=len(jobs), succeeded=len(images))
        return images

    async def dismiss_failed_job(self, job_id: str) -> None:
        await self.failed_jobs.remove(job_id)
        self._log("Failed job dismissed.")

    async def clear_failed_jobs(self) -> None:
        await self.failed_jobs.clear()
        self._log("Cleared all failed jobs.")

    # --- history ---

    async def delete_image(self, image_id: str) -> None:
        await self.history.delete(image_id)
        self.session.selected_ids = self.session.selected_ids - {image_id}

    async def delete_selected(self) -> int:
        if not self.session.selected_ids:
            return 0
        deleted = await self.history.delete_many(self.session.selected_ids)
        self.session.clear_selection()
        self._log(f"Deleted {deleted} images.")
        return deleted

    async def clear_history(self) -> None:
        await self.history.clear()
        self.session.clear_selection()
        self._log("History cleared.", LogLevel.WARNING)

    def export_zip(self, destination: Path) -> Optional[Path]:
        """Zip every history image; failures are reported in the log."""
        images = self.history.images
        if not images:
            return None

        self._log(f"Zipping {len(images)} images...")
        try:
            path = export.export_zip(images, destination)
        except (ValueError, OSError) as e:
            self._log(f"ZIP failed: {e}", LogLevel.ERROR)
            return None
        self._log(f"Exported {len(images)} images to {path}.", LogLevel.SUCCESS)
        return path
