"""Durable history: the store over both collections and the in-memory caches kept in sync with it."""

from typing import Callable, Iterable

import structlog

from colorbook.models.failed_job import FailedJob
from colorbook.models.image import GeneratedImage
from colorbook.models.job import JobDescriptor

logger = structlog.get_logger(__name__)


class HistoryStore:
    """Async key-value store over the images and failed_jobs collections.

    Every operation runs in its own unit of work, so concurrent tasks that
    write distinct ids never share a transaction.
    """

    def __init__(self, uow_factory: Callable):
        """Initialize the store.

        Args:
            uow_factory: Factory returned by create_uow_factory()
        """
        self.uow_factory = uow_factory

    # --- images ---

    async def put_image(self, image: GeneratedImage) -> None:
        async with await self.uow_factory() as uow:
            await uow.images.put(image)

    async def get_all_images(self) -> list[GeneratedImage]:
        """Return every history entry, newest first."""
        async with await self.uow_factory() as uow:
            return await uow.images.get_all()

    async def delete_image(self, image_id: str) -> None:
        async with await self.uow_factory() as uow:
            await uow.images.delete(image_id)

    async def clear_images(self) -> None:
        async with await self.uow_factory() as uow:
            await uow.images.clear()

    # --- failed jobs ---

    async def put_failed_job(self, job: FailedJob) -> None:
        async with await self.uow_factory() as uow:
            await uow.failed_jobs.put(job)

    async def get_all_failed_jobs(self) -> list[FailedJob]:
        """Return the retry queue, newest first."""
        async with await self.uow_factory() as uow:
            return await uow.failed_jobs.get_all()

    async def delete_failed_job(self, job_id: str) -> None:
        async with await self.uow_factory() as uow:
            await uow.failed_jobs.delete(job_id)

    async def clear_failed_jobs(self) -> None:
        async with await self.uow_factory() as uow:
            await uow.failed_jobs.clear()


class ImageHistory:
    """In-memory list of history entries (newest first) mirrored to the store."""

    def __init__(self, store: HistoryStore):
        self.store = store
        self.images: list[GeneratedImage] = []

    async def load(self) -> list[GeneratedImage]:
        self.images = await self.store.get_all_images()
        return self.images

    def get(self, image_id: str) -> GeneratedImage | None:
        return next((image for image in self.images if image.id == image_id), None)

    def select(self, image_ids: Iterable[str]) -> list[GeneratedImage]:
        """Return the entries whose ids are given, in history order."""
        wanted = set(image_ids)
        return [image for image in self.images if image.id in wanted]

    async def add(self, image: GeneratedImage) -> GeneratedImage:
        await self.store.put_image(image)
        self.images = [image, *self.images]
        return image

    async def delete(self, image_id: str) -> None:
        await self.store.delete_image(image_id)
        self.images = [image for image in self.images if image.id != image_id]

    async def delete_many(self, image_ids: Iterable[str]) -> int:
        doomed = set(image_ids)
        for image_id in doomed:
            await self.store.delete_image(image_id)
        before = len(self.images)
        self.images = [image for image in self.images if image.id not in doomed]
        return before - len(self.images)

    async def clear(self) -> None:
        await self.store.clear_images()
        self.images = []


class FailedJobQueue:
    """The retry queue: durable records plus an in-memory cache (newest first).

    Every mutation goes to the store first and is then applied to the cache
    as an append/filter over the previous list.
    """

    def __init__(self, store: HistoryStore):
        self.store = store
        self.jobs: list[FailedJob] = []

    async def refresh(self) -> list[FailedJob]:
        """Reload the cache from storage."""
        self.jobs = await self.store.get_all_failed_jobs()
        return self.jobs

    def get(self, job_id: str) -> FailedJob | None:
        return next((job for job in self.jobs if job.id == job_id), None)

    async def record(self, descriptor: JobDescriptor, error: str) -> FailedJob:
        """Persist a failed job for a descriptor and prepend it to the cache."""
        job = FailedJob.from_descriptor(descriptor, error)
        await self.store.put_failed_job(job)
        self.jobs = [job, *self.jobs]
        logger.info("failed_job.saved", failed_job_id=job.id, error_message=error)
        return job

    async def remove(self, job_id: str) -> None:
        """Drop a job from storage and cache (dismissed or retried successfully)."""
        await self.store.delete_failed_job(job_id)
        self.jobs = [job for job in self.jobs if job.id != job_id]

    async def clear(self) -> None:
        await self.store.clear_failed_jobs()
        self.jobs = []
