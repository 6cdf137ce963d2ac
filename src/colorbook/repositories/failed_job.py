"""FailedJob repository.

Provides data access methods for the retry queue.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from colorbook.models.failed_job import FailedJob


class FailedJobRepository:
    """Repository for FailedJob entities.

    Each write touches a single id, so concurrent tasks never conflict.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def put(self, job: FailedJob) -> FailedJob:
        """Insert or replace a failed job keyed by id."""
        merged = await self.session.merge(job)
        await self.session.flush()
        return merged

    async def get_by_id(self, job_id: str) -> FailedJob | None:
        """Retrieve a failed job by id."""
        result = await self.session.execute(
            select(FailedJob).where(FailedJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_all(self) -> list[FailedJob]:
        """Retrieve the whole retry queue, newest first."""
        result = await self.session.execute(
            select(FailedJob).order_by(FailedJob.timestamp.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete(self, job_id: str) -> bool:
        """Delete a failed job (idempotent).

        Returns:
            True if a row was deleted, False if the id did not exist
        """
        result = await self.session.execute(
            delete(FailedJob).where(FailedJob.id == job_id)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def clear(self) -> int:
        """Delete every failed job. Safe to call on an empty queue."""
        result = await self.session.execute(delete(FailedJob))
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
