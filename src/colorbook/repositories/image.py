"""GeneratedImage repository.

Provides data access methods for history entries.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from colorbook.models.image import GeneratedImage


class GeneratedImageRepository:
    """Repository for GeneratedImage entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def put(self, image: GeneratedImage) -> GeneratedImage:
        """Insert or replace a history entry keyed by id.

        Args:
            image: GeneratedImage entity to persist

        Returns:
            The persistent instance attached to this session
        """
        merged = await self.session.merge(image)
        await self.session.flush()
        return merged

    async def get_by_id(self, image_id: str) -> GeneratedImage | None:
        """Retrieve a history entry by id."""
        result = await self.session.execute(
            select(GeneratedImage).where(GeneratedImage.id == image_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_all(self) -> list[GeneratedImage]:
        """Retrieve every history entry, newest first.

        Returns:
            List of images ordered by timestamp (newest first)
        """
        result = await self.session.execute(
            select(GeneratedImage).order_by(GeneratedImage.timestamp.desc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete(self, image_id: str) -> bool:
        """Delete a history entry (idempotent).

        Returns:
            True if a row was deleted, False if the id did not exist
        """
        result = await self.session.execute(
            delete(GeneratedImage).where(GeneratedImage.id == image_id)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]

    async def clear(self) -> int:
        """Delete every history entry.

        Returns:
            Number of deleted rows
        """
        result = await self.session.execute(delete(GeneratedImage))
        await self.session.flush()
        return result.rowcount  # type: ignore[attr-defined]
