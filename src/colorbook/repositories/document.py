"""StoredDocument repository.

Provides data access methods for the preference key-value store.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.ext.asyncio import AsyncSession

from colorbook.models.document import StoredDocument


class DocumentRepository:
    """Repository for StoredDocument key-value store.

    Provides UPSERT behavior (INSERT ... ON CONFLICT DO UPDATE) for setting documents.
    Values are stored as JSON and automatically serialized/deserialized.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get(self, key: str) -> Any | None:
        """Retrieve the document stored under a key.

        Args:
            key: Document key (e.g., "generation_config")

        Returns:
            Deserialized document if found, None otherwise
        """
        result = await self.session.execute(
            select(StoredDocument).where(StoredDocument.key == key)  # type: ignore[arg-type]
        )
        document = result.scalar_one_or_none()
        return document.value if document else None

    async def set(self, key: str, value: Any) -> None:
        """Store a document under a key (UPSERT).

        Args:
            key: Document key (alphanumeric + underscores only)
            value: Document body (must be JSON-serializable)
        """
        if not key.replace("_", "").isalnum():
            raise ValueError("Key must be alphanumeric with underscores only")

        now = datetime.now(timezone.utc)
        stmt = insert(StoredDocument).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"value": value, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()

    async def delete(self, key: str) -> bool:
        """Delete a document (idempotent).

        Returns:
            True if key was deleted, False if key did not exist
        """
        result = await self.session.execute(
            delete(StoredDocument).where(StoredDocument.key == key)  # type: ignore[arg-type]
        )
        await self.session.flush()
        return result.rowcount > 0  # type: ignore[attr-defined]
