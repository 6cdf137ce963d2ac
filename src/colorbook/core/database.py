"""Database engine, session factory and schema setup."""

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from colorbook import models  # noqa: F401  (registers table metadata)
from colorbook.repositories.document import DocumentRepository

logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 2
SCHEMA_VERSION_KEY = "schema_version"


def create_engine(db_url: str) -> AsyncEngine:
    """Create the async engine for the local history database.

    Args:
        db_url: SQLAlchemy URL (sqlite+aiosqlite:///path/to/colorbook.db)

    Returns:
        Async engine
    """
    return create_async_engine(
        db_url,
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Don't log SQL queries (use structlog instead)
    )


def setup_db_session(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        engine: Engine returned by create_engine()

    Returns:
        Async session factory for creating database sessions
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Entities are handed to callers after commit
    )


async def ensure_schema(engine: AsyncEngine) -> None:
    """Create the images, failed_jobs and documents tables if absent.

    Safe to run on every start: existing tables are left untouched. The
    schema version is recorded in the documents table.
    """
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = setup_db_session(engine)
    async with session_factory() as session:
        documents = DocumentRepository(session)
        stored = await documents.get(SCHEMA_VERSION_KEY)
        current = stored.get("version") if isinstance(stored, dict) else None
        if current != SCHEMA_VERSION:
            await documents.set(SCHEMA_VERSION_KEY, {"version": SCHEMA_VERSION})
            await session.commit()
            logger.info("schema.upgraded", from_version=current, to_version=SCHEMA_VERSION)
