"""pytest fixtures for colorbook tests.

Provides:
- engine: Function-scoped SQLite database (temporary file) with schema applied
- session: Function-scoped database session on that engine
- uow_factory: Function-scoped UnitOfWork factory
- store / history / failed_jobs: History store and its in-memory caches
- generator: Stub generation call recording every request
- sleep_recorder: Instant sleep recording every requested wait
- studio: Studio wired to all of the above
"""

import base64
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from colorbook.core.config import Settings
from colorbook.core.database import create_engine, ensure_schema, setup_db_session
from colorbook.models.job import (
    ColorMode,
    GenerationOutcome,
    GenerationRequest,
    JobDescriptor,
    PrintSize,
    Resolution,
)
from colorbook.services.history_store import FailedJobQueue, HistoryStore, ImageHistory
from colorbook.studio import Studio
from colorbook.uow import create_uow_factory
from colorbook.workers.session import GenerationSession

PNG_BYTES = b"\x89PNG\r\n\x1a\nstub-image"
PNG_DATA_URI = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


def make_descriptor(**overrides) -> JobDescriptor:
    """Build a descriptor with sensible defaults."""
    fields = dict(
        prompt="a cat in a teacup",
        print_size=PrintSize.SQUARE_8X8,
        seed=4242,
        style="cozy-default",
        color_mode=ColorMode.BW,
        resolution=Resolution.R1K,
    )
    fields.update(overrides)
    return JobDescriptor(**fields)


class StubGenerator:
    """Generation call double.

    Each call consumes the next scripted outcome: an exception is raised,
    None is returned as-is, anything else yields a PNG data URI. Once the
    script is exhausted every call succeeds.
    """

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.requests: list[GenerationRequest] = []

    def script(self, *outcomes) -> None:
        self.outcomes.extend(outcomes)

    async def __call__(self, request: GenerationRequest) -> Optional[GenerationOutcome]:
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return None
        return GenerationOutcome(content=PNG_DATA_URI, used_model="stub-model")


class SleepRecorder:
    """Instant replacement for pacing/backoff sleeps."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Provide a fresh SQLite database file per test with tables created."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'colorbook.db'}")
    await ensure_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = setup_db_session(engine)
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def uow_factory(engine):
    """Provide function-scoped UnitOfWork factory on the test database."""
    return create_uow_factory(setup_db_session(engine))


@pytest.fixture
def store(uow_factory) -> HistoryStore:
    return HistoryStore(uow_factory)


@pytest.fixture
def history(store) -> ImageHistory:
    return ImageHistory(store)


@pytest.fixture
def failed_jobs(store) -> FailedJobQueue:
    return FailedJobQueue(store)


@pytest.fixture
def generation_session() -> GenerationSession:
    return GenerationSession(api_key_present=True)


@pytest.fixture
def generator() -> StubGenerator:
    return StubGenerator()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        APP_ENV="test",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'colorbook.db'}",
        REPLICATE_API_TOKEN="r8_test_token",
    )


@pytest_asyncio.fixture(scope="function")
async def studio(settings, uow_factory, generator, sleep_recorder) -> Studio:
    """Provide a loaded Studio using the stub generator and instant sleeps."""
    studio = Studio(settings, uow_factory, generator, sleep=sleep_recorder)
    await studio.load()
    return studio
