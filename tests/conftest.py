from collections.abc import AsyncGenerator, Generator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from storyjobs.config.settings import Settings, get_settings
from storyjobs.infra.database import Database, get_database
from storyjobs.main import create_app
from storyjobs.v1.core.registries import generator_registry, job_kind_registry
from storyjobs.v1.jobs import registry_init  # noqa: F401
from storyjobs.v1.jobs.lifecycle import JobLifecycleManager
from storyjobs.v1.jobs.routes import get_clock
from storyjobs.v1.jobs.store import JobStore

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

IMAGE_PARAMS = {
    "image_prompt": "A fox reading a book under a tree",
    "character_description": "A small red fox with round glasses",
    "emotion": "curious",
}

STORY_PARAMS = {
    "title": "The Lost Lantern",
    "story": "Mira found a lantern that glowed only when someone nearby told the truth.",
    "character_image": "https://cdn.example.com/characters/mira.png",
    "audience": "children",
}


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> datetime:
        self.current += timedelta(**delta)
        return self.current


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite job store."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        public_base_url="http://jobs.test",
        stale_processing_timeout_s=120,
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Create a fresh database with all tables for each test."""
    database = Database(settings)
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.SessionLocal() as session:
        yield session


@pytest.fixture
def store(db_session: AsyncSession) -> JobStore:
    return JobStore(db_session)


@pytest.fixture
def lifecycle(store: JobStore, settings: Settings, clock: ManualClock) -> JobLifecycleManager:
    return JobLifecycleManager(store, settings, clock)


@pytest.fixture
def image_params() -> dict[str, Any]:
    return dict(IMAGE_PARAMS)


@pytest.fixture
def story_params() -> dict[str, Any]:
    return dict(STORY_PARAMS)


@pytest.fixture
def register_generator():
    """Register generators for the duration of a test."""
    registered: list[str] = []

    def register(kind: str, generator) -> None:
        generator_registry.register(kind, generator)
        registered.append(kind)

    yield register

    for kind in registered:
        generator_registry.unregister(kind)


@pytest.fixture
def register_kind():
    """Register extra job kind profiles for the duration of a test."""
    registered: list[str] = []

    def register(profile) -> None:
        job_kind_registry.register(profile.kind, profile)
        registered.append(profile.kind)

    yield register

    for kind in registered:
        job_kind_registry.unregister(kind)


def _override(app, database: Database, settings: Settings, clock: ManualClock):
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock


@pytest.fixture
def app(database: Database, settings: Settings, clock: ManualClock):
    """Create a test FastAPI application bound to the test database."""
    app = create_app()
    _override(app, database, settings, clock)

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def simple_client(settings: Settings, clock: ManualClock) -> Generator[TestClient, None, None]:
    """Test client for requests rejected before they reach the job store."""
    app = create_app()
    _override(app, Database(settings), settings, clock)

    yield TestClient(app)

    app.dependency_overrides.clear()
