"""Pytest configuration and fixtures."""

import asyncio
from typing import AsyncGenerator, Callable
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from visual_translator.config import Settings
from visual_translator.db.models import Asset
from visual_translator.db.session import create_engine, create_session_maker, get_db, init_db
from visual_translator.exceptions import DownloadError
from visual_translator.main import app
from visual_translator.services.notifications import get_notifier
from visual_translator.services.storage import get_storage

USER_ID = "11111111-1111-1111-1111-111111111111"
OTHER_USER_ID = "22222222-2222-2222-2222-222222222222"

ENGLISH_TEXT = b"Hello world\nThis is the first report\nThank you for the support\n"


class FakeStorage:
    """In-memory stand-in for the asset bucket."""

    def __init__(self, delay: float = 0.0):
        self.objects: dict[str, bytes] = {}
        self.delay = delay
        self.downloads: list[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def download(self, storage_path: str) -> bytes:
        self.downloads.append(storage_path)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if storage_path not in self.objects:
                raise DownloadError(f"Failed to download asset {storage_path}: NoSuchKey")
            return self.objects[storage_path]
        finally:
            self.in_flight -= 1

    def health_check(self) -> bool:
        return True


class FakeNotifier:
    """Records published jobs instead of talking to Redis."""

    def __init__(self):
        self.published: list[str] = []

    async def publish(self, job) -> bool:
        self.published.append(job.id)
        return True

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Worker settings pointing at a per-test SQLite database."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        translation_provider="noop",
        ocr_engine="mock",
        mock_ocr_delay_seconds=0,
        max_concurrent_jobs=3,
        poll_interval_seconds=0.05,
        job_listener_enabled=False,
        shutdown_grace_seconds=5,
    )


@pytest_asyncio.fixture
async def test_engine(settings: Settings):
    """Create test database engine with all tables."""
    engine = create_engine(settings.database_url)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_maker(test_engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def make_asset(session_maker, storage: FakeStorage) -> Callable:
    """Factory inserting an asset row and putting its content in storage."""

    async def _make_asset(
        content: bytes = ENGLISH_TEXT,
        file_type: str = "text/plain",
        filename: str = "report.txt",
        user_id: str = USER_ID,
    ) -> Asset:
        asset_id = str(uuid4())
        asset = Asset(
            id=asset_id,
            user_id=user_id,
            filename=filename,
            file_type=file_type,
            file_size=len(content),
            storage_path=f"{user_id}/{asset_id}/{filename}",
        )
        async with session_maker() as db:
            db.add(asset)
            await db.commit()
        storage.objects[asset.storage_path] = content
        return asset

    return _make_asset


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession, storage: FakeStorage, notifier: FakeNotifier
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def api_key(db_session: AsyncSession) -> tuple[str, str]:
    """Create a test API key for USER_ID."""
    from visual_translator.auth.security import create_api_key

    api_key_model, full_key = await create_api_key(
        db_session,
        name="Test Key",
        user_id=USER_ID,
    )
    await db_session.commit()

    return api_key_model.id, full_key


@pytest_asyncio.fixture
async def auth_headers(api_key: tuple[str, str]) -> dict:
    """Get auth headers with test API key."""
    _, full_key = api_key
    return {"Authorization": f"Bearer {full_key}"}
