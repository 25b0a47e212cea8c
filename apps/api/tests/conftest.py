from typing import Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from database import Base, get_db
from main import app
from models.user import User
from routers import rate_limit
from services.connectors import transport
from services.session_token import create_session_token


TEST_USER_ID = "creator-1"
TEST_USER_EMAIL = "creator@example.com"
TEST_AUTH_HEADER = {
    "Authorization": f"Bearer {create_session_token(TEST_USER_ID, TEST_USER_EMAIL, 'Casey Creator')['token']}"
}


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest.fixture
def provider_credentials(monkeypatch):
    """Configure app credentials for every provider."""
    monkeypatch.setattr(settings, "YOUTUBE_CLIENT_ID", "yt-client-id")
    monkeypatch.setattr(settings, "YOUTUBE_CLIENT_SECRET", "yt-client-secret")
    monkeypatch.setattr(settings, "INSTAGRAM_APP_ID", "ig-app-id")
    monkeypatch.setattr(settings, "INSTAGRAM_APP_SECRET", "ig-app-secret")
    monkeypatch.setattr(settings, "TIKTOK_CLIENT_KEY", "tiktokclientkey123")
    monkeypatch.setattr(settings, "TIKTOK_CLIENT_SECRET", "t" * 40)


@pytest.fixture
def mock_provider(monkeypatch):
    """
    Route outbound provider HTTP through a handler.

    Returns a function that installs ``handler(request) -> httpx.Response`` and
    the list of requests seen.
    """
    seen = []

    def install(handler: Callable[[httpx.Request], httpx.Response]):
        def recording_handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        monkeypatch.setattr(
            transport,
            "build_client",
            lambda: httpx.AsyncClient(transport=httpx.MockTransport(recording_handler)),
        )
        return seen

    return install


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "sponsoru_test.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with maker() as session:
        session.add(User(id=TEST_USER_ID, email=TEST_USER_EMAIL, name="Casey Creator"))
        await session.commit()

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def api_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def auth_headers():
    return dict(TEST_AUTH_HEADER)
