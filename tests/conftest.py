"""Pytest configuration and fixtures for vidstore tests.

Appwrite and Stripe are never contacted: services get an AsyncMock client,
and HTTP-level tests use httpx.MockTransport.
"""

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app modules
os.environ["VIDSTORE_ENCRYPTION_KEY"] = "0" * 64  # Valid 32-byte key for tests
os.environ["LOCAL_STATE_PATH"] = os.path.join(tempfile.mkdtemp(prefix="vidstore-"), "state.json")
os.environ["APPWRITE_PROJECT_ID"] = "test-project"
os.environ["APPWRITE_API_KEY"] = "test-api-key"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_env"

from vidstore.core import MemoryStorage  # noqa: E402
from vidstore.services.appwrite import AppwriteClient  # noqa: E402
from vidstore.services.crypto import FieldCodec  # noqa: E402
from vidstore.services.session import SessionStore  # noqa: E402
from vidstore.services.session_cache import SessionCache  # noqa: E402

TEST_KEY = bytes.fromhex("ab" * 32)
OTHER_KEY = bytes.fromhex("cd" * 32)


class FakeClock:
    """Monotonic clock for SessionCache tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNow:
    """Wall clock for SessionStore tests."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def codec() -> FieldCodec:
    return FieldCodec(TEST_KEY)


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def wall_clock() -> FakeNow:
    return FakeNow(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def appwrite_client() -> AsyncMock:
    """AsyncMock standing in for AppwriteClient; every API method is awaitable."""
    client = AsyncMock(spec=AppwriteClient)
    client.project_id = "test-project"
    client.list_documents.return_value = {"total": 0, "documents": []}
    return client


@pytest.fixture
def session_cache(clock: FakeClock) -> SessionCache:
    return SessionCache(ttl_seconds=30.0, log_interval_seconds=5.0, clock=clock)


@pytest.fixture
def session_store(appwrite_client, session_cache, storage, wall_clock) -> SessionStore:
    return SessionStore(
        appwrite_client,
        cache=session_cache,
        token_storage=storage,
        database_id="video_site_db",
        collection_id="sessions",
        now=wall_clock,
    )


@pytest_asyncio.fixture(scope="function")
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Async test client; tests install their own dependency overrides."""
    from vidstore.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def app():
    from vidstore.main import app

    return app
