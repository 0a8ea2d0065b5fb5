"""
Pilbum Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment overrides are applied before anything imports pilbum, so
       the settings singleton, the engine and the retry decorators all see
       test values: a throwaway SQLite file, a temp upload directory, no
       retry waits and no rate limiting (rate-limit tests opt back in).

Fixture Hierarchy:
    Function-scoped:
    ├── mock_db_session:  AsyncMock standing in for AsyncSession
    ├── temp_storage:     empty directory for storage adapter tests
    ├── jpeg_factory:     builds real JPEG bytes (size, colour, EXIF block)
    ├── sample_jpeg:      real JPEG bytes produced with Pillow
    ├── database:         fresh schema + seeded admin in the test SQLite file
    ├── test_client:      HTTPX AsyncClient over ASGITransport
    └── admin_client:     test_client already logged in as admin (password changed)
"""

import os
import tempfile
from io import BytesIO
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (before any pilbum import)
# ══════════════════════════════════════════════════════════════════════════

_TEST_ROOT = tempfile.mkdtemp(prefix="pilbum_test_")

os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/test.db"
os.environ["STORAGE_PROVIDER"] = "local"
os.environ["LOCAL_STORAGE_PATH"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["SESSION_SECRET"] = "test-session-secret-not-for-production"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "0"
os.environ["GITHUB_REPO"] = "pilbum/pilbum"

ADMIN_PASSWORD = "admin"
ADMIN_NEW_PASSWORD = "correct-horse-battery"


# ══════════════════════════════════════════════════════════════════════════
# Unit-test Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession.

    Usage:
        mock_db_session.get.return_value = photo
        await photo_service.get_photo(mock_db_session, str(photo.id))
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock(return_value=None)
    session.scalar = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


def make_jpeg(width: int = 64, height: int = 48, color=(200, 120, 40), exif: bytes = b"") -> bytes:
    buffer = BytesIO()
    image = Image.new("RGB", (width, height), color)
    if exif:
        image.save(buffer, format="JPEG", quality=90, exif=exif)
    else:
        image.save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


@pytest.fixture
def jpeg_factory():
    return make_jpeg


@pytest.fixture
def sample_jpeg():
    """A small but real JPEG photograph stand-in."""
    return make_jpeg()


# ══════════════════════════════════════════════════════════════════════════
# API Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """
    Empty schema with the seeded admin account.

    The engine is disposed afterwards so no pooled aiosqlite connection
    outlives the test's event loop.
    """
    from pilbum.database import Base, engine, init_schema

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_schema()
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def test_client(database):
    from pilbum.main import app
    from pilbum.services.storage import reset_storage

    reset_storage()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    reset_storage()


@pytest_asyncio.fixture
async def admin_client(test_client):
    """Logged in as admin, with the forced first-login password change done."""
    response = await test_client.post(
        "/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD}
    )
    assert response.status_code == 200, response.text
    response = await test_client.post(
        "/api/auth/change-password", json={"newPassword": ADMIN_NEW_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return test_client
