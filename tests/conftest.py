"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks all external services.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("STALE_CALL_SWEEPER_ENABLED", "false")
os.environ.setdefault("RETELL_API_KEY", "")
os.environ.setdefault("CINC_WEBHOOK_SECRET", "")

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

import relay.models  # noqa: F401  (registers every table on Base.metadata)
from relay.database import Base, get_db
from relay.models.feature_flag import SystemConfig


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


class FakeRedis:
    """Dict-backed stand-in for the few redis.asyncio calls the app makes."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for k in keys if self.store.pop(k, None) is not None)

    async def ping(self):
        return True


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture(autouse=True)
def mock_redis():
    """In-memory Redis for every test - prevents real Redis calls."""
    fake = FakeRedis()
    with patch("relay.services.feature_flags.get_redis", new=AsyncMock(return_value=fake)), \
            patch("relay.utils.cache.get_redis", new=AsyncMock(return_value=fake)):
        yield fake


@pytest.fixture
async def client(db):
    """HTTP client against the app, sharing the test database session."""
    import httpx
    from relay.main import app

    async def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test",
    ) as http_client:
        yield http_client
    app.dependency_overrides.clear()


@pytest.fixture
def settings():
    """The cached Settings instance. Use monkeypatch.setattr to change fields."""
    from relay.config import get_settings
    return get_settings()


async def set_flags(db, **flags):
    """Insert system_config rows, e.g. await set_flags(db, retell_processing=True)."""
    for feature, enabled in flags.items():
        db.add(SystemConfig(feature=feature, enabled=enabled))
    await db.commit()


def retell_event(event: str, call_id: str = "call_abc123", **call_fields) -> dict:
    """Build a Retell webhook in the current {event, call} shape."""
    call = {
        "call_id": call_id,
        "agent_id": "agent_001",
        "from_number": "+15125559876",
        "to_number": "+15125550100",
        "direction": "inbound",
    }
    call.update(call_fields)
    return {"event": event, "call": call}
