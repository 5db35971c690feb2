"""
Shared test configuration.

Settings are read from the environment at import time, so the test
environment is fixed here before any application module is imported.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["SECRET_KEY"] = "test-secret-key-that-is-long-enough-for-hs256"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./platform_identity_test.db"
os.environ["BOOTSTRAP_ADMIN_EMAILS"] = '["root@platform.test"]'
os.environ["RATE_LIMIT_FAIL_OPEN"] = "true"

from typing import AsyncIterator  # noqa: E402

import fakeredis  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import structlog  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import app.main  # noqa: E402,F401  configures logging
from app.infrastructure.database.base import Base  # noqa: E402
from app.services.security.audit import AuditLogger  # noqa: E402
from app.services.security.rate_limiter import RateLimiter  # noqa: E402

pytest_plugins = ["tests.fixtures.auth"]

# structlog.testing.capture_logs only sees loggers that are not cached
structlog.configure(cache_logger_on_first_use=False)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    from tests.fixtures import models  # noqa: F401  registers the reviewable test table

    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'identity.db'}",
        poolclass=NullPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def audit(session_factory) -> AsyncIterator[AuditLogger]:
    """Audit logger writing to the test database."""
    audit_logger = AuditLogger(session_factory=session_factory)
    yield audit_logger
    await audit_logger.drain()


@pytest_asyncio.fixture
async def fake_redis():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def rate_limiter(fake_redis) -> RateLimiter:
    return RateLimiter(client=fake_redis)
