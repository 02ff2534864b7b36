"""
Core pytest configuration for the entire test suite.

This module provides only the database setup and the core utilities needed across ALL
types of tests (repositories, services, API, logging).

Domain-specific fixtures live in:
- tests/test_fixtures/repository_fixtures.py
- tests/test_fixtures/service_fixtures.py
- tests/test_fixtures/api_fixtures.py
"""

from __future__ import annotations

import os
import logging
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

# -------------------------------
# Early logging tuning
# -------------------------------
# Silence noisy third-party loggers before they get imported (keeps collection output clean).
NOISY_LOGGERS = (
    "faker",
    "faker.factory",
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "aiosqlite",
    "asyncio",
    "httpx",
)
for _name in NOISY_LOGGERS:
    logging.getLogger(_name).setLevel(logging.WARNING)

import pytest
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from marketplace.config.settings import Settings
from marketplace.core.logging.builder import setup_logging, stop_queue_logging
from marketplace.database.base import Base
from marketplace.database.session import build_engine, build_session_factory, create_tables

logger = logging.getLogger(__name__)


def make_test_settings(**overrides) -> Settings:
    """
    Settings isolated from the developer's .env file.
    """
    values = {
        "ENV": "testing",
        "TESTING": True,
        "LOG_FORMAT": "text",
        "LOG_LEVEL": "INFO",
        "LOG_TO_STDOUT": True,
        "LOG_USE_QUEUE": False,
        "SQLITE_BUSY_TIMEOUT": 30.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# -------------------------------
# Logging: install application logging once
# -------------------------------
@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    """
    Install the application's dictConfig logging for the whole session, so the same
    formatters and filters used in the app are active in tests.
    """
    setup_logging(make_test_settings())
    yield
    stop_queue_logging()


# ------------------------------------------------------------------------------------------------
# Test database URL
# ------------------------------------------------------------------------------------------------

def get_test_database_url(tmp_path) -> str:
    """
    Determine the test database URL.

    1. `TEST_DATABASE_URL` environment variable (CI against Postgres)
    2. otherwise a fresh SQLite file per test, so tests never share state
    """
    if test_url := os.getenv("TEST_DATABASE_URL"):
        return test_url
    return f"sqlite+aiosqlite:///{tmp_path / 'messaging.db'}"


def safe_log_db_url(db_url: str) -> str:
    """The URL without credentials, for log lines."""
    return make_url(db_url).render_as_string(hide_password=True)


# ------------------------------------------------------------------------------------------------
# Clock
# ------------------------------------------------------------------------------------------------

class TickingClock:
    """
    Deterministic clock: every call returns a time strictly later than the previous one.
    """

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(milliseconds=1)):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        return self.now


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


# ------------------------------------------------------------------------------------------------
# DATABASE FIXTURES
# ------------------------------------------------------------------------------------------------

@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return make_test_settings(DATABASE_URL_OVERRIDE=get_test_database_url(tmp_path))


@pytest.fixture
async def async_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    url = test_settings.DATABASE_URL
    logger.debug("Using test DB: %s", safe_log_db_url(url))

    engine = build_engine(url, sqlite_busy_timeout=test_settings.SQLITE_BUSY_TIMEOUT)
    await create_tables(engine)

    yield engine

    if engine.dialect.name != "sqlite":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(async_engine)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    One session/transaction for repository tests; rolled back at the end.

    Repositories only flush, so everything a test writes stays in this transaction.
    Do not combine with `service` in the same test: the open transaction holds the
    SQLite write lock.
    """
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


# Domain fixtures
from .test_fixtures.repository_fixtures import (  # noqa: E402
    base_repo,
    user_repository,
    product_repository,
    conversation_repository,
    message_repository,
    sample_user_data,
    create_user,
    created_user,
    multiple_users,
    create_product,
    seller,
    buyer,
    product,
)
from .test_fixtures.service_fixtures import (  # noqa: E402
    service,
    make_user,
    make_product,
    alice,
    bob,
    carol,
    listing,
    conversation,
)
from .test_fixtures.api_fixtures import (  # noqa: E402
    app,
    client,
    auth_headers,
)
