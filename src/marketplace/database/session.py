import logging

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from marketplace.config.settings import Settings
from marketplace.database.base import Base
import marketplace.models  # noqa: F401  (registers the tables on Base.metadata)

logger = logging.getLogger(__name__)


def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    pysqlite's own transaction handling defers BEGIN and breaks SAVEPOINTs, so it is
    switched off and BEGIN IMMEDIATE is emitted explicitly. Concurrent writers then queue
    on the busy timeout instead of failing with "database is locked" on lock upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, *, echo: bool = False, sqlite_busy_timeout: float = 30.0) -> AsyncEngine:
    """
    Create the AsyncEngine for `url`.

    Postgres (psycopg) gets connection health checks; SQLite (aiosqlite) gets a busy
    timeout and immediate transactions.
    """
    is_sqlite = make_url(url).get_backend_name() == "sqlite"

    kwargs: dict = {"echo": echo}
    if is_sqlite:
        kwargs["connect_args"] = {"timeout": sqlite_busy_timeout}
    else:
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **kwargs)
    if is_sqlite:
        _enable_sqlite_immediate_transactions(engine)

    logger.debug("database.engine_created", extra={"backend": engine.dialect.name})
    return engine


def engine_from_settings(settings: Settings) -> AsyncEngine:
    return build_engine(
        settings.DATABASE_URL,
        echo=settings.SQLALCHEMY_ECHO,
        sqlite_busy_timeout=settings.SQLITE_BUSY_TIMEOUT,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False keeps loaded rows readable after the unit of work commits
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create any missing tables for the registered models."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
