"""Database connection and session management."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from deadly_sync.config import get_settings

# Base class for models
Base = declarative_base()


def create_engine(database_url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine for the given URL (settings.database_url by default).

    SQLite connections get ``PRAGMA foreign_keys=ON`` so that deleting a show
    cascades to its recordings, library entry and recent-play row.
    """
    settings = get_settings()
    url = database_url or settings.database_url
    engine = create_async_engine(
        url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,
    )

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine):
    """Initialize database tables."""
    # Models must be imported so their tables are registered on Base.metadata
    from deadly_sync.db import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all, checkfirst=True)
