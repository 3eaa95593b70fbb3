"""Async SQLAlchemy engine and sessions for the account store."""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from account_lifecycle.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def to_async_url(url: str) -> str:
    """
    Point a plain sqlite:// URL at the aiosqlite driver.

    Only the scheme is replaced, so sqlite:/// (relative) and sqlite:////
    (absolute) paths keep their slashes. Other URLs are returned unchanged.
    """
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


database_url = to_async_url(settings.DATABASE_URL)
is_sqlite = database_url.startswith("sqlite")

engine = create_async_engine(
    database_url,
    echo=False,
    # The sweep and API requests write concurrently; wait for the lock instead of failing
    connect_args={"check_same_thread": False, "timeout": 30} if is_sqlite else {},
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI routes to get a database session."""
    async with async_session() as session:
        yield session


async def init_db():
    """
    Create the accounts and deletion_history tables if missing.

    On SQLite, switches to WAL so dashboard reads do not block on sweep writes.
    """
    async with engine.begin() as conn:
        if is_sqlite:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
        await conn.run_sync(Base.metadata.create_all)

    logger.info(f"Database initialized ({engine.url.render_as_string(hide_password=True)})")
