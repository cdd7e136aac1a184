"""SQLite store for the Todoist mirror, routines and sync bookkeeping.

One async engine serves the API and the scheduled jobs. Services receive an
``AsyncSession`` and decide when to commit; the request-scoped session from
``get_db`` commits whatever is left pending when the request ends.
"""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator

from taskmirror.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    f"sqlite+aiosqlite:///{settings.db_path}",
    echo=settings.debug,
)

# Rows stay readable after commit; the sync and routine passes commit mid-run
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for the API routers."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the mirror, routine and sync tables if they are missing."""
    # Register every model on Base before create_all
    import taskmirror.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
