"""Shared test fixtures for the taskmirror test suite."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from taskmirror.core.database import Base
# Import all models so their metadata is registered on Base
import taskmirror.models  # noqa: F401
from taskmirror.services.todoist import TodoistClient


@pytest_asyncio.fixture
async def async_session():
    """
    Provide an in-memory SQLite async session for tests.

    Creates all tables before the test, drops them after. Each test gets
    a clean database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def mock_client():
    """
    A TodoistClient stand-in whose remote calls are AsyncMocks.

    ``add_task`` hands out ids "task-1", "task-2", ... in call order.
    """
    client = MagicMock(spec=TodoistClient)
    counter = {"n": 0}

    async def add_task(args, command_uuid=None):
        counter["n"] += 1
        return f"task-{counter['n']}"

    client.add_task = AsyncMock(side_effect=add_task)
    client.complete_task = AsyncMock(return_value=None)
    client.close_task = AsyncMock(return_value=None)
    client.delete_task = AsyncMock(return_value=None)
    client.sync = AsyncMock()
    client.close = AsyncMock(return_value=None)
    return client
