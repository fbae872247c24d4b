"""Integration test fixtures with a real (SQLite) database.

Each test gets its own database file so batches that open several sessions
see each other's commits.
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from paye_engine.api.app import create_app
from paye_engine.api.dependencies import get_session_factory
from paye_engine.database import create_all, create_session_factory, get_engine
from paye_engine.services.config_service import TaxYearConfigRepository


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'paye_test.db'}")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def published_sars(session_factory, sars_2025):
    """SARS 2025/2026 tables published and committed."""
    async with session_factory() as session:
        await TaxYearConfigRepository(session).publish(sars_2025)
        await session.commit()
    return sars_2025


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test database."""
    app = create_app()
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
