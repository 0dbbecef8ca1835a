"""Pytest fixtures: file-backed SQLite database, sessions and an API client."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.app import app
from src.database.base import Base
from src.database.session import get_db
from src.models.customer import Customer
from src.modules.auth.dependencies import Operator, get_current_operator


@pytest_asyncio.fixture
async def async_test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(async_test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def serialized_session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Sessions whose transactions take the SQLite write lock up front.

    Concurrent writers queue on the lock instead of deadlocking on a lock upgrade.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'serialized.db'}", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def customer(async_session) -> Customer:
    record = Customer(
        id="player-1",
        school_context_id="school-1",
        first_name="Lionel",
        last_name="Pérez",
        email="familia@example.com",
        doc_tipo=96,
        doc_nro="30.123.456",
    )
    async_session.add(record)
    await async_session.commit()
    return record


@pytest_asyncio.fixture
async def async_client(async_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """httpx client against the app, sharing the test session and a fixed operator."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        try:
            yield async_session
            await async_session.commit()
        except Exception:
            await async_session.rollback()
            raise

    async def override_operator() -> Operator:
        return Operator(id="operator-1", email="ops@example.com", school_context_id="school-1")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_operator] = override_operator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
