"""
Shared pytest configuration for backend tests.

Each test gets a fresh file-backed SQLite database (aiosqlite). A file rather
than ``:memory:`` lets concurrency tests open several independent sessions
against the same data and interleave their transactions.

Set TEST_DATABASE_URL to run against PostgreSQL instead; the database name
must then contain "test".
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENABLE_LOCK_SWEEPER", "false")

import uuid
from datetime import date, time, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from courtside.database.db import Base
from courtside.database.models import User, Court, MatchFormat
from courtside.services import match_service
from courtside.utils.datetime_utils import utcnow


def _resolve_test_database_url(tmp_path) -> str:
    """SQLite file under tmp_path unless TEST_DATABASE_URL points at a test database."""
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'courtside_test.db'}"

    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"SAFETY: Refusing to run tests against database '{db_name}'. "
            f"The database name must contain 'test'."
        )
    return url


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine with all tables."""
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (lock sweeper, run_in_transaction)
    # must see the same database as the fixtures
    from courtside.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine):
    """Session factory for tests that need several independent sessions."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    """A database session, rolled back after the test."""
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


# ---------------------------------------------------------------------------
# Data builders
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def make_user(db_session):
    """Factory creating users with unique emails and tokens."""

    async def _make_user(full_name="Player", is_admin=False, session=None):
        session = session or db_session
        suffix = uuid.uuid4().hex[:8]
        user = User(
            email=f"{full_name.lower().replace(' ', '.')}.{suffix}@example.com",
            full_name=full_name,
            is_admin=is_admin,
            api_token=f"token-{suffix}",
        )
        session.add(user)
        await session.flush()
        return user

    return _make_user


@pytest_asyncio.fixture
async def court(db_session):
    court = Court(name="Riverside Tennis Center", surface_type="hard")
    db_session.add(court)
    await db_session.flush()
    return court


@pytest_asyncio.fixture
async def creator(make_user):
    return await make_user("Match Creator")


@pytest.fixture
def match_day():
    """A date safely in the future."""
    return utcnow().date() + timedelta(days=7)


@pytest_asyncio.fixture
async def make_match(db_session, creator, court, match_day):
    """Factory creating a singles match (one 08:00-09:00 slot by default)."""

    async def _make_match(
        slots=((time(8, 0), time(9, 0)),),
        creator_user=None,
        match_date: date = None,
        match_format=MatchFormat.SINGLES,
        session=None,
    ):
        return await match_service.create_match(
            session or db_session,
            creator_user_id=(creator_user or creator).id,
            court_id=court.id,
            match_date=match_date or match_day,
            match_format=match_format,
            slots=list(slots),
        )

    return _make_match
