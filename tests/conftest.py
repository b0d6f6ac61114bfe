"""
Shared fixtures: an in-memory SQLite database per test and a session builder.

The environment is set before any sleep_service import so the module-level
engine and loggers pick up test settings instead of PostgreSQL.
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "sleep_service_test_logs"))

from datetime import date, datetime, time, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sleep_service.database.base import Base
from sleep_service.models import SleepSession  # noqa: F401  registers every table


def utc_today() -> date:
    return datetime.utcnow().date()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_session():
    """Build a transient SleepSession for a given night."""

    def _make(
        user_id: str = "user_1",
        days_ago: int = 0,
        bedtime: Optional[time] = time(23, 0),
        duration: Optional[int] = 450,
        quality: Optional[int] = 7,
        **fields,
    ) -> SleepSession:
        session_date = utc_today() - timedelta(days=days_ago)
        bed_at = None
        wake_at = None
        if bedtime is not None:
            # Bedtimes before noon belong to the early hours of session_date
            bed_day = session_date if bedtime.hour < 12 else session_date - timedelta(days=1)
            bed_at = datetime.combine(bed_day, bedtime)
            if duration:
                wake_at = bed_at + timedelta(minutes=duration + 15)

        values = dict(
            user_id=user_id,
            session_date=session_date,
            bedtime=bed_at,
            wake_time=wake_at,
            total_sleep_duration=duration,
            quality_score=quality,
            data_source="manual",
            confidence_score=1.0,
        )
        values.update(fields)
        return SleepSession(**values)

    return _make


@pytest_asyncio.fixture
async def store_sessions(session_factory):
    """Persist sessions and return them."""

    async def _store(*sessions):
        async with session_factory() as db:
            db.add_all(sessions)
            await db.commit()
        return list(sessions)

    return _store
