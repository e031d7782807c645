"""Shared test fixtures for JobGraph tests."""

import os
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from jobgraph.core import database
from jobgraph.core.database import Base, create_tables, init_engine
from jobgraph.daemon.main import create_app
from jobgraph.graph.snapshot import reset_graph_state
from jobgraph.models import JobExecution, ScheduledJob


@pytest.fixture(autouse=True)
def graph_state():
    """Fresh snapshot cache and write lock for every test."""
    return reset_graph_state()


@pytest_asyncio.fixture(scope="function")
async def engine():
    """In-memory SQLite with every table created."""
    os.environ["JOBGRAPH_DATABASE_URL"] = "sqlite+aiosqlite://"

    init_engine("sqlite+aiosqlite://")
    await create_tables()

    yield database.engine

    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await database.engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def app(engine):
    """Create a fresh app backed by the in-memory database."""
    yield create_app()


@pytest_asyncio.fixture(scope="function")
async def client(app):
    """Async HTTP client pointed at the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def db_session(engine) -> AsyncSession:
    """Get a database session for direct DB operations in tests."""
    async with database.async_session_factory() as session:
        yield session


# ─── Seeding helpers ───


async def seed_jobs(session: AsyncSession, jobs: dict, durations: dict | None = None) -> None:
    """Insert ScheduledJob rows from ``{id: name}``."""
    durations = durations or {}
    for job_id, name in jobs.items():
        session.add(ScheduledJob(
            id=job_id,
            name=name,
            estimated_duration_minutes=durations.get(job_id),
        ))
    await session.commit()


async def add_run(
    session: AsyncSession,
    job_id: int,
    status: str,
    completed_at: datetime | None = None,
) -> JobExecution:
    """Record a finished run of ``job_id``."""
    completed_at = completed_at or datetime.now(timezone.utc)
    run = JobExecution(
        job_id=job_id,
        execution_status=status,
        triggered_by="test",
        started_at=completed_at,
        completed_at=completed_at,
        duration_seconds=0,
    )
    session.add(run)
    await session.commit()
    return run
