"""Async database engine and session management."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

engine = None
async_session_factory = None


class Base(DeclarativeBase):
    pass


def init_engine(database_url: str):
    global engine, async_session_factory
    connect_args = {}
    kwargs = {}
    if "sqlite" in database_url:
        connect_args["check_same_thread"] = False
        if database_url.rstrip("/").endswith("sqlite+aiosqlite:") or ":memory:" in database_url:
            # In-memory databases live and die with their single connection
            kwargs["poolclass"] = StaticPool
    engine = create_async_engine(database_url, echo=False, connect_args=connect_args, **kwargs)
    async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:
    async with async_session_factory() as session:
        yield session


async def create_tables():
    # Register every mapped table on Base.metadata
    import jobgraph.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
