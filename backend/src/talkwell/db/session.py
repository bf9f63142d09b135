from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from talkwell.core.config import settings
from talkwell.db import models


def build_engine(url: str) -> AsyncEngine:
    """Async engine for ``url``.

    SQLite connections are shared across tasks, and an in-memory database is
    pinned to a single connection so every session sees the same tables.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
        return create_async_engine(url, echo=False, future=True, **kwargs)
    return create_async_engine(url, echo=False, future=True, pool_pre_ping=True)


def build_sessionmaker(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async_engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = build_sessionmaker(async_engine)

async def get_async_session():
    async with AsyncSessionLocal() as session:
        yield session

async def init_db(engine: AsyncEngine = async_engine):
    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

async def close_db():
    await async_engine.dispose()
