"""Database engine, session factories and declarative base."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import JSON, BigInteger, Integer
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cycle_engine.config import settings


class Base(DeclarativeBase):
    """Base class for all ORM models."""


def _engine_kwargs(pool_size: int) -> dict:
    if settings.async_database_url.startswith("sqlite"):
        return {}
    return {"pool_size": pool_size, "max_overflow": 0, "pool_pre_ping": True}


engine = create_async_engine(
    settings.async_database_url,
    echo=settings.debug,
    **_engine_kwargs(settings.db_pool_size),
)

# Reporting queries get their own small pool so they never queue behind jobs
report_engine = create_async_engine(
    settings.async_database_url,
    **_engine_kwargs(settings.report_pool_size),
)

async_session_maker = async_sessionmaker(engine, expire_on_commit=False)
report_session_maker = async_sessionmaker(report_engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a reporting session."""
    async with report_session_maker() as session:
        yield session


@asynccontextmanager
async def job_session_maker() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Session factory bound to the running event loop, disposed on exit.

    Scheduler jobs each run on their own event loop and asyncpg connections
    cannot be shared between loops.
    """
    job_engine = create_async_engine(
        settings.async_database_url,
        **_engine_kwargs(settings.db_pool_size),
    )
    try:
        yield async_sessionmaker(job_engine, expire_on_commit=False)
    finally:
        await job_engine.dispose()


async def init_db() -> None:
    """Create tables that do not exist yet (migrations own the real schema)."""
    import cycle_engine.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def insert_for(session: AsyncSession):
    """Return the dialect-specific ``insert`` supporting ON CONFLICT."""
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


# Column types that behave on both PostgreSQL and the SQLite test database
JSONType = JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), "postgresql")
BigIntId = BigInteger().with_variant(Integer(), "sqlite")
