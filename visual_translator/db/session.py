"""Database engine, session factory and FastAPI session dependency."""

from functools import lru_cache
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from visual_translator.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine; pool options only apply to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=10,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache
def get_engine() -> AsyncEngine:
    """The API process engine, created on first use. The worker builds its own."""
    return create_engine(get_settings().database_url)


@lru_cache
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return create_session_maker(get_engine())


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a session that is closed after the request."""
    async with get_session_maker()() as session:
        yield session


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create tables that do not exist yet (development convenience)."""
    from visual_translator.db import models  # noqa: F401

    async with (bind or get_engine()).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
