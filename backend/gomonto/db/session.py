"""Async engine and session helpers."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from gomonto.core.config import get_settings

_engines: dict[str, AsyncEngine] = {}
_sessionmakers: dict[str, async_sessionmaker[AsyncSession]] = {}


def _database_url(override: str | None = None) -> str:
    return override or get_settings().database_url


def _create_engine(url: str) -> AsyncEngine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_async_engine(url, echo=False)
    return create_async_engine(url, echo=False, pool_pre_ping=True)


def get_sessionmaker(
    database_url: str | None = None,
) -> async_sessionmaker[AsyncSession]:
    """Return the cached sessionmaker bound to ``database_url``."""
    url = _database_url(database_url)
    factory = _sessionmakers.get(url)
    if factory is None:
        engine = _create_engine(url)
        factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        _engines[url] = engine
        _sessionmakers[url] = factory
    return factory


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""
    async with get_sessionmaker()() as session:
        yield session


@asynccontextmanager
async def session_scope(database_url: str | None = None) -> AsyncIterator[AsyncSession]:
    """Session for scripts and jobs running outside a request."""
    async with get_sessionmaker(database_url)() as session:
        yield session


async def dispose_engine(database_url: str | None = None) -> None:
    url = _database_url(database_url)
    engine = _engines.pop(url, None)
    _sessionmakers.pop(url, None)
    if engine is not None:
        await engine.dispose()
