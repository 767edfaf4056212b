"""Process-wide async engine and per-request sessions.

The engine (and its connection pool) is built once, either at application
startup or lazily on first use, and disposed at shutdown.
"""

import logging
from collections.abc import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def _engine_kwargs(url: str) -> dict:
    kwargs: dict = {"echo": settings.database_echo, "pool_pre_ping": True}
    if make_url(url).get_backend_name() != "sqlite":
        kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
        )
    return kwargs


def init_engine(url: str | None = None) -> AsyncEngine:
    global _engine, _session_maker
    if _engine is None:
        db_url = url or settings.database_url
        _engine = create_async_engine(db_url, **_engine_kwargs(db_url))
        _session_maker = async_sessionmaker(_engine, expire_on_commit=False)
        logger.info("Database engine created", extra={"backend": make_url(db_url).get_backend_name()})
    return _engine


def async_session_maker() -> AsyncSession:
    if _session_maker is None:
        init_engine()
    assert _session_maker is not None
    return _session_maker()


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_maker = None


async def get_db() -> AsyncIterator[AsyncSession]:
    async with async_session_maker() as session:
        yield session
