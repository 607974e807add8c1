"""Async engine and session factory construction."""

from __future__ import annotations

import logging
from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from content_bridge.db.models import Base

LOGGER = logging.getLogger(__name__)


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url.startswith("sqlite") and (
        ":memory:" in database_url or database_url.rstrip("/").endswith(":")
    )


def create_engine_and_sessions(
    database_url: str,
    echo: bool = False,
) -> Tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the async engine and a session factory bound to it.

    In-memory SQLite databases share one connection so every session sees
    the same data.

    Args:
        database_url: SQLAlchemy async URL, e.g. ``sqlite+aiosqlite:///./db.sqlite``.
        echo: Log emitted SQL.

    Returns:
        ``(engine, session_factory)``; sessions do not expire on commit.
    """

    if _is_sqlite_memory(database_url):
        engine = create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(database_url, echo=echo, pool_pre_ping=True)

    session_factory = async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )
    return engine, session_factory


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    LOGGER.info("Database tables ready")
