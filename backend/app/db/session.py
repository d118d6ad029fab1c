"""
Async SQLAlchemy session factory.

The module-level engine serves the API process.  Celery tasks run each job
under ``asyncio.run`` and must not share pooled connections across event
loops, so they build a throwaway engine with ``make_session_factory``.
"""

from __future__ import annotations

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.SQL_ECHO,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


def make_session_factory(url: str | None = None) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Build an unpooled engine + session factory bound to the current loop."""
    fresh_engine = create_async_engine(url or settings.DATABASE_URL, poolclass=pool.NullPool)
    factory = async_sessionmaker(fresh_engine, class_=AsyncSession, expire_on_commit=False)
    return fresh_engine, factory


async def get_db() -> AsyncSession:
    """Dependency that yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
