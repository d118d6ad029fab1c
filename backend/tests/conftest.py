"""
Shared fixtures.

Tests run against a throwaway SQLite file through aiosqlite.  SQLite's
driver-level transaction handling is replaced by explicit BEGIN so that
savepoints (``begin_nested``) behave as they do on PostgreSQL.
"""

from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy import Column, MetaData, Table, event, pool
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.core.constants import ColumnType
from app.db.models import Base
from app.samples.store import SampleTableStore, row_id_column, storage_type


def sqlite_engine(path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=pool.NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
async def engine(tmp_path):
    engine = sqlite_engine(tmp_path / "samples.db")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_table(db):
    """Create a sample table with the given columns and rows, committed."""

    async def _make(
        name: str,
        columns: dict[str, ColumnType],
        rows: list[dict[str, Any]] = (),
    ) -> SampleTableStore:
        table = Table(
            name,
            MetaData(),
            row_id_column(),
            *(Column(column, storage_type(kind), nullable=True) for column, kind in columns.items()),
        )
        await db.run_sync(lambda s: table.create(s.connection()))
        store = SampleTableStore(db, name)
        await store.insert_rows([{column: row.get(column) for column in columns} for row in rows])
        await db.commit()
        return store

    return _make
