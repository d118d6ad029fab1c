"""
SampleTableStore: data access for dynamically created sample tables.

Sample tables have no ORM model: their columns come from the uploaded
files.  The store reflects the table with SQLAlchemy Core and exposes the
handful of operations the pipeline stages and the extraction engine need
(batched reads, keyed updates, deletes, added columns, derived copies).

Every sample table carries a hidden integer primary key ``_ROW_ID`` that
keeps upload order and addresses rows for updates.  It is never reported
as a header and never written to extract files.

Like the repositories, the store only flushes statements through the
session; transaction boundaries belong to the caller.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Iterable

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    Table,
    Unicode,
    bindparam,
    delete,
    func,
    inspect,
    insert,
    select,
    text,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import TypeEngine

from app.core.constants import ColumnType
from app.core.logging import get_logger
from app.samples.values import TEXT_LENGTH

logger = get_logger(__name__)

ROW_ID = "_ROW_ID"

_STORAGE_TYPES: dict[ColumnType, type[TypeEngine]] = {
    ColumnType.INTEGER: BigInteger,
    ColumnType.REAL: Float,
    ColumnType.BOOLEAN: Boolean,
    ColumnType.DATE: DateTime,
}


def storage_type(column_type: ColumnType | str) -> TypeEngine:
    """Map a logical column type onto a SQLAlchemy storage type."""
    key = str(column_type).upper()
    if key == "FLOAT":
        key = ColumnType.REAL
    elif key == "DATETIME":
        key = ColumnType.DATE
    type_cls = _STORAGE_TYPES.get(key)
    return type_cls() if type_cls else Unicode(TEXT_LENGTH)


def logical_type(sa_type: TypeEngine) -> ColumnType:
    """Reverse of ``storage_type`` for reflected columns."""
    python_type: Any
    try:
        python_type = sa_type.python_type
    except NotImplementedError:
        return ColumnType.TEXT
    if python_type is bool:
        return ColumnType.BOOLEAN
    if python_type is int:
        return ColumnType.INTEGER
    if python_type is float:
        return ColumnType.REAL
    if python_type.__name__ in ("datetime", "date"):
        return ColumnType.DATE
    return ColumnType.TEXT


def row_id_column() -> Column:
    return Column(ROW_ID, Integer, primary_key=True, autoincrement=True)


# ─── Catalog helpers ──────────────────────────────────

async def table_exists(db: AsyncSession, table_name: str) -> bool:
    """True if a table with exactly this name exists."""
    return await db.run_sync(lambda s: inspect(s.connection()).has_table(table_name))


async def list_table_names(db: AsyncSession) -> list[str]:
    """All table names in the default schema."""
    return await db.run_sync(lambda s: inspect(s.connection()).get_table_names())


class SampleTableStore:
    """Reflected handle on one sample table."""

    def __init__(self, db: AsyncSession, table_name: str) -> None:
        self.db = db
        self.table_name = table_name
        self._table: Table | None = None

    def invalidate(self) -> None:
        """Forget the cached definition (after a rollback)."""
        self._table = None

    # ─── Schema ────────────────────────────────────────

    async def table(self, refresh: bool = False) -> Table:
        """Reflect (and cache) the table definition."""
        if self._table is None or refresh:
            name = self.table_name

            def _reflect(sync_session) -> Table:
                return Table(name, MetaData(), autoload_with=sync_session.connection())

            self._table = await self.db.run_sync(_reflect)
        return self._table

    async def exists(self) -> bool:
        return await table_exists(self.db, self.table_name)

    async def columns(self) -> list[str]:
        """Column names in storage order, without the row key."""
        table = await self.table()
        return [c.name for c in table.columns if c.name != ROW_ID]

    async def headers(self) -> list[dict[str, str]]:
        table = await self.table()
        return [
            {"name": c.name, "type": str(logical_type(c.type))}
            for c in table.columns
            if c.name != ROW_ID
        ]

    async def find_column(self, name: str) -> str | None:
        """Case-insensitive column lookup; returns the stored name."""
        wanted = name.upper()
        for column in await self.columns():
            if column.upper() == wanted:
                return column
        return None

    async def has_column(self, name: str) -> bool:
        return await self.find_column(name) is not None

    async def add_column(self, name: str, column_type: ColumnType | str = ColumnType.TEXT) -> bool:
        """Add a nullable column.  Returns False if it already existed."""
        if await self.has_column(name):
            return False
        table = await self.table()
        dialect = self.db.get_bind().dialect
        preparer = dialect.identifier_preparer
        type_sql = storage_type(column_type).compile(dialect=dialect)
        await self.db.execute(text(
            f"ALTER TABLE {preparer.format_table(table)} ADD COLUMN {preparer.quote(name)} {type_sql}"
        ))
        await self.table(refresh=True)
        logger.debug("Column added", table=self.table_name, column=name, type=str(column_type))
        return True

    async def drop_column(self, name: str) -> bool:
        """Drop a column if present.  Returns False if it did not exist."""
        stored = await self.find_column(name)
        if stored is None:
            return False
        table = await self.table()
        preparer = self.db.get_bind().dialect.identifier_preparer
        await self.db.execute(text(
            f"ALTER TABLE {preparer.format_table(table)} DROP COLUMN {preparer.quote(stored)}"
        ))
        await self.table(refresh=True)
        return True

    # ─── Reads ─────────────────────────────────────────

    async def count(self, where: ColumnElement | None = None) -> int:
        table = await self.table()
        stmt = select(func.count()).select_from(table)
        if where is not None:
            stmt = stmt.where(where)
        return int((await self.db.execute(stmt)).scalar_one())

    async def fetch(
        self,
        columns: Iterable[str] | None = None,
        *,
        where: ColumnElement | None = None,
        order_by: Iterable[Any] | None = None,
        limit: int | None = None,
        include_row_id: bool = False,
    ) -> list[dict[str, Any]]:
        """Read rows as dicts, in upload order unless ``order_by`` is given."""
        table = await self.table()
        names = list(columns) if columns is not None else await self.columns()
        selected = [table.c[n] for n in names]
        if include_row_id:
            selected.insert(0, table.c[ROW_ID])
        stmt = select(*selected)
        if where is not None:
            stmt = stmt.where(where)
        stmt = stmt.order_by(*(order_by or [table.c[ROW_ID]]))
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return [dict(row._mapping) for row in result]

    async def iter_batches(
        self,
        columns: Iterable[str],
        *,
        where: ColumnElement | None = None,
        batch_size: int = 5000,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Keyset-paginate over rows; every dict includes ``_ROW_ID``."""
        table = await self.table()
        selected = [table.c[ROW_ID], *(table.c[n] for n in columns if n != ROW_ID)]
        last_id = None
        while True:
            stmt = select(*selected).order_by(table.c[ROW_ID]).limit(batch_size)
            if where is not None:
                stmt = stmt.where(where)
            if last_id is not None:
                stmt = stmt.where(table.c[ROW_ID] > last_id)
            batch = [dict(row._mapping) for row in await self.db.execute(stmt)]
            if not batch:
                return
            yield batch
            last_id = batch[-1][ROW_ID]

    # ─── Writes ────────────────────────────────────────

    async def insert_rows(self, rows: list[dict[str, Any]], chunk_size: int = 1000) -> int:
        """Bulk insert rows keyed by column name."""
        if not rows:
            return 0
        table = await self.table()
        for start in range(0, len(rows), chunk_size):
            await self.db.execute(insert(table), rows[start:start + chunk_size])
        return len(rows)

    async def update_rows(self, updates: list[dict[str, Any]]) -> int:
        """
        Apply per-row updates.

        Each dict holds ``_ROW_ID`` plus the columns to set.  Updates with
        the same column set are sent as one executemany.
        """
        if not updates:
            return 0
        table = await self.table()
        groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
        for item in updates:
            keys = tuple(sorted(k for k in item if k != ROW_ID))
            if keys:
                groups.setdefault(keys, []).append(item)

        for keys, items in groups.items():
            # bind names must not collide with column names
            params = {key: f"p{i}" for i, key in enumerate(keys)}
            stmt = (
                update(table)
                .where(table.c[ROW_ID] == bindparam("row_key"))
                .values({table.c[key]: bindparam(param) for key, param in params.items()})
            )
            payload = [
                {"row_key": item[ROW_ID], **{params[k]: item[k] for k in keys}}
                for item in items
            ]
            await self.db.execute(stmt, payload)
        return len(updates)

    async def update_where(self, values: dict[str, Any], where: ColumnElement | None = None) -> int:
        """Set constant values on every matching row."""
        table = await self.table()
        stmt = update(table).values({table.c[k]: v for k, v in values.items()})
        if where is not None:
            stmt = stmt.where(where)
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def delete_rows(self, row_ids: Iterable[int]) -> int:
        ids = list(row_ids)
        if not ids:
            return 0
        table = await self.table()
        deleted = 0
        for start in range(0, len(ids), 1000):
            result = await self.db.execute(
                delete(table).where(table.c[ROW_ID].in_(ids[start:start + 1000]))
            )
            deleted += result.rowcount or 0
        return deleted

    # ─── Derived tables ────────────────────────────────

    async def create_like(
        self,
        new_name: str,
        *,
        extra_columns: Iterable[tuple[str, ColumnType | str]] = (),
    ) -> "SampleTableStore":
        """Create an empty table with this table's columns (plus extras)."""
        source = await self.table()
        metadata = MetaData()
        columns = [row_id_column()]
        for column in source.columns:
            if column.name != ROW_ID:
                columns.append(Column(column.name, column.type, nullable=True))
        existing = {c.name for c in columns}
        for name, column_type in extra_columns:
            if name not in existing:
                columns.append(Column(name, storage_type(column_type), nullable=True))
        new_table = Table(new_name, metadata, *columns)
        await self.db.run_sync(lambda s: new_table.create(s.connection()))
        return SampleTableStore(self.db, new_name)

    async def copy_to(self, new_name: str, *, where: ColumnElement | None = None) -> "SampleTableStore":
        """Create ``new_name`` with the same columns and copy matching rows."""
        target = await self.create_like(new_name)
        await target.append_from(self, where=where)
        logger.info("Derived table created", source=self.table_name, table=new_name)
        return target

    async def append_from(self, source: "SampleTableStore", *, where: ColumnElement | None = None) -> None:
        """INSERT ... SELECT the shared columns of matching ``source`` rows, in upload order."""
        source_table = await source.table()
        target_table = await self.table()
        names = [n for n in await source.columns() if n in target_table.c]
        query = select(*(source_table.c[n] for n in names)).order_by(source_table.c[ROW_ID])
        if where is not None:
            query = query.where(where)
        await self.db.execute(insert(target_table).from_select(names, query))

    async def drop(self) -> None:
        table = await self.table()
        await self.db.run_sync(lambda s: table.drop(s.connection(), checkfirst=True))
        self._table = None


__all__ = [
    "ROW_ID",
    "SampleTableStore",
    "list_table_names",
    "logical_type",
    "row_id_column",
    "storage_type",
    "table_exists",
]
