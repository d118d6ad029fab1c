"""
SchemaMaterializer: turns normalized headers + rows into a stored table.

    1. Build a unique, timestamp-qualified table name from the base id
    2. Map header types onto storage types (a few columns are always text)
    3. Append the six system constant columns
    4. CREATE TABLE and bulk-load rows in chunks, coercing values by type

Any failure here is fatal for the upload: the half-built table is dropped
and MaterializationError propagates to the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Column, MetaData, Table
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import FORCED_TEXT_COLUMNS, SYSTEM_CONSTANT_COLUMNS, ColumnType
from app.core.logging import get_logger
from app.pipeline.errors import MaterializationError
from app.samples.headers import Header, Rows, column_name
from app.samples.store import SampleTableStore, row_id_column, storage_type, table_exists
from app.samples.values import convert_value

logger = get_logger(__name__)

SAMPLE_TABLE_PREFIX = "SA_"

_UNSAFE_TABLE_RE = re.compile(r"[^a-zA-Z0-9_]")


# ─── Naming ───────────────────────────────────────────

def sanitize_table_name(base: Any) -> str:
    """Alphanumerics/underscore only, at most 50 chars.

    The ``SA_`` prefix keeps the full table name a valid identifier, so a
    numeric project id is used as is.
    """
    name = _UNSAFE_TABLE_RE.sub("_", str(base or "").strip()) or "sample"
    return name[:50]


def build_table_name(base: Any, now: datetime | None = None) -> str:
    """``SA_{base}_{MMDD_HHMM}``."""
    stamp = (now or datetime.now()).strftime("%m%d_%H%M")
    return f"{SAMPLE_TABLE_PREFIX}{sanitize_table_name(base)}_{stamp}"


async def unique_table_name(db: AsyncSession, base: Any, now: datetime | None = None) -> str:
    """Suffix ``_2``, ``_3`` ... when the minute-stamped name is taken."""
    candidate = build_table_name(base, now)
    name, suffix = candidate, 2
    while await table_exists(db, name):
        name = f"{candidate}_{suffix}"
        suffix += 1
    return name


# ─── Types ────────────────────────────────────────────

def effective_type(header: Header) -> ColumnType:
    """Detected type, except for columns that must stay text."""
    if header.name.upper() in FORCED_TEXT_COLUMNS:
        return ColumnType.TEXT
    try:
        return ColumnType(str(header.type).upper())
    except ValueError:
        return ColumnType.TEXT


def system_constant_headers() -> list[Header]:
    return [
        Header(name=name, type=column_type, original_name=name, is_system_constant=True)
        for name, column_type, _ in SYSTEM_CONSTANT_COLUMNS
    ]


# ─── Materialization ──────────────────────────────────

@dataclass
class MaterializeResult:
    table_name: str
    rows_inserted: int
    headers: list[Header] = field(default_factory=list)
    constants_added: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tableName": self.table_name,
            "rowsInserted": self.rows_inserted,
            "headers": [h.to_dict() for h in self.headers],
            "constantsAdded": self.constants_added,
        }


def _storage_headers(headers: list[Header]) -> list[Header]:
    """Apply column naming + forced types; constant names always win."""
    constant_names = {name for name, _, _ in SYSTEM_CONSTANT_COLUMNS}
    seen: set[str] = set()
    final: list[Header] = []
    for header in headers:
        name = column_name(header.name)
        if name.upper() in constant_names or name.upper() in seen:
            logger.warning("Duplicate or reserved column skipped", column=header.name)
            continue
        seen.add(name.upper())
        final.append(Header(
            name=name,
            type=effective_type(Header(name=name, type=header.type)),
            original_name=header.original_name if header.original_name is not None else header.name,
        ))
    return final + system_constant_headers()


async def materialize(
    db: AsyncSession,
    *,
    base_name: Any,
    headers: list[Header],
    rows: Rows,
    now: datetime | None = None,
) -> MaterializeResult:
    """
    Create a sample table and load ``rows`` into it.

    ``rows`` are keyed by header name (pre column-naming).

    Raises:
        MaterializationError: DDL or load failed; nothing usable is left.
    """
    table_name = await unique_table_name(db, base_name, now)
    final_headers = _storage_headers(headers)
    source_key: dict[str, str] = {}
    for header in headers:
        source_key.setdefault(column_name(header.name), header.name)
    defaults = {name: default for name, _, default in SYSTEM_CONSTANT_COLUMNS}

    log = logger.bind(table=table_name, columns=len(final_headers), rows=len(rows))
    log.info("Materializing sample table")

    table = Table(
        table_name,
        MetaData(),
        row_id_column(),
        *(Column(h.name, storage_type(h.type), nullable=True) for h in final_headers),
    )

    try:
        await db.run_sync(lambda s: table.create(s.connection()))

        store = SampleTableStore(db, table_name)
        chunk: list[dict[str, Any]] = []
        inserted = 0
        for raw in rows:
            record = {}
            for header in final_headers:
                if header.is_system_constant:
                    record[header.name] = defaults[header.name]
                else:
                    record[header.name] = convert_value(raw.get(source_key.get(header.name, header.name)), header.type)
            chunk.append(record)
            if len(chunk) >= settings.INSERT_CHUNK_SIZE:
                inserted += await store.insert_rows(chunk, chunk_size=settings.INSERT_CHUNK_SIZE)
                chunk = []
        if chunk:
            inserted += await store.insert_rows(chunk, chunk_size=settings.INSERT_CHUNK_SIZE)
        await db.flush()

    except Exception as exc:
        log.exception("Materialization failed", error=str(exc))
        await db.rollback()
        try:
            await db.run_sync(lambda s: table.drop(s.connection(), checkfirst=True))
            await db.commit()
        except Exception as drop_exc:
            log.error("Could not drop partial table", error=str(drop_exc))
        raise MaterializationError(
            f"Files processed but table creation failed: {exc}",
            step_name="materialize",
            details={"tableName": table_name},
        ) from exc

    log.info("Sample table materialized", rows_inserted=inserted)
    return MaterializeResult(
        table_name=table_name,
        rows_inserted=inserted,
        headers=final_headers,
        constants_added=[name for name, _, _ in SYSTEM_CONSTANT_COLUMNS],
    )
