"""
Sample table catalog: listing, inspection and removal of SA_ tables.

A parent table is named ``SA_{project}_{MMDD}_{HHMM}``.  Tables derived from
it (split files, householding ranks, backups, the DNC-scrubbed copy) carry
the parent's name plus a fixed suffix and are reported as its family.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.pipeline.errors import TableNotFoundError, ValidationError
from app.pipeline.steps.scrub_dnc import scrub_table
from app.samples.schema import SAMPLE_TABLE_PREFIX, sanitize_table_name
from app.samples.store import ROW_ID, SampleTableStore, list_table_names, logical_type, table_exists

logger = get_logger(__name__)

DERIVATIVE_SUFFIXES = (
    "_LANDLINE", "_CELL", "_LSAM", "_CSAM", "_DUPLICATES",
    "duplicate2", "duplicate3", "duplicate4", "_WDNC",
)
DNC_SUFFIX = "_WDNC"

_PARENT_RE = re.compile(r"^SA_(.+?)_(\d{4})_(\d{4})(?:_(\d+))?$")
_BACKUP_RE = re.compile(r"^(SA_.+_\d{4}_\d{4}(?:_\d+)?)_BACKUP_\d+$")
_TABLE_NAME_RE = re.compile(r"^SA_[A-Za-z0-9_]+$")


def check_table_name(table_name: str) -> str:
    """Only SA_ identifiers are addressable through the API."""
    if not table_name or not _TABLE_NAME_RE.match(table_name):
        raise ValidationError(f"Invalid table name: {table_name!r}")
    return table_name


async def open_table(db: AsyncSession, table_name: str) -> SampleTableStore:
    """Store for an existing sample table, or TableNotFoundError."""
    check_table_name(table_name)
    if not await table_exists(db, table_name):
        raise TableNotFoundError(f"Table {table_name} not found", details={"tableName": table_name})
    return SampleTableStore(db, table_name)


# ─── Families ─────────────────────────────────────────

def derivative_of(table_name: str) -> tuple[str, str] | None:
    """``(parent, type)`` when ``table_name`` is a derived table."""
    backup = _BACKUP_RE.match(table_name)
    if backup:
        return backup.group(1), "BACKUP"
    for suffix in DERIVATIVE_SUFFIXES:
        if table_name.endswith(suffix) and len(table_name) > len(suffix):
            return table_name[: -len(suffix)], suffix.lstrip("_")
    return None


def parse_table_timestamp(date_part: str, time_part: str, year: int | None = None) -> datetime | None:
    try:
        return datetime(
            year or datetime.now().year,
            int(date_part[:2]),
            int(date_part[2:]),
            int(time_part[:2]),
            int(time_part[2:]),
        )
    except ValueError:
        return None


def parent_info(table_name: str, row_count: int) -> dict[str, Any]:
    match = _PARENT_RE.match(table_name)
    return {
        "tableName": table_name,
        "rowCount": row_count,
        "projectId": match.group(1) if match else None,
        "timestamp": f"{match.group(2)}_{match.group(3)}" if match else None,
        "createdDate": parse_table_timestamp(match.group(2), match.group(3)) if match else None,
    }


def group_families(counts: dict[str, int], limit: int = 50) -> list[dict[str, Any]]:
    """
    Build ``[{projectId, tables: [{parentTable, derivatives}]}]``.

    Families without a parent are left out; families are newest first
    within a project and projects are in descending numeric order.
    """
    families: dict[str, dict[str, Any]] = {}
    for name, rows in counts.items():
        derived = derivative_of(name)
        if derived is not None:
            parent, kind = derived
            family = families.setdefault(parent, {"parentTable": None, "derivatives": []})
            family["derivatives"].append({"tableName": name, "rowCount": rows, "type": kind})
        else:
            family = families.setdefault(name, {"parentTable": None, "derivatives": []})
            family["parentTable"] = parent_info(name, rows)

    complete = sorted(
        (f for f in families.values() if f["parentTable"] is not None),
        key=lambda f: f["parentTable"]["tableName"],
        reverse=True,
    )

    projects: dict[str, dict[str, Any]] = {}
    for family in complete:
        project = family["parentTable"]["projectId"] or "Unknown"
        projects.setdefault(project, {"projectId": project, "tables": []})["tables"].append(family)

    def numeric(project: str) -> int:
        try:
            return int(project)
        except ValueError:
            return 0

    return sorted(projects.values(), key=lambda p: numeric(p["projectId"]), reverse=True)[:limit]


async def list_sample_tables(
    db: AsyncSession,
    *,
    project_id: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Non-empty SA_ tables grouped into families by project."""
    prefix = f"{SAMPLE_TABLE_PREFIX}{sanitize_table_name(project_id)}_" if project_id else SAMPLE_TABLE_PREFIX
    counts: dict[str, int] = {}
    for name in await list_table_names(db):
        if not name.startswith(prefix):
            continue
        rows = await SampleTableStore(db, name).count()
        if rows > 0:
            counts[name] = rows
    return group_families(counts, limit=limit)


# ─── Inspection ───────────────────────────────────────

async def table_details(db: AsyncSession, table_name: str) -> dict[str, Any]:
    store = await open_table(db, table_name)
    table = await store.table()
    columns = [
        {
            "name": column.name,
            "dataType": str(logical_type(column.type)),
            "maxLength": getattr(column.type, "length", None),
            "nullable": bool(column.nullable),
            "position": position,
        }
        for position, column in enumerate((c for c in table.columns if c.name != ROW_ID), start=1)
    ]
    derivatives = []
    for suffix in DERIVATIVE_SUFFIXES:
        name = f"{table_name}{suffix}"
        if await table_exists(db, name):
            derivatives.append({
                "tableName": name,
                "rowCount": await SampleTableStore(db, name).count(),
                "type": suffix.lstrip("_"),
            })
    return {
        "tableName": table_name,
        "columns": columns,
        "headers": await store.headers(),
        "totalRows": await store.count(),
        "sampleRows": await store.fetch(limit=10),
        "derivatives": derivatives,
    }


async def preview_table(db: AsyncSession, table_name: str, limit: int = 10) -> dict[str, Any]:
    if limit < 1 or limit > 100:
        raise ValidationError("Limit must be a number between 1 and 100")
    store = await open_table(db, table_name)
    rows = await store.fetch(limit=limit)
    return {"tableName": table_name, "rows": rows, "count": len(rows), "limit": limit}


async def table_headers(db: AsyncSession, table_name: str) -> list[dict[str, str]]:
    store = await open_table(db, table_name)
    return await store.headers()


async def distinct_age_ranges(store: SampleTableStore) -> list[Any]:
    """Distinct non-empty AGERANGE codes, ascending; ``[]`` without the column."""
    column = await store.find_column("AGERANGE")
    if column is None:
        return []
    table = await store.table()
    stmt = (
        select(table.c[column])
        .distinct()
        .where(table.c[column].isnot(None))
        .order_by(table.c[column])
    )
    return [value for value in (await store.db.execute(stmt)).scalars() if value != ""]


# ─── Removal ──────────────────────────────────────────

async def delete_sample_table(
    db: AsyncSession,
    table_name: str,
    *,
    include_derivatives: bool = True,
) -> dict[str, Any]:
    """Drop a table and, optionally, every table derived from it."""
    check_table_name(table_name)
    targets: list[str] = []
    if include_derivatives:
        for name in await list_table_names(db):
            derived = derivative_of(name)
            if derived is not None and derived[0] == table_name:
                targets.append(name)
    targets.append(table_name)

    deleted: list[str] = []
    for name in targets:
        if await table_exists(db, name):
            await SampleTableStore(db, name).drop()
            deleted.append(name)
    await db.commit()

    logger.info("Sample tables deleted", table=table_name, deleted=deleted)
    return {
        "success": True,
        "deletedTables": deleted,
        "message": f"Deleted {len(deleted)} table(s)",
    }


# ─── DNC scrub on demand ──────────────────────────────

async def scrub_copy(db: AsyncSession, table_name: str) -> dict[str, Any]:
    """Copy ``T`` to ``T_WDNC`` (replacing it) and scrub the copy."""
    source = await open_table(db, table_name)
    target_name = f"{table_name}{DNC_SUFFIX}"
    if await table_exists(db, target_name):
        await SampleTableStore(db, target_name).drop()
    try:
        target = await source.copy_to(target_name)
        stats = await scrub_table(db, target)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    logger.info("DNC scrub copy created", table=table_name, target=target_name, **stats)
    return {"success": True, "sourceTable": table_name, "tableName": target_name, **stats}


__all__ = [
    "DERIVATIVE_SUFFIXES",
    "check_table_name",
    "delete_sample_table",
    "derivative_of",
    "distinct_age_ranges",
    "group_families",
    "list_sample_tables",
    "open_table",
    "preview_table",
    "scrub_copy",
    "table_details",
    "table_headers",
]
