"""
Householding: one landline record per household number.

Landline-oriented rows (VTYPE 1) sharing a LAND number form a household,
ranked by upload order.  The rank-1 member stays in the main table and
carries the other members' details in rank-suffixed columns (FNAME2,
IAGE3, ...).  Members ranked 2-4 move to ``{T}duplicate{N}`` tables where
their own details are repeated in the rank-N columns; anyone ranked
beyond the last duplicate table is dropped.

A ``{T}_BACKUP_{n}`` copy of the main table is taken before any change.
"""

from __future__ import annotations

from typing import Any

from app.core.constants import HOUSEHOLD_MAX_RANK, HOUSEHOLD_RANK_BASES
from app.core.logging import get_logger
from app.samples.store import ROW_ID, SampleTableStore, table_exists
from app.samples.values import as_text, is_blank

logger = get_logger(__name__)


def rank_column(base: str, rank: int) -> str:
    return f"{base}{rank}"


def duplicate_table_name(table_name: str, rank: int) -> str:
    return f"{table_name}duplicate{rank}"


def group_households(rows: list[dict[str, Any]], number_column: str) -> list[list[dict[str, Any]]]:
    """Group rows by phone number, keeping first-seen order within and across groups."""
    groups: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        number = row[number_column]
        if is_blank(number):
            continue
        groups.setdefault(as_text(number).strip(), []).append(row)
    return list(groups.values())


async def _backup_name(store: SampleTableStore) -> str:
    n = 1
    while await table_exists(store.db, f"{store.table_name}_BACKUP_{n}"):
        n += 1
    return f"{store.table_name}_BACKUP_{n}"


async def process_householding(store: SampleTableStore, *, max_rank: int = HOUSEHOLD_MAX_RANK) -> dict[str, Any]:
    """
    Household the main table in place.

    Raises:
        ValueError: the table has no LAND column.
    """
    table_name = store.table_name
    land = await store.find_column("LAND")
    if land is None:
        raise ValueError(f"LAND column not found in {table_name}")
    vtype = await store.find_column("VTYPE")

    log = logger.bind(table=table_name)
    backup = await _backup_name(store)
    await store.copy_to(backup)

    # ── Rank columns ──────────────────────────────────
    types = {h["name"]: h["type"] for h in await store.headers()}
    bases = []
    for name in HOUSEHOLD_RANK_BASES:
        stored = await store.find_column(name)
        if stored:
            bases.append(stored)
    for rank in range(2, max_rank + 1):
        for base in bases:
            await store.add_column(rank_column(base, rank), types[base])

    # ── Group landline-oriented rows ──────────────────
    table = await store.table()
    where = table.c[land].isnot(None)
    if vtype is not None:
        where = where & (table.c[vtype] == 1)
    rows = await store.fetch([land, *bases], where=where, include_row_id=True)
    households = group_households(rows, land)

    promoted: list[dict[str, Any]] = []
    moved: dict[int, list[int]] = {rank: [] for rank in range(2, max_rank + 1)}
    overflow: list[int] = []
    for members in households:
        head = members[0]
        update = {ROW_ID: head[ROW_ID]}
        for rank, member in enumerate(members[1:], start=2):
            if rank > max_rank:
                overflow.append(member[ROW_ID])
                continue
            for base in bases:
                update[rank_column(base, rank)] = member[base]
            moved[rank].append(member[ROW_ID])
        if len(update) > 1:
            promoted.append(update)

    await store.update_rows(promoted)

    # ── Duplicate-rank tables ─────────────────────────
    counts: dict[str, int] = {}
    created: dict[str, str | None] = {"backup": backup}
    for rank, ids in moved.items():
        key = f"duplicate{rank}"
        name = duplicate_table_name(table_name, rank)
        existing = SampleTableStore(store.db, name)
        if await existing.exists():
            await existing.drop()
        counts[key] = len(ids)
        if not ids:
            created[key] = None
            continue
        target = await store.create_like(name)
        for start in range(0, len(ids), 1000):
            await target.append_from(store, where=table.c[ROW_ID].in_(ids[start:start + 1000]))
        if bases:
            target_table = await target.table()
            await target.update_where({rank_column(base, rank): target_table.c[base] for base in bases})
        created[key] = name

    removed = await store.delete_rows([i for ids in moved.values() for i in ids] + overflow)
    final_count = await store.count()
    log.info(
        "Householding complete",
        households=len(households),
        duplicates=counts,
        overflow=len(overflow),
        removed=removed,
    )
    return {
        "totalProcessed": len(rows),
        "households": len(households),
        "mainTableFinalCount": final_count,
        "duplicateCounts": counts,
        "overflowDropped": len(overflow),
        "tablesCreated": created,
    }
