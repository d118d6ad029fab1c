"""
Stratified batch assignment.

Rows are ordered by the demographic columns that exist in the table and
dealt round-robin into ``batch_count`` batches, so every batch gets a
similar demographic mix.  Without any of those columns the deal follows
upload order.
"""

from __future__ import annotations

from typing import Any, Sequence

from app.core.constants import STRATIFY_COLUMNS, ColumnType
from app.core.logging import get_logger
from app.samples.store import ROW_ID, SampleTableStore
from app.samples.values import as_text

logger = get_logger(__name__)

BATCH_COLUMN = "BATCH"


def _sort_key(row: dict[str, Any], columns: Sequence[str]) -> tuple:
    return tuple((row[c] is None, as_text(row[c]) if row[c] is not None else "") for c in columns)


def assign_batches(rows: list[dict[str, Any]], columns: Sequence[str], batch_count: int) -> dict[int, int]:
    """Map ``_ROW_ID`` → batch number (1-based)."""
    ordered = sorted(rows, key=lambda r: _sort_key(r, columns)) if columns else rows
    return {row[ROW_ID]: index % batch_count + 1 for index, row in enumerate(ordered)}


async def stratify_table(
    store: SampleTableStore,
    *,
    batch_count: int = 20,
    columns: Sequence[str] = STRATIFY_COLUMNS,
) -> dict[str, Any]:
    """Fill BATCH on every row of ``store``."""
    await store.add_column(BATCH_COLUMN, ColumnType.INTEGER)
    batch_col = await store.find_column(BATCH_COLUMN)
    used: list[str] = []
    skipped: list[str] = []
    for name in columns:
        stored = await store.find_column(name)
        (used if stored else skipped).append(stored or name)

    rows = await store.fetch(used, include_row_id=True)
    batches = assign_batches(rows, used, batch_count)
    await store.update_rows([{ROW_ID: row_id, batch_col: batch} for row_id, batch in batches.items()])

    if not used:
        logger.warning("No stratify columns found, batching in row order", table=store.table_name)
    return {
        "batchCount": batch_count,
        "stratifyColumns": ",".join(used),
        "columnsUsed": used,
        "columnsSkipped": skipped,
        "rowsAssigned": len(batches),
    }
