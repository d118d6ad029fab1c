"""
ScrubDncStep: apply the do-not-call list to landline numbers.

    SOURCE=1 (landline only) with a listed LAND → row removed
    SOURCE=3 (both)          with a listed LAND → LAND cleared, SOURCE=2
    anything else                               → untouched

Cell numbers are not checked against the list.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep
from app.pipeline.steps.classify_source import SOURCE_BOTH, SOURCE_CELL, SOURCE_LANDLINE
from app.repositories import dnc as dnc_repo
from app.samples.store import ROW_ID, SampleTableStore
from app.samples.values import as_text, is_blank, parse_int

logger = get_logger(__name__)


async def scrub_table(db: AsyncSession, store: SampleTableStore, *, batch_size: int = 5000) -> dict[str, Any]:
    """Scrub ``store`` in place and return the row accounting."""
    rows_original = await store.count()
    land = await store.find_column("LAND")
    source = await store.find_column("SOURCE")
    stats = {
        "rowsOriginal": rows_original,
        "rowsAfter": rows_original,
        "rowsRemoved": 0,
        "landlinesCleared": 0,
        "sourceUpdatedToCell": 0,
    }
    if land is None or source is None:
        return stats

    to_delete: list[int] = []
    to_clear: list[dict[str, Any]] = []
    async for batch in store.iter_batches([land, source], batch_size=batch_size):
        candidates = [r for r in batch if not is_blank(r[land])]
        listed = await dnc_repo.listed_numbers(db, (as_text(r[land]) for r in candidates))
        for row in candidates:
            if as_text(row[land]) not in listed:
                continue
            code = parse_int(row[source])
            if code == SOURCE_LANDLINE:
                to_delete.append(row[ROW_ID])
            elif code == SOURCE_BOTH:
                to_clear.append({ROW_ID: row[ROW_ID], land: None, source: SOURCE_CELL})

    removed = await store.delete_rows(to_delete)
    await store.update_rows(to_clear)

    stats.update(
        rowsAfter=rows_original - removed,
        rowsRemoved=removed,
        landlinesCleared=len(to_clear),
        sourceUpdatedToCell=len(to_clear),
    )
    return stats


class ScrubDncStep(TableStep):
    name = "scrub_dnc"
    description = "Applying WDNC scrubbing"
    critical = True
    failure_message = "Failed to apply WDNC scrubbing"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        stats = await scrub_table(ctx.db, ctx.store)
        logger.info("DNC scrub complete", table=ctx.table_name, **stats)
        return self._success(started_at, metadata=stats)
