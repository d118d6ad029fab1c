"""ClassifySourceStep: SOURCE code from which phone slots are filled."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.core.constants import ColumnType
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.values import is_blank

SOURCE_LANDLINE = 1
SOURCE_CELL = 2
SOURCE_BOTH = 3


def classify_source(land: Any, cell: Any) -> int | None:
    """1 landline only, 2 cell only, 3 both, None for neither."""
    has_land = not is_blank(land)
    has_cell = not is_blank(cell)
    if has_land and has_cell:
        return SOURCE_BOTH
    if has_land:
        return SOURCE_LANDLINE
    if has_cell:
        return SOURCE_CELL
    return None


class ClassifySourceStep(TableStep):
    name = "classify_source"
    description = "Updating SOURCE column"
    critical = True
    failure_message = "Failed to update SOURCE column"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        store = ctx.store
        await store.add_column("SOURCE", ColumnType.INTEGER)
        source = await store.find_column("SOURCE")
        land = await store.find_column("LAND")
        cell = await store.find_column("CELL")
        counts = {SOURCE_LANDLINE: 0, SOURCE_CELL: 0, SOURCE_BOTH: 0}

        def _classify(row: dict[str, Any]) -> dict[str, Any] | None:
            code = classify_source(row[land] if land else None, row[cell] if cell else None)
            if code is not None:
                counts[code] += 1
            return {source: code} if code != row[source] else None

        columns = [c for c in (source, land, cell) if c]
        updated = await transform_rows(store, columns, _classify)
        return self._success(started_at, metadata={
            "rowsUpdated": updated,
            "landlineOnlyCount": counts[SOURCE_LANDLINE],
            "cellOnlyCount": counts[SOURCE_CELL],
            "bothCount": counts[SOURCE_BOTH],
        })
