"""PadColumnsStep: restore leading zeros lost to numeric handling."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.pipeline.steps.tarrance import zero_pad

PAD_WIDTHS = {"IZIP": 5}
TARRANCE_PAD_WIDTHS = {"REGN": 2}


class PadColumnsStep(TableStep):
    name = "pad_columns"
    description = "Padding columns"
    failure_message = "Failed to pad columns"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        widths = dict(PAD_WIDTHS)
        if ctx.is_tarrance:
            widths.update(TARRANCE_PAD_WIDTHS)
        targets = {}
        for name, width in widths.items():
            column = await ctx.store.find_column(name)
            if column:
                targets[column] = width
        if not targets:
            return self._skipped(started_at, "No columns to pad")

        def _pad(row: dict[str, Any]) -> dict[str, Any] | None:
            changes = {}
            for column, width in targets.items():
                padded = zero_pad(row[column], width)
                if padded != row[column]:
                    changes[column] = padded
            return changes or None

        updated = await transform_rows(ctx.store, list(targets), _pad)
        return self._success(started_at, metadata={"columns": list(targets), "recordsProcessed": updated})
