"""FormatRDateStep: L2 registration dates as YYYYMMDD."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.values import is_blank, parse_date


def format_rdate(value: Any) -> Any:
    """YYYYMMDD for a parsable date; anything else is returned unchanged."""
    if is_blank(value):
        return value
    parsed = parse_date(value)
    if parsed is None:
        return value
    return parsed.strftime("%Y%m%d")


class FormatRDateStep(TableStep):
    name = "format_rdate"
    description = "Formatting RDATE column"
    failure_message = "Failed to format RDATE"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        column = await ctx.store.find_column("RDATE")
        if column is None:
            return self._skipped(started_at, "RDATE column not found")

        def _format(row: dict[str, Any]) -> dict[str, Any] | None:
            formatted = format_rdate(row[column])
            return {column: formatted} if formatted != row[column] else None

        updated = await transform_rows(ctx.store, [column], _format)
        return self._success(started_at, metadata={"rowsUpdated": updated})
