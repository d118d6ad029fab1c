"""
TableStep: base for stages that rewrite a sample table in place.

Every stage owns its own transaction: changes are committed when the
stage succeeds and rolled back when it raises, so a failed best-effort
stage never leaves the session unusable for the stages after it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.errors import StepExecutionError
from app.pipeline.step import PipelineStep
from app.samples.store import ROW_ID, SampleTableStore

RowTransform = Callable[[dict[str, Any]], dict[str, Any] | None]


class TableStep(PipelineStep):
    """A stage that reads and updates ``ctx.store``."""

    failure_message = "Stage failed"

    async def execute(self, ctx: PipelineContext) -> StepResult:
        started_at = self._now()
        try:
            result = await self.apply(ctx, started_at)
            await ctx.db.commit()
        except Exception as exc:
            await ctx.db.rollback()
            ctx.store.invalidate()
            raise StepExecutionError(
                f"{self.failure_message}: {exc}",
                execution_id=ctx.execution_id,
                step_name=self.name,
            ) from exc
        return result

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        raise NotImplementedError


async def transform_rows(
    store: SampleTableStore,
    columns: list[str],
    transform: RowTransform,
    *,
    batch_size: int = 5000,
) -> int:
    """
    Run ``transform`` over every row and write back what it returns.

    ``transform`` gets the row (with ``_ROW_ID``) and returns the columns to
    change, or None to leave the row alone.  Returns the number of rows updated.
    """
    updated = 0
    async for batch in store.iter_batches(columns, batch_size=batch_size):
        changes = []
        for row in batch:
            values = transform(row)
            if values:
                changes.append({ROW_ID: row[ROW_ID], **values})
        updated += await store.update_rows(changes)
    return updated
