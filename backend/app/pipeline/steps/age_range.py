"""PopulateAgeRangeStep: AGERANGE bracket code from IAGE."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Sequence

from app.core.constants import ColumnType
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.repositories.age_ranges import Bracket, list_brackets
from app.samples.values import parse_int


def bracket_for(age_code: Any, brackets: Sequence[Bracket]) -> int | None:
    """Code of the bracket containing ``age_code``; None for "00" or no match."""
    age = parse_int(age_code)
    if not age:
        return None
    for bracket in brackets:
        if bracket.min_age <= age <= bracket.max_age:
            return bracket.code
    return None


class PopulateAgeRangeStep(TableStep):
    name = "populate_age_range"
    description = "Populating age ranges"
    failure_message = "Failed to populate age range"

    async def should_skip(self, ctx: PipelineContext) -> bool:
        # Tarrance files may ship their own AGERANGE
        return ctx.is_tarrance and await ctx.store.has_column("AGERANGE")

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        store = ctx.store
        iage = await store.find_column("IAGE")
        if iage is None:
            return self._skipped(started_at, "IAGE column not found")

        brackets = await list_brackets(ctx.db)
        await store.add_column("AGERANGE", ColumnType.INTEGER)
        target = await store.find_column("AGERANGE")
        counts = {"with_iage": 0, "with_range": 0}

        def _populate(row: dict[str, Any]) -> dict[str, Any] | None:
            if row[iage] is not None:
                counts["with_iage"] += 1
            code = bracket_for(row[iage], brackets)
            if code is not None:
                counts["with_range"] += 1
            return {target: code} if code != parse_int(row[target]) else None

        await transform_rows(store, [iage, target], _populate)
        return self._success(started_at, metadata={
            "totalWithIAge": counts["with_iage"],
            "recordsWithAgeRange": counts["with_range"],
            "recordsWithoutAgeRange": counts["with_iage"] - counts["with_range"],
        })
