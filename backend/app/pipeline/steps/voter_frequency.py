"""
VoterFrequencyStep: VFREQGEN / VFREQPR from RNC vote history.

Vote history arrives as one column per election (``VH2024G`` for the 2024
general, ``VH2024P`` for the primary).  The frequencies count votes over
the four most recent completed even years.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from app.core.constants import ColumnType
from app.core.logging import get_logger
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.values import as_text

logger = get_logger(__name__)


def voter_frequency_years(current_year: int) -> list[int]:
    """Previous four even years, newest first (2025 → 2024, 2022, 2020, 2018)."""
    start = current_year - 2 if current_year % 2 == 0 else current_year - 1
    return [start - offset for offset in (0, 2, 4, 6)]


def counts_as_vote(value: Any) -> bool:
    if value is None:
        return False
    text = as_text(value).strip().upper()
    return text not in ("", "0", "NA")


class VoterFrequencyStep(TableStep):
    name = "voter_frequency"
    description = "Creating voter frequency columns"
    failure_message = "Failed to create VFREQ columns"

    def __init__(self, today: date | None = None) -> None:
        self._today = today

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        store = ctx.store
        years = voter_frequency_years((self._today or date.today()).year)
        general = [c for c in [await store.find_column(f"VH{y}G") for y in years] if c]
        primary = [c for c in [await store.find_column(f"VH{y}P") for y in years] if c]
        if not general and not primary:
            return self._skipped(started_at, "No VH columns found", metadata={"yearsChecked": years})

        await store.add_column("VFREQGEN", ColumnType.INTEGER)
        await store.add_column("VFREQPR", ColumnType.INTEGER)
        gen_col = await store.find_column("VFREQGEN")
        pr_col = await store.find_column("VFREQPR")

        def _count(row: dict[str, Any]) -> dict[str, Any]:
            return {
                gen_col: sum(counts_as_vote(row[c]) for c in general),
                pr_col: sum(counts_as_vote(row[c]) for c in primary),
            }

        updated = await transform_rows(store, [*general, *primary, gen_col, pr_col], _count)
        logger.info("Voter frequency computed", table=ctx.table_name, years=years, rows=updated)
        return self._success(started_at, metadata={
            "rowsUpdated": updated,
            "yearsUsed": years,
            "columnsUsed": general + primary,
        })
