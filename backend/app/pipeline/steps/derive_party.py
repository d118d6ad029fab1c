"""DerivePartyStep: PARTY code from the RNC party rollup text."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.core.constants import ColumnType
from app.core.logging import get_logger
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.store import SampleTableStore

logger = get_logger(__name__)

PARTY_CODES = {
    "MODELED REPUBLICAN": "R",
    "REPUBLICAN": "R",
    "MODELED DEMOCRAT": "D",
    "DEMOCRAT": "D",
    "MODELED INDEPENDENT/UNAFFILIATED": "I",
    "INDEPENDENT/OTHER": "I",
    "UNAFFILIATED/DTS": "U",
    "N/A": "U",
    "NA": "U",
}


def map_party(value: Any) -> str | None:
    """R / D / I / U for a known rollup label, else None."""
    if value is None:
        return None
    key = " ".join(str(value).split()).upper()
    return PARTY_CODES.get(key)


async def apply_party_mapping(store: SampleTableStore) -> dict[str, Any] | None:
    """
    Fill PARTY from RPARTYROLLUP.

    Returns counts, or None when the table has no RPARTYROLLUP column.
    """
    source = await store.find_column("RPARTYROLLUP")
    if source is None:
        return None
    await store.add_column("PARTY", ColumnType.TEXT)
    target = await store.find_column("PARTY")
    counts: dict[str, int] = {}

    def _derive(row: dict[str, Any]) -> dict[str, Any] | None:
        code = map_party(row[source])
        counts[code or "null"] = counts.get(code or "null", 0) + 1
        return {target: code} if code != row[target] else None

    updated = await transform_rows(store, [source, target], _derive)
    return {"rowsUpdated": updated, "partyCounts": counts}


class DerivePartyStep(TableStep):
    name = "derive_party"
    description = "Deriving party from RPARTYROLLUP"
    failure_message = "Failed to calculate party"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        stats = await apply_party_mapping(ctx.store)
        if stats is None:
            return self._skipped(started_at, "RPARTYROLLUP column not found")
        logger.info("Party derived", table=ctx.table_name, **stats)
        return self._success(started_at, metadata=stats)
