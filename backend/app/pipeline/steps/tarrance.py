"""
Tarrance-only stages.

Tarrance delivers a single PHONE column with a WPHONE indicator instead of
separate landline/cell columns, and a region code that loses its leading zero.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from app.core.constants import ColumnType
from app.core.logging import get_logger
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.values import as_text, is_blank

logger = get_logger(__name__)


def zero_pad(value: Any, width: int) -> str | None:
    """Left-pad a numeric code with zeros; non-numeric values are returned as text."""
    if is_blank(value):
        return None
    text = as_text(value).strip()
    return text.zfill(width) if text.isdigit() else text


class RouteTarrancePhonesStep(TableStep):
    """WPHONE='Y' → PHONE into CELL, 'N' → PHONE into LAND (empty slots only)."""

    name = "route_tarrance_phones"
    description = "Routing Tarrance phone numbers"
    failure_message = "Failed to route Tarrance phones"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        store = ctx.store
        phone = await store.find_column("PHONE")
        indicator = await store.find_column("WPHONE")
        if phone is None or indicator is None:
            return self._skipped(started_at, "PHONE or WPHONE column not found")

        await store.add_column("LAND", ColumnType.TEXT)
        await store.add_column("CELL", ColumnType.TEXT)
        land = await store.find_column("LAND")
        cell = await store.find_column("CELL")
        counts = {"land": 0, "cell": 0}

        def _route(row: dict[str, Any]) -> dict[str, Any] | None:
            number = row[phone]
            if is_blank(number):
                return None
            flag = as_text(row[indicator]).strip().upper() if row[indicator] is not None else ""
            if flag == "Y" and is_blank(row[cell]):
                counts["cell"] += 1
                return {cell: number}
            if flag == "N" and is_blank(row[land]):
                counts["land"] += 1
                return {land: number}
            return None

        routed = await transform_rows(store, [phone, indicator, land, cell], _route)
        logger.info(
            "Tarrance phones routed",
            table=ctx.table_name,
            landline=counts["land"],
            cell=counts["cell"],
        )
        return self._success(started_at, metadata={
            "landlineCount": counts["land"],
            "cellCount": counts["cell"],
            "totalRouted": routed,
        })


class PadTarranceRegionStep(TableStep):
    name = "pad_tarrance_region"
    description = "Padding Tarrance region codes"
    failure_message = "Failed to pad Tarrance REGN"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        column = await ctx.store.find_column("REGN")
        if column is None:
            return self._skipped(started_at, "REGN column not found")

        def _pad(row: dict[str, Any]) -> dict[str, Any] | None:
            padded = zero_pad(row[column], 2)
            return {column: padded} if padded != row[column] else None

        padded = await transform_rows(ctx.store, [column], _pad)
        return self._success(started_at, metadata={"recordsPadded": padded})
