"""FormatPhoneNumbersStep: reduce phone columns to bare 10-digit numbers."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from app.core.logging import get_logger
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.values import as_text

logger = get_logger(__name__)

PHONE_COLUMNS = ("PHONE", "LAND", "CELL")

_NON_DIGIT_RE = re.compile(r"\D")


def format_phone(value: Any) -> str | None:
    """Last 10 digits of ``value``; None when fewer than 10 digits remain."""
    if value is None:
        return None
    digits = _NON_DIGIT_RE.sub("", as_text(value))
    if len(digits) < 10:
        return None
    return digits[-10:]


class FormatPhoneNumbersStep(TableStep):
    """Normalize PHONE / LAND / CELL."""

    name = "format_phone_numbers"
    description = "Formatting phone numbers"
    critical = True
    failure_message = "Failed to format phone numbers"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        columns = [c for c in [await ctx.store.find_column(n) for n in PHONE_COLUMNS] if c]
        if not columns:
            return self._skipped(started_at, "No phone columns found")

        def _format(row: dict[str, Any]) -> dict[str, Any] | None:
            changes = {}
            for column in columns:
                formatted = format_phone(row[column])
                if formatted != row[column]:
                    changes[column] = formatted
            return changes or None

        updated = await transform_rows(ctx.store, columns, _format)
        logger.info("Phone numbers formatted", table=ctx.table_name, columns=columns, rows_updated=updated)
        return self._success(started_at, metadata={"columns": columns, "rowsUpdated": updated})
