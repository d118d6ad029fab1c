"""
Age stages: IAGE, the two-digit age code.

    convert_age_code      AGE (or an IAGE already on file) → formatted IAGE
    fix_age_sentinel      IAGE "-1" → "00"
    age_from_birth_year   IAGE computed from a birth year, when no age was given
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from app.core.constants import ColumnType
from app.core.logging import get_logger
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.steps.base import TableStep, transform_rows
from app.samples.values import as_text, is_blank, parse_date, parse_int

logger = get_logger(__name__)

IAGE_CALCULATED = "iage_calculated"

BIRTH_YEAR_COLUMNS = ("BIRTHYEAR", "BYEAR", "YOB", "BIRTH_YEAR")
BIRTH_DATE_COLUMNS = ("DOB", "BIRTHDATE")
MIN_BIRTH_YEAR = 1900
MAX_AGE = 99


def format_age_code(age: Any) -> str:
    """``<0`` → "00", ``0-9`` → "0n", ``10-99`` → "n", ``>99`` → "99", missing → "00"."""
    value = parse_int(age)
    if value is None or value <= 0:
        return "00"
    if value > MAX_AGE:
        return "99"
    return f"{value:02d}"


def age_on(birth: date, reference: date) -> int:
    """Completed years between ``birth`` and ``reference``."""
    years = reference.year - birth.year
    if (reference.month, reference.day) < (birth.month, birth.day):
        years -= 1
    return years


class ConvertAgeCodeStep(TableStep):
    name = "convert_age_code"
    description = "Converting AGE to IAGE"
    failure_message = "Failed to convert AGE to IAGE"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        store = ctx.store
        source = await store.find_column("AGE") or await store.find_column("IAGE")
        if source is None:
            return self._skipped(started_at, "No AGE or IAGE column found")

        await store.add_column("IAGE", ColumnType.TEXT)
        target = await store.find_column("IAGE")
        columns = [source] if source == target else [source, target]

        def _convert(row: dict[str, Any]) -> dict[str, Any] | None:
            code = format_age_code(row[source])
            return {target: code} if code != row[target] else None

        updated = await transform_rows(store, columns, _convert)
        total = await store.count()
        if total:
            ctx.set_extra(IAGE_CALCULATED, True)
        logger.info("IAGE converted", table=ctx.table_name, source=source, rows_updated=updated)
        return self._success(started_at, metadata={
            "sourceColumn": source,
            "rowsUpdated": updated,
            "totalRows": total,
        })


class FixAgeSentinelStep(TableStep):
    name = "fix_age_sentinel"
    description = "Fixing IAGE values"
    failure_message = "Failed to fix IAGE values"

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        column = await ctx.store.find_column("IAGE")
        if column is None:
            return self._skipped(started_at, "IAGE column not found")
        table = await ctx.store.table()
        total = await ctx.store.count(table.c[column].isnot(None))
        fixed = await ctx.store.update_where({column: "00"}, table.c[column] == "-1")
        return self._success(started_at, metadata={"rowsUpdated": fixed, "totalIAGERows": total})


class AgeFromBirthYearStep(TableStep):
    """
    Fallback when the file carries no age: IAGE from a birth year.

    ``january`` mode ages everyone as of Jan 1 of this year (year difference);
    ``today`` mode uses the exact age when a full birth date is available.
    """

    name = "age_from_birth_year"
    description = "Calculating age from birth year"
    failure_message = "Failed to calculate age from birth year"

    def __init__(self, today: date | None = None) -> None:
        self._today = today

    async def should_skip(self, ctx: PipelineContext) -> bool:
        return bool(ctx.get_extra(IAGE_CALCULATED))

    async def apply(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        store = ctx.store
        year_col = None
        for name in BIRTH_YEAR_COLUMNS:
            year_col = await store.find_column(name)
            if year_col:
                break
        date_col = None
        for name in BIRTH_DATE_COLUMNS:
            date_col = await store.find_column(name)
            if date_col:
                break
        if year_col is None and date_col is None:
            return self._skipped(started_at, "No birth year column found")

        today = self._today or date.today()
        january = ctx.use_january_reference
        await store.add_column("IAGE", ColumnType.TEXT)
        target = await store.find_column("IAGE")
        counts = {"processed": 0, "null": 0, "invalid": 0}

        def _birth(row: dict[str, Any]) -> tuple[int | None, date | None]:
            full = parse_date(row[date_col]) if date_col and not is_blank(row[date_col]) else None
            year = parse_int(row[year_col]) if year_col else None
            if year is None and full is not None:
                year = full.year
            return year, (full.date() if full is not None else None)

        def _calculate(row: dict[str, Any]) -> dict[str, Any] | None:
            counts["processed"] += 1
            year, full = _birth(row)
            if year is None:
                counts["null"] += 1
                return None
            if not MIN_BIRTH_YEAR <= year <= today.year:
                counts["invalid"] += 1
                return None
            if not january and full is not None and full.year == year:
                age = age_on(full, today)
            else:
                age = today.year - year
            code = format_age_code(min(age, MAX_AGE))
            return {target: code} if as_text(row[target] or "") != code else None

        columns = [c for c in (year_col, date_col, target) if c]
        updated = await transform_rows(store, columns, _calculate)
        logger.info(
            "Age calculated from birth year",
            table=ctx.table_name,
            birth_year_column=year_col or date_col,
            january_reference=january,
            rows_updated=updated,
        )
        return self._success(started_at, metadata={
            "recordsProcessed": counts["processed"],
            "recordsWithNullBirthYear": counts["null"],
            "recordsWithInvalidBirthYear": counts["invalid"],
            "recordsWithValidAge": counts["processed"] - counts["null"] - counts["invalid"],
            "birthYearColumnUsed": year_col or date_col,
            "calculationBase": "january" if january else "today",
        })
