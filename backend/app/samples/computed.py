"""
Computed variables: user-defined columns derived from rule lists.

A definition is an ordered list of rules.  Each rule holds conditions
joined by AND or OR and an output value; the first matching rule wins and
rows matching none receive the default.  The rules compile to one
SQLAlchemy ``case()`` expression, so values are always bound parameters.
"""

from __future__ import annotations

import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import Unicode, and_, case, cast, literal, null, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from app.core.constants import ColumnType
from app.core.logging import get_logger
from app.pipeline.errors import ValidationError
from app.samples.store import ROW_ID, SampleTableStore, logical_type
from app.samples.tables import open_table
from app.samples.values import convert_value, parse_int

logger = get_logger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")

OUTPUT_TYPES = {
    "INT": ColumnType.INTEGER,
    "TEXT": ColumnType.TEXT,
    "CHAR": ColumnType.TEXT,
    "VARCHAR": ColumnType.TEXT,
}
PREVIEW_ROWS = 10


@dataclass
class Condition:
    variable: str
    operator: str
    value: Any = None


@dataclass
class Rule:
    conditions: list[Condition] = field(default_factory=list)
    output_value: Any = None
    condition_logic: str = "AND"


@dataclass
class ComputedVariable:
    name: str
    output_type: str = "TEXT"
    rules: list[Rule] = field(default_factory=list)
    default_value: Any = None
    output_length: int | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ComputedVariable":
        rules = [
            Rule(
                conditions=[
                    Condition(
                        variable=c.get("variable", ""),
                        operator=c.get("operator", ""),
                        value=c.get("value"),
                    )
                    for c in rule.get("conditions") or []
                ],
                output_value=rule.get("outputValue"),
                condition_logic=(rule.get("conditionLogic") or "AND").upper(),
            )
            for rule in payload.get("rules") or []
        ]
        return cls(
            name=payload.get("name") or "",
            output_type=(payload.get("outputType") or "TEXT").upper(),
            rules=rules,
            default_value=payload.get("defaultValue"),
            output_length=payload.get("outputLength"),
        )

    @property
    def column_type(self) -> ColumnType:
        return OUTPUT_TYPES[self.output_type]

    def validate(self) -> None:
        if not _NAME_RE.match(self.name):
            raise ValidationError(
                "Variable name must start with a letter and contain only letters, digits and underscores"
            )
        if self.output_type not in OUTPUT_TYPES:
            raise ValidationError(f"Unsupported output type: {self.output_type}")
        for rule in self.rules:
            if rule.condition_logic not in ("AND", "OR"):
                raise ValidationError(f"Unsupported condition logic: {rule.condition_logic}")
            for condition in rule.conditions:
                if condition.operator not in OPERATORS:
                    raise ValidationError(f"Unknown operator: {condition.operator}")

    def output(self, value: Any) -> Any:
        """Coerce a rule output or the default to the column's type."""
        if value is None or value == "":
            return None
        if self.column_type == ColumnType.INTEGER:
            number = parse_int(value)
            if number is None:
                raise ValidationError(f"Output value {value!r} is not an integer")
            return number
        return str(value)


# ─── Condition compilation ────────────────────────────

def _as_text(column: ColumnElement, is_text: bool) -> ColumnElement:
    return column if is_text else cast(column, Unicode)


def _is_empty(column: ColumnElement, is_text: bool) -> ColumnElement:
    if is_text:
        return or_(column.is_(None), column == "")
    return column.is_(None)


def _is_not_empty(column: ColumnElement, is_text: bool) -> ColumnElement:
    if is_text:
        return and_(column.isnot(None), column != "")
    return column.isnot(None)


OPERATORS: dict[str, Callable[[ColumnElement, Any, bool], ColumnElement]] = {
    "equals": lambda c, v, t: c == v,
    "not_equals": lambda c, v, t: c != v,
    "contains": lambda c, v, t: _as_text(c, t).contains(str(v), autoescape=True),
    "starts_with": lambda c, v, t: _as_text(c, t).startswith(str(v), autoescape=True),
    "ends_with": lambda c, v, t: _as_text(c, t).endswith(str(v), autoescape=True),
    "greater_than": lambda c, v, t: c > v,
    "less_than": lambda c, v, t: c < v,
    "greater_equal": lambda c, v, t: c >= v,
    "less_equal": lambda c, v, t: c <= v,
    "is_empty": lambda c, v, t: _is_empty(c, t),
    "is_not_empty": lambda c, v, t: _is_not_empty(c, t),
}

_TEXT_OPERATORS = {"contains", "starts_with", "ends_with", "is_empty", "is_not_empty"}


async def _condition_sql(store: SampleTableStore, condition: Condition) -> tuple[str, ColumnElement]:
    stored = await store.find_column(condition.variable or "")
    if stored is None:
        raise ValidationError(f"Unknown variable: {condition.variable}")
    table = await store.table()
    column = table.c[stored]
    column_type = logical_type(column.type)
    is_text = column_type == ColumnType.TEXT

    value = condition.value
    if condition.operator not in _TEXT_OPERATORS:
        value = convert_value(value, column_type)
        if value is None:
            raise ValidationError(f"Value {condition.value!r} does not fit column {stored}")
    return stored, OPERATORS[condition.operator](column, value, is_text)


async def build_expression(store: SampleTableStore, definition: ComputedVariable) -> tuple[ColumnElement, list[str]]:
    """Compile ``definition``; returns the expression and the columns it reads."""
    definition.validate()
    used: list[str] = []
    whens = []
    for rule in definition.rules:
        if not rule.conditions:
            continue
        clauses = []
        for condition in rule.conditions:
            stored, clause = await _condition_sql(store, condition)
            if stored not in used:
                used.append(stored)
            clauses.append(clause)
        joined = and_(*clauses) if rule.condition_logic == "AND" else or_(*clauses)
        whens.append((joined, _bound(definition.output(rule.output_value))))

    default = _bound(definition.output(definition.default_value))
    if not whens:
        return default, used
    return case(*whens, else_=default), used


def _bound(value: Any) -> ColumnElement:
    return null() if value is None else literal(value)


# ─── Operations ───────────────────────────────────────

async def preview_computed_variable(db: AsyncSession, table_name: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Evaluate a definition over the first rows without changing the table."""
    store = await open_table(db, table_name)
    definition = ComputedVariable.from_dict(payload)
    try:
        expression, used = await build_expression(store, definition)
        table = await store.table()
        stmt = (
            select(*(table.c[n] for n in used), expression.label(definition.name))
            .order_by(table.c[ROW_ID])
            .limit(PREVIEW_ROWS)
        )
        rows = [dict(row._mapping) for row in await db.execute(stmt)]
    except (ValidationError, SQLAlchemyError) as exc:
        logger.warning("Computed variable preview failed", table=table_name, error=str(exc))
        await db.rollback()
        store.invalidate()
        return {"success": False, "sampleData": [], "estimatedLength": 0, "columnName": definition.name, "errors": [str(exc)]}

    longest = max((len(str(r[definition.name])) for r in rows if r[definition.name] is not None), default=0)
    return {
        "success": True,
        "sampleData": rows,
        "estimatedLength": max(10, math.ceil(longest * 1.2)),
        "columnName": definition.name,
        "errors": [],
    }


async def add_computed_variable(db: AsyncSession, table_name: str, payload: dict[str, Any]) -> dict[str, Any]:
    started = time.monotonic()
    store = await open_table(db, table_name)
    definition = ComputedVariable.from_dict(payload)
    definition.validate()
    if await store.has_column(definition.name):
        raise ValidationError(f"Variable '{definition.name}' already exists in the table")

    # Compile once up front so a bad definition fails before the ALTER
    await build_expression(store, definition)
    try:
        await store.add_column(definition.name, definition.column_type)
        expression, _ = await build_expression(store, definition)
        rows_updated = await store.update_where({definition.name: expression})
        await db.commit()
    except Exception:
        await db.rollback()
        store.invalidate()
        raise

    logger.info("Computed variable added", table=table_name, column=definition.name, rows=rows_updated)
    return {
        "success": True,
        "message": f"Variable '{definition.name}' created successfully",
        "newColumnName": definition.name,
        "rowsUpdated": rows_updated,
        "executionTimeMs": int((time.monotonic() - started) * 1000),
    }


async def remove_computed_variable(db: AsyncSession, table_name: str, column: str) -> dict[str, Any]:
    store = await open_table(db, table_name)
    if not await store.drop_column(column):
        return {
            "success": True,
            "message": f"Column '{column}' does not exist (already removed)",
            "columnName": column,
        }
    await db.commit()
    logger.info("Computed variable removed", table=table_name, column=column)
    return {"success": True, "message": f"Variable '{column}' removed successfully", "columnName": column}
