"""
Cell value helpers shared by the materializer and the pipeline stages.

Kept free of database and pipeline imports so any layer can use them.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any

from app.core.constants import ColumnType

TEXT_LENGTH = 500

_TRUTHY = {"true", "1", "yes", "y", "t"}
_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%y",
    "%Y%m%d",
)
_INT64_MAX = 2**63 - 1


def parse_date(value: Any) -> datetime | None:
    """Parse ISO, US (M/D/YYYY) or compact (YYYYMMDD) dates; None if unparsable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1]
    if not text.isdigit():
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def parse_int(value: Any) -> int | None:
    """Lenient integer parse (``"42"``, ``42.0``, ``" 7 "``); None otherwise."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(number)


def as_text(value: Any) -> str:
    """Render a cell for a text column."""
    if isinstance(value, datetime):
        if value.time() == datetime.min.time():
            return value.strftime("%Y-%m-%d")
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def convert_value(value: Any, column_type: ColumnType | str) -> Any:
    """
    Coerce a raw cell to its column type.

    Unparsable numbers and dates become None instead of failing the row.
    """
    if value is None or (isinstance(value, str) and value == ""):
        return None

    kind = str(column_type).upper()
    if kind == ColumnType.INTEGER:
        try:
            number = int(value) if isinstance(value, (int, bool)) else int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            return None
        return number if -_INT64_MAX <= number <= _INT64_MAX else None

    if kind in (ColumnType.REAL, "FLOAT"):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return None if math.isnan(number) or math.isinf(number) else number

    if kind == ColumnType.BOOLEAN:
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUTHY

    if kind in (ColumnType.DATE, "DATETIME"):
        parsed = parse_date(value)
        if parsed is None or not 1 <= parsed.year <= 9999:
            return None
        return parsed.replace(tzinfo=None)

    return as_text(value)[:TEXT_LENGTH]
