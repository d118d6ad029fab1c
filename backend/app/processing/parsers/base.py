"""
FileProcessor: pluggable parser interface for uploaded sample files.

Every parser turns one physical file into a ParsedFile: the raw header
names in column order (each with a detected ColumnType) and the data rows
keyed by those raw names.  Header sanitizing and mapping happen later in
``app.samples.headers``; parsers never rename columns.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from app.core.constants import ColumnType

_INT_RE = re.compile(r"^[+-]?\d+$")
_REAL_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+(\.\d*)?[eE][+-]?\d+)$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{1,2}-\d{1,2}([ T]\d{1,2}:\d{2}(:\d{2}(\.\d+)?)?)?Z?$")
_US_DATE_RE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}( \d{1,2}:\d{2}(:\d{2})?)?$")
_BOOL_WORDS = {"true", "false"}

# Anything longer overflows a 64-bit column
_MAX_INTEGER_DIGITS = 18


@dataclass
class ParsedHeader:
    """A raw column header and its detected type."""

    name: str
    type: ColumnType = ColumnType.TEXT


@dataclass
class ParsedFile:
    """Parser output for one physical file."""

    headers: list[ParsedHeader] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    file_type: str = ""


class FileProcessor(ABC):
    """Base interface for sample file parsers."""

    extensions: tuple[str, ...] = ()
    label: str = ""

    @abstractmethod
    def parse(self, filepath: str) -> ParsedFile:
        """Parse a file into headers + rows.  Raise ValueError on bad content."""
        ...

    def supports(self, extension: str) -> bool:
        """Return True if this parser handles the given extension (with dot)."""
        return extension.lower() in self.extensions


# ─── Type detection ───────────────────────────────────

def detect_type(value: Any) -> ColumnType:
    """Classify a single cell value."""
    if value is None:
        return ColumnType.TEXT
    if isinstance(value, bool):
        return ColumnType.BOOLEAN
    if isinstance(value, int):
        return ColumnType.INTEGER
    if isinstance(value, float):
        return ColumnType.REAL
    if isinstance(value, (datetime, date)):
        return ColumnType.DATE

    text = str(value).strip()
    if not text:
        return ColumnType.TEXT
    if _INT_RE.match(text):
        digits = text.lstrip("+-")
        # Leading zeros are significant (zip codes, ids)
        if (len(digits) > 1 and digits.startswith("0")) or len(digits) > _MAX_INTEGER_DIGITS:
            return ColumnType.TEXT
        return ColumnType.INTEGER
    if _REAL_RE.match(text):
        return ColumnType.REAL
    if text.lower() in _BOOL_WORDS:
        return ColumnType.BOOLEAN
    if _ISO_DATE_RE.match(text) or _US_DATE_RE.match(text):
        return ColumnType.DATE
    return ColumnType.TEXT


def build_headers(names: list[str], rows: list[dict[str, Any]]) -> list[ParsedHeader]:
    """Detect each column's type from its first non-empty value."""
    headers = []
    for name in names:
        detected = ColumnType.TEXT
        for row in rows:
            value = row.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            detected = detect_type(value)
            break
        headers.append(ParsedHeader(name=name, type=detected))
    return headers
