"""
Excel parser: first worksheet, row 1 is the header row.

Supports both .xls (via xlrd) and .xlsx (via openpyxl) formats behind a
small adapter so the row walk is identical for both.
"""

from __future__ import annotations

import os
from typing import Any

from app.processing.parsers.base import FileProcessor, ParsedFile, build_headers


# ═══════════════════════════════════════════════════════════
#  Sheet Adapters: uniform interface over xlrd / openpyxl
# ═══════════════════════════════════════════════════════════

class XlrdSheetAdapter:
    """Adapter for xlrd sheets (0-based indexing)."""

    def __init__(self, sheet, datemode: int) -> None:
        self._s = sheet
        self._datemode = datemode
        self.nrows = sheet.nrows
        self.ncols = sheet.ncols

    def raw_value(self, r: int, c: int) -> Any:
        import xlrd

        cell = self._s.cell(r, c)
        if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK):
            return None
        if cell.ctype == xlrd.XL_CELL_DATE:
            return xlrd.xldate.xldate_as_datetime(cell.value, self._datemode)
        if cell.ctype == xlrd.XL_CELL_BOOLEAN:
            return bool(cell.value)
        if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
            return int(cell.value)
        return cell.value if cell.value != "" else None


class OpenpyxlSheetAdapter:
    """Adapter for openpyxl worksheets (converts 1-based to 0-based)."""

    def __init__(self, ws) -> None:
        self._rows = list(ws.iter_rows(values_only=True))
        self.nrows = len(self._rows)
        self.ncols = max((len(r) for r in self._rows), default=0)

    def raw_value(self, r: int, c: int) -> Any:
        row = self._rows[r]
        value = row[c] if c < len(row) else None
        if isinstance(value, str) and value == "":
            return None
        return value


def _load_sheet(path: str):
    """Load the first sheet from an XLS or XLSX file."""
    extension = os.path.splitext(path)[1].lower()

    if extension == ".xls":
        import xlrd

        workbook = xlrd.open_workbook(path)
        return XlrdSheetAdapter(workbook.sheet_by_index(0), workbook.datemode)

    if extension == ".xlsx":
        from openpyxl import load_workbook

        workbook = load_workbook(path, read_only=True, data_only=True)
        try:
            return OpenpyxlSheetAdapter(workbook.worksheets[0])
        finally:
            workbook.close()

    raise ValueError(f"Unsupported extension: {extension}")


class ExcelParser(FileProcessor):
    extensions = (".xlsx", ".xls")
    label = "Excel"

    def parse(self, filepath: str) -> ParsedFile:
        sheet = _load_sheet(filepath)
        if sheet.nrows == 0:
            raise ValueError("Worksheet is empty")

        names: list[str] = []
        for col in range(sheet.ncols):
            value = sheet.raw_value(0, col)
            names.append(str(value).strip() if value is not None else f"Column_{col + 1}")

        rows: list[dict[str, Any]] = []
        for r in range(1, sheet.nrows):
            values = [sheet.raw_value(r, c) for c in range(sheet.ncols)]
            if all(v is None for v in values):
                continue
            rows.append(dict(zip(names, values)))

        extension = os.path.splitext(filepath)[1].lower().lstrip(".")
        return ParsedFile(headers=build_headers(names, rows), rows=rows, file_type=extension)
