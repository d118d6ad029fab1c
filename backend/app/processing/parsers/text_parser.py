"""Plain-text parser: one row per non-empty line."""

from __future__ import annotations

from app.core.constants import ColumnType
from app.processing.parsers.base import FileProcessor, ParsedFile, ParsedHeader


class TextParser(FileProcessor):
    extensions = (".txt",)
    label = "Text"

    def parse(self, filepath: str) -> ParsedFile:
        with open(filepath, encoding="utf-8-sig") as fh:
            lines = [line.rstrip("\r\n") for line in fh]

        rows = [
            {"line_number": index, "content": line}
            for index, line in enumerate(lines, start=1)
            if line.strip()
        ]
        if not rows:
            raise ValueError("Text file is empty")

        headers = [
            ParsedHeader(name="line_number", type=ColumnType.INTEGER),
            ParsedHeader(name="content", type=ColumnType.TEXT),
        ]
        return ParsedFile(headers=headers, rows=rows, file_type="txt")
