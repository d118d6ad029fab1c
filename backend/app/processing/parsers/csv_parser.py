"""Delimited text (CSV) parser."""

from __future__ import annotations

import pandas as pd

from app.processing.parsers.base import FileProcessor, ParsedFile, build_headers


class CsvParser(FileProcessor):
    extensions = (".csv",)
    label = "CSV"

    def parse(self, filepath: str) -> ParsedFile:
        # Keep every cell as the literal string; typing is decided later
        frame = pd.read_csv(
            filepath,
            dtype=str,
            keep_default_na=False,
            encoding="utf-8-sig",
            skipinitialspace=False,
        )
        names = [str(c) for c in frame.columns]
        frame.columns = names
        rows = [
            {name: (value if value != "" else None) for name, value in record.items()}
            for record in frame.to_dict(orient="records")
        ]
        return ParsedFile(headers=build_headers(names, rows), rows=rows, file_type="csv")
