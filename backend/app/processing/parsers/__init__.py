"""
Parser registry: maps file extensions to FileProcessor instances.
"""

from __future__ import annotations

import os

from app.processing.parsers.base import FileProcessor, ParsedFile, ParsedHeader, detect_type
from app.processing.parsers.csv_parser import CsvParser
from app.processing.parsers.excel_parser import ExcelParser
from app.processing.parsers.json_parser import JsonParser
from app.processing.parsers.text_parser import TextParser
from app.processing.parsers.xml_parser import XmlParser

PARSERS: list[FileProcessor] = [
    CsvParser(),
    ExcelParser(),
    JsonParser(),
    TextParser(),
    XmlParser(),
]


def supported_extensions() -> list[str]:
    """All extensions (with dot) accepted for upload."""
    return [ext for parser in PARSERS for ext in parser.extensions]


def get_parser(filename: str) -> FileProcessor | None:
    """Return the parser for a filename, or None if unsupported."""
    extension = os.path.splitext(filename)[1].lower()
    for parser in PARSERS:
        if parser.supports(extension):
            return parser
    return None


def describe_supported_types() -> list[dict[str, object]]:
    """Registry listing for the supported-file-types endpoint."""
    return [
        {"label": parser.label, "extensions": list(parser.extensions)}
        for parser in PARSERS
    ]


__all__ = [
    "FileProcessor",
    "ParsedFile",
    "ParsedHeader",
    "detect_type",
    "get_parser",
    "supported_extensions",
    "describe_supported_types",
]
