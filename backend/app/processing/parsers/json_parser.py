"""JSON parser: the document must be a non-empty array of objects."""

from __future__ import annotations

import json
from typing import Any

from app.processing.parsers.base import FileProcessor, ParsedFile, build_headers


class JsonParser(FileProcessor):
    extensions = (".json",)
    label = "JSON"

    def parse(self, filepath: str) -> ParsedFile:
        with open(filepath, encoding="utf-8-sig") as fh:
            data = json.load(fh)

        if not isinstance(data, list) or not data:
            raise ValueError("JSON file must contain a non-empty array of objects")
        if not all(isinstance(item, dict) for item in data):
            raise ValueError("JSON file must contain a non-empty array of objects")

        # Union of keys, first-seen order
        names: list[str] = []
        seen: set[str] = set()
        for item in data:
            for key in item:
                if key not in seen:
                    seen.add(key)
                    names.append(key)

        rows: list[dict[str, Any]] = [
            {name: _scalar(item.get(name)) for name in names} for item in data
        ]
        return ParsedFile(headers=build_headers(names, rows), rows=rows, file_type="json")


def _scalar(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value
