"""
XML parser: the first repeated element group becomes the row set.

A "group" is an element with two or more children sharing one tag.  Each
record is flattened: leaf children and attributes become columns, nested
elements contribute ``parent_child`` columns.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections import Counter
from typing import Any

from app.processing.parsers.base import FileProcessor, ParsedFile, build_headers


def _find_records(root: ET.Element) -> list[ET.Element]:
    """Breadth-first search for the first element whose children repeat."""
    queue = [root]
    while queue:
        node = queue.pop(0)
        children = list(node)
        if children:
            tag, count = Counter(child.tag for child in children).most_common(1)[0]
            if count > 1:
                return [child for child in children if child.tag == tag]
        queue.extend(children)
    # Single record document
    return list(root) or [root]


def _flatten(element: ET.Element, prefix: str = "") -> dict[str, Any]:
    record: dict[str, Any] = {}
    for key, value in element.attrib.items():
        record[f"{prefix}{key}"] = value
    children = list(element)
    if not children:
        text = (element.text or "").strip()
        if prefix or not record:
            record[prefix.rstrip("_") or element.tag] = text or None
        return record
    for child in children:
        if list(child) or child.attrib:
            record.update(_flatten(child, f"{prefix}{child.tag}_"))
        else:
            record[f"{prefix}{child.tag}"] = (child.text or "").strip() or None
    return record


class XmlParser(FileProcessor):
    extensions = (".xml",)
    label = "XML"

    def parse(self, filepath: str) -> ParsedFile:
        root = ET.parse(filepath).getroot()
        records = [_flatten(element) for element in _find_records(root)]
        if not records:
            raise ValueError("XML file contains no records")

        names: list[str] = []
        seen: set[str] = set()
        for record in records:
            for key in record:
                if key not in seen:
                    seen.add(key)
                    names.append(key)

        rows = [{name: record.get(name) for name in names} for record in records]
        return ParsedFile(headers=build_headers(names, rows), rows=rows, file_type="xml")
