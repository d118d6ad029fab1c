"""
Delivery CSV serialization.

Files are UTF-8 with a byte-order mark, CRLF line endings and minimal
quoting (fields holding a comma, quote, CR or LF are quoted with embedded
quotes doubled).  None is written as an empty field.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Iterable

from app.samples.values import as_text


def _cell(value: Any) -> str:
    return "" if value is None else as_text(value)


def write_csv(path: Path, headers: list[str], rows: Iterable[dict[str, Any]]) -> int:
    """Write ``rows`` projected onto ``headers``.  Returns the record count."""
    count = 0
    with open(path, "w", encoding="utf-8-sig", newline="") as fh:
        writer = csv.writer(fh, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL)
        writer.writerow(headers)
        for row in rows:
            writer.writerow([_cell(row.get(h)) for h in headers])
            count += 1
    return count
