"""
VariableFilter: applies global exclusions and per-project inclusions.

An excluded column is dropped unless the project has an inclusion for it,
in which case it is kept under the inclusion's mapped name.  The tracking
columns FILE, _source_file and _file_index are never excluded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.core.constants import PROTECTED_COLUMNS
from app.samples.headers import Header, Rows, sanitize


@dataclass
class FilterResult:
    headers: list[Header]
    rows: Rows
    excluded_count: int = 0
    excluded_names: list[str] = field(default_factory=list)
    renamed: dict[str, str] = field(default_factory=dict)

    def summary(self) -> dict[str, Any]:
        return {
            "excludedCount": self.excluded_count,
            "excludedNames": self.excluded_names,
            "renamed": self.renamed,
        }


def filter_variables(
    headers: list[Header],
    rows: Rows,
    excluded: set[str],
    inclusions: dict[str, str] | None = None,
) -> FilterResult:
    """
    Filter headers and re-project rows.

    Args:
        excluded: uppercase variable names to drop.
        inclusions: uppercase excluded name → replacement column name.
    """
    inclusions = inclusions or {}
    taken = {h.name.upper() for h in headers if h.name in PROTECTED_COLUMNS or h.name.upper() not in excluded}
    kept: list[Header] = []
    sources: dict[str, str] = {}
    rename: dict[str, str] = {}
    dropped: list[str] = []

    for header in headers:
        key = header.name.upper()
        if header.name in PROTECTED_COLUMNS or key not in excluded:
            sources[header.name] = header.name
            kept.append(header)
            continue
        replacement = sanitize(inclusions.get(key, ""))
        # A replacement already present in the file cannot be kept alongside it
        if not replacement or replacement.upper() in taken:
            dropped.append(header.name)
            continue
        taken.add(replacement.upper())
        rename[header.name] = replacement
        sources[replacement] = header.name
        kept.append(Header(
            name=replacement,
            type=header.type,
            original_name=header.original_name or header.name,
            is_system_constant=header.is_system_constant,
        ))

    if not dropped and not rename:
        return FilterResult(headers=headers, rows=rows)

    projected = [{name: row.get(src) for name, src in sources.items()} for row in rows]
    return FilterResult(
        headers=kept,
        rows=projected,
        excluded_count=len(dropped),
        excluded_names=dropped,
        renamed=rename,
    )


def partition_headers(names: list[str], excluded: set[str]) -> tuple[list[str], list[str]]:
    """Split detected header names into (kept, excluded) for header detection."""
    kept, dropped = [], []
    for name in names:
        if name not in PROTECTED_COLUMNS and name.upper() in excluded:
            dropped.append(name)
        else:
            kept.append(name)
    return kept, dropped
