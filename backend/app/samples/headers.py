"""
HeaderNormalizer: sanitizes, maps and merges uploaded column headers.

Everything here is storage-independent and operates on ``(headers, rows)``
pairs so the row dictionaries always stay keyed by the current header
names.  The upload flow chains these functions per file, then merges.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable

from app.core.constants import (
    FILE_COLUMN,
    FILE_INDEX_COLUMN,
    SOURCE_FILE_COLUMN,
    ColumnType,
)
from app.processing.parsers import ParsedFile

_WHITESPACE_RE = re.compile(r"\s+")
_UNSAFE_COLUMN_RE = re.compile(r"[^A-Za-z0-9_]")
_MAX_COLUMN_LENGTH = 128


@dataclass
class Header:
    """A normalized column: storage name, type and where it came from."""

    name: str
    type: ColumnType = ColumnType.TEXT
    original_name: str | None = None
    is_system_constant: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": str(self.type),
            "originalName": self.original_name,
            "isSystemConstant": self.is_system_constant,
        }


Rows = list[dict[str, Any]]


# ─── Name normalization ───────────────────────────────

def sanitize(name: Any) -> str:
    """Remove all whitespace and uppercase.  Non-string or empty → ``""``."""
    if not isinstance(name, str):
        return ""
    return _WHITESPACE_RE.sub("", name).upper()


def column_name(name: str) -> str:
    """Storage-safe column identifier (keeps case)."""
    if not isinstance(name, str) or not name.strip():
        return "UNNAMED_COLUMN"
    safe = _UNSAFE_COLUMN_RE.sub("_", name.strip())
    if safe[0].isdigit():
        safe = f"COL_{safe}"
    return safe[:_MAX_COLUMN_LENGTH]


def dedupe_headers(headers: Iterable[Header]) -> list[Header]:
    """Keep the first occurrence of each name (case-insensitive)."""
    seen: set[str] = set()
    unique = []
    for header in headers:
        key = header.name.upper()
        if key in seen:
            continue
        seen.add(key)
        unique.append(header)
    return unique


def unique_names(names: Iterable[str]) -> list[str]:
    """Suffix repeated names ``_2``, ``_3`` ... (case-insensitive); order is kept."""
    taken: set[str] = set()
    out = []
    for name in names:
        candidate, suffix = name, 2
        while candidate.upper() in taken:
            candidate = f"{name}_{suffix}"
            suffix += 1
        taken.add(candidate.upper())
        out.append(candidate)
    return out


def _relabel(headers: list[Header], rows: Rows, sources: list[str | None]) -> tuple[list[Header], Rows]:
    """
    Give each header a unique name and re-key rows to match.

    ``sources[i]`` is the row key holding header i's values, or None for a
    new empty column.  A name that collides with an earlier header gets a
    numeric suffix, so no detected column is lost.
    """
    names = unique_names(h.name for h in headers)
    final = [
        Header(name=name, type=h.type, original_name=h.original_name, is_system_constant=h.is_system_constant)
        for name, h in zip(names, headers)
    ]
    pairs = list(zip(names, sources))
    out = [{name: (row.get(source) if source is not None else None) for name, source in pairs} for row in rows]
    return final, out


# ─── Per-file steps ───────────────────────────────────

def normalize_parsed(parsed: ParsedFile) -> tuple[list[Header], Rows]:
    """
    Sanitize raw parser headers and re-key rows.

    Raises:
        ValueError: a header sanitizes to an empty string.
    """
    headers: list[Header] = []
    sources: list[tuple[str, str]] = []
    for position, raw in enumerate(parsed.headers, start=1):
        clean = sanitize(raw.name)
        if not clean:
            raise ValueError(f"Column {position} has an empty header name")
        if any(clean == taken for _, taken in sources):
            continue
        sources.append((raw.name, clean))
        headers.append(Header(name=clean, type=raw.type, original_name=raw.name))

    rows = [{clean: row.get(raw) for raw, clean in sources} for row in parsed.rows]
    return headers, rows


def drop_columns(headers: list[Header], rows: Rows, names: Iterable[str]) -> tuple[list[Header], Rows]:
    """Remove user-excluded columns (case-insensitive on the sanitized name)."""
    drop = {sanitize(n) for n in names if sanitize(n)}
    if not drop:
        return headers, rows
    kept = [h for h in headers if h.name.upper() not in drop]
    keep_names = {h.name for h in kept}
    return kept, [{k: v for k, v in row.items() if k in keep_names} for row in rows]


def apply_custom_headers(
    headers: list[Header],
    rows: Rows,
    custom_names: list[str],
) -> tuple[list[Header], Rows]:
    """
    Positional override: the first N detected headers take the N custom names.

    Detected headers beyond N are kept.  Custom names beyond the detected
    count become empty TEXT columns, so the output never has fewer columns
    than either input.  A custom name equal to a detected name kept further
    along is suffixed (``LAND``, ``LAND_2``) rather than overwriting it.

    Raises:
        ValueError: a custom name sanitizes to an empty string.
    """
    cleaned = []
    for position, name in enumerate(custom_names, start=1):
        clean = sanitize(name)
        if not clean:
            raise ValueError(f"Custom header {position} is empty")
        cleaned.append(clean)

    final: list[Header] = []
    sources: list[str | None] = []
    for index, custom in enumerate(cleaned):
        if index < len(headers):
            detected = headers[index]
            final.append(Header(name=custom, type=detected.type, original_name=detected.original_name))
            sources.append(detected.name)
        else:
            final.append(Header(name=custom, type=ColumnType.TEXT, original_name=None))
            sources.append(None)

    for detected in headers[len(cleaned):]:
        final.append(Header(name=detected.name, type=detected.type, original_name=detected.original_name))
        sources.append(detected.name)

    return _relabel(final, rows, sources)


def apply_mapping(
    headers: list[Header],
    rows: Rows,
    mappings: dict[str, dict[str, Any]],
) -> tuple[list[Header], Rows, list[dict[str, str]]]:
    """
    Rename headers using resolved mapping rules.

    ``mappings`` is the output of ``resolve_mappings``: keyed by the
    sanitized original name.  Returns the renamed headers, re-keyed rows and
    a list of ``{original, mapped}`` pairs that were applied.  A target that
    collides with another header is suffixed, and the pair reports the
    suffixed name.
    """
    applied: list[dict[str, str]] = []
    renamed: list[Header] = []
    for header in headers:
        rule = mappings.get(header.name)
        target = sanitize(rule["mapped"]) if rule else ""
        if target and target != header.name:
            renamed.append(Header(name=target, type=header.type, original_name=header.original_name))
        else:
            renamed.append(header)
    final, final_rows = _relabel(renamed, rows, [h.name for h in headers])
    for header, result in zip(headers, final):
        if result.name != header.name:
            applied.append({"original": header.name, "mapped": result.name})
    return final, final_rows, applied


def stamp_file_id(rows: Rows, file_id: int) -> None:
    """Write the registered FileID onto every row of one physical file."""
    for row in rows:
        row[FILE_COLUMN] = file_id


# ─── Header mapping precedence ────────────────────────

def mapping_priority(rule_vendor: int | None, rule_client: int | None) -> int:
    """1 = vendor+client, 2 = vendor only, 3 = client only, 4 = global."""
    if rule_vendor is not None and rule_client is not None:
        return 1
    if rule_vendor is not None:
        return 2
    if rule_client is not None:
        return 3
    return 4


def resolve_mappings(
    rules: Iterable[Any],
    *,
    vendor_id: int | None,
    client_id: int | None,
    original_headers: Iterable[str],
) -> dict[str, dict[str, Any]]:
    """
    Pick the most specific applicable rule per original header.

    ``rules`` are objects with ``original_header, mapped_header, vendor_id,
    client_id`` attributes.  A rule applies when each of its scope fields is
    NULL or equal to the request's value.
    """
    wanted = {sanitize(h) for h in original_headers if sanitize(h)}
    best: dict[str, dict[str, Any]] = {}
    for rule in rules:
        key = sanitize(rule.original_header)
        if key not in wanted:
            continue
        if rule.vendor_id is not None and rule.vendor_id != vendor_id:
            continue
        if rule.client_id is not None and rule.client_id != client_id:
            continue
        priority = mapping_priority(rule.vendor_id, rule.client_id)
        current = best.get(key)
        if current is None or priority < current["priority"]:
            best[key] = {
                "original": key,
                "mapped": sanitize(rule.mapped_header),
                "vendorId": rule.vendor_id,
                "clientId": rule.client_id,
                "priority": priority,
            }
    return best


# ─── Multi-file merge ─────────────────────────────────

@dataclass
class NormalizedFile:
    """One physical file after normalization."""

    filename: str
    file_id: int
    file_type: str
    headers: list[Header]
    rows: Rows


def merge_files(files: list[NormalizedFile]) -> tuple[list[Header], Rows]:
    """
    Merge normalized files into one header list and row set.

    First header occurrence wins.  With more than one file, rows are tagged
    with the source filename and 1-based file index.  FILE, and for
    multi-file uploads the two tracking columns, are appended last.
    """
    multi = len(files) > 1
    headers: list[Header] = []
    rows: Rows = []
    for index, item in enumerate(files, start=1):
        headers.extend(item.headers)
        for row in item.rows:
            if multi:
                row[SOURCE_FILE_COLUMN] = item.filename
                row[FILE_INDEX_COLUMN] = index
            rows.append(row)

    headers = [h for h in dedupe_headers(headers) if h.name not in (FILE_COLUMN, SOURCE_FILE_COLUMN, FILE_INDEX_COLUMN)]
    headers.append(Header(name=FILE_COLUMN, type=ColumnType.INTEGER, original_name=FILE_COLUMN))
    if multi:
        headers.append(Header(name=SOURCE_FILE_COLUMN, type=ColumnType.TEXT, original_name=SOURCE_FILE_COLUMN))
        headers.append(Header(name=FILE_INDEX_COLUMN, type=ColumnType.INTEGER, original_name=FILE_INDEX_COLUMN))
    return headers, rows
