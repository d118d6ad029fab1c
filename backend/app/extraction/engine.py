"""
ExtractionEngine: produces delivery files from a processed sample table.

    1. Resolve the column selection (+ SOURCE, BATCH, VTYPE, $N, VFREQ*)
    2. Set VTYPE (age threshold / WPHONE split, or one type for all rows)
    3. Fill $N, the number to dial for each row
    4. Optional householding → rank-2..4 duplicate files
    5. Split into {T}_LANDLINE / {T}_CELL, or keep the single table
    6. Stratify into batches and write CSV files

The whole request is one unit: on any failure the database changes are
rolled back, the request's files are removed and ExtractionError is raised.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    HOUSEHOLD_MAX_RANK,
    HOUSEHOLD_RANK_BASES,
    NUMBER_COLUMN,
    TARRANCE_CLIENT_ID,
    ColumnType,
    SampleFileType,
    SplitMode,
)
from app.core.logging import get_logger
from app.extraction.csv_writer import write_csv
from app.extraction.householding import duplicate_table_name, process_householding, rank_column
from app.extraction.stratify import BATCH_COLUMN, stratify_table
from app.extraction.workspace import ExtractionWorkspace
from app.pipeline.errors import ExtractionError
from app.pipeline.steps.derive_party import apply_party_mapping
from app.samples.store import ROW_ID, SampleTableStore
from app.samples.values import as_text, parse_int

logger = get_logger(__name__)

DOWNLOAD_URL = "/api/v1/sample-automation/download/{filename}"

VTYPE_LANDLINE = 1
VTYPE_CELL = 2

_FILENAME_RE = re.compile(r"^[A-Za-z0-9_.\-]+$")


@dataclass
class ExtractionRequest:
    table_name: str
    selected_headers: list[str]
    split_mode: str = SplitMode.ALL
    selected_age_range: int | None = None
    householding_enabled: bool = False
    file_type: str | None = None
    file_names: dict[str, str] = field(default_factory=dict)
    client_id: int | None = None

    @property
    def is_split(self) -> bool:
        return self.split_mode == SplitMode.SPLIT

    @property
    def is_tarrance(self) -> bool:
        return self.client_id == TARRANCE_CLIENT_ID


# ─── Row rules ────────────────────────────────────────

def split_vtype(source: Any, age_range: Any, threshold: int | None) -> int:
    """Landline for landline-only or older dual-phone rows; cell otherwise."""
    code = parse_int(source)
    if code == 1:
        return VTYPE_LANDLINE
    if code == 2:
        return VTYPE_CELL
    bracket = parse_int(age_range)
    if code == 3 and bracket is not None and threshold is not None:
        return VTYPE_LANDLINE if bracket >= threshold else VTYPE_CELL
    return VTYPE_LANDLINE


def tarrance_vtype(indicator: Any) -> int:
    flag = as_text(indicator).strip().upper() if indicator is not None else ""
    return VTYPE_CELL if flag == "Y" else VTYPE_LANDLINE


def dial_number(
    row: dict[str, Any],
    *,
    land: str | None,
    cell: str | None,
    vtype: str | None,
    indicator: str | None,
    tarrance: bool,
    file_type: str | None,
) -> Any:
    """The $N value for one row."""
    land_value = row[land] if land else None
    cell_value = row[cell] if cell else None
    if tarrance:
        flag = as_text(row[indicator]).strip().upper() if row[indicator] is not None else ""
        return cell_value if flag == "Y" else land_value if flag == "N" else None
    if file_type == SampleFileType.LANDLINE:
        return land_value
    if file_type == SampleFileType.CELL:
        return cell_value
    code = parse_int(row[vtype]) if vtype else None
    if code == VTYPE_LANDLINE:
        return land_value
    if code == VTYPE_CELL:
        return cell_value
    return None


def single_file_name(name: str, file_type: str | None) -> str:
    """``SAMP_x`` → ``LSAM_x`` / ``CSAM_x`` unless already prefixed."""
    if name.startswith(("LSAM_", "CSAM_")):
        return name
    prefix = "CSAM" if file_type == SampleFileType.CELL else "LSAM"
    return re.sub(r"^SAMP_", f"{prefix}_", name)


def _checked_name(name: str | None, label: str) -> str:
    if not name or not _FILENAME_RE.match(name):
        raise ValueError(f"Invalid {label} file name: {name!r}")
    return name


class ExtractionEngine:
    def __init__(self, workspace: ExtractionWorkspace, *, batch_count: int | None = None) -> None:
        self.workspace = workspace
        self.batch_count = batch_count or settings.STRATIFY_BATCH_COUNT

    async def extract(self, db: AsyncSession, request: ExtractionRequest, *, identity: str | None) -> dict[str, Any]:
        """
        Run one extraction request.

        Raises:
            ExtractionError: anything failed; no files from this request remain.
        """
        log = logger.bind(table=request.table_name, split_mode=request.split_mode, identity=identity)
        log.info("Extraction started", householding=request.householding_enabled)
        try:
            async with self.workspace.request(identity) as out_dir:
                result = await self._run(db, request, out_dir)
                await db.commit()
        except Exception as exc:
            await db.rollback()
            log.exception("Extraction failed", error=str(exc))
            raise ExtractionError(
                f"Failed to extract files: {exc}",
                step_name="extract",
                details={"tableName": request.table_name},
            ) from exc
        log.info("Extraction finished", files=list(result["files"]))
        return result

    # ─── Orchestration ─────────────────────────────────

    async def _run(self, db: AsyncSession, request: ExtractionRequest, out_dir: Path) -> dict[str, Any]:
        store = SampleTableStore(db, request.table_name)
        if not await store.exists():
            raise ValueError(f"Table {request.table_name} not found")

        headers = await self._selection(store, request.selected_headers)
        vtype_stats = await self._set_vtype(store, request)
        await self._set_dial_number(store, request)

        files: dict[str, dict[str, Any]] = {}
        householding_stats = None
        if request.householding_enabled:
            try:
                householding_stats, duplicate_files = await self._household(store, headers, out_dir)
            except Exception as exc:
                raise RuntimeError(f"Householding process failed: {exc}") from exc
            files.update(duplicate_files)

        split_tables = None
        if request.is_split:
            split_tables = await self._split(store, request, headers, out_dir, files)
            message = "Split extraction complete"
        else:
            await stratify_table(store, batch_count=self.batch_count)
            name = _checked_name(single_file_name(request.file_names.get("single") or "", request.file_type), "single")
            records = await self._write(store, headers, out_dir / f"{name}.csv")
            kind = "Cell" if request.file_type == SampleFileType.CELL else "Landline"
            files["single"] = self._descriptor(f"{name}.csv", records, headers, conditions=[f"File type: {kind}"])
            message = f"Extraction complete: {records} total records"

        return {
            "success": True,
            "message": message,
            "splitMode": request.split_mode,
            "files": files,
            "vtypeStats": vtype_stats,
            "householdingStats": householding_stats,
            "splitTableNames": split_tables,
        }

    async def _selection(self, store: SampleTableStore, selected: list[str]) -> list[str]:
        headers: list[str] = []
        for name in selected:
            stored = await store.find_column(name)
            if stored is None:
                raise ValueError(f"Column {name} not found in {store.table_name}")
            if stored not in headers:
                headers.append(stored)

        for name, column_type in (
            ("SOURCE", ColumnType.INTEGER),
            (BATCH_COLUMN, ColumnType.INTEGER),
            ("VTYPE", ColumnType.INTEGER),
            (NUMBER_COLUMN, ColumnType.TEXT),
        ):
            await store.add_column(name, column_type)
            stored = await store.find_column(name)
            if stored not in headers:
                headers.append(stored)
        for name in ("VFREQGEN", "VFREQPR"):
            stored = await store.find_column(name)
            if stored and stored not in headers:
                headers.append(stored)
        return headers

    async def _set_vtype(self, store: SampleTableStore, request: ExtractionRequest) -> dict[str, Any]:
        vtype = await store.find_column("VTYPE")
        if not request.is_split:
            value = VTYPE_CELL if request.file_type == SampleFileType.CELL else VTYPE_LANDLINE
            updated = await store.update_where({vtype: value})
            return {"method": "all", "vtype": value, "rowsUpdated": updated}

        if request.is_tarrance:
            indicator = await store.find_column("WPHONE")
            if indicator is None:
                raise ValueError("WPHONE column not found in table for Tarrance client split")
            rows = await store.fetch([indicator], include_row_id=True)
            updates = [{ROW_ID: r[ROW_ID], vtype: tarrance_vtype(r[indicator])} for r in rows]
            method = "WPHONE"
        else:
            source = await store.find_column("SOURCE")
            age_range = await store.find_column("AGERANGE")
            columns = [c for c in (source, age_range) if c]
            rows = await store.fetch(columns, include_row_id=True)
            updates = [
                {
                    ROW_ID: r[ROW_ID],
                    vtype: split_vtype(r[source], r[age_range] if age_range else None, request.selected_age_range),
                }
                for r in rows
            ]
            method = "AGERANGE"
        await store.update_rows(updates)
        landline = sum(1 for u in updates if u[vtype] == VTYPE_LANDLINE)
        return {
            "method": method,
            "landlineCount": landline,
            "cellCount": len(updates) - landline,
            "ageThreshold": request.selected_age_range,
        }

    async def _set_dial_number(self, store: SampleTableStore, request: ExtractionRequest) -> None:
        land = await store.find_column("LAND")
        cell = await store.find_column("CELL")
        vtype = await store.find_column("VTYPE")
        indicator = await store.find_column("WPHONE")
        number = await store.find_column(NUMBER_COLUMN)
        if request.is_tarrance and indicator is None:
            raise ValueError(f"WPHONE column not found in {store.table_name} for Tarrance client")

        file_type = None if request.is_split else request.file_type
        columns = [c for c in (land, cell, vtype, indicator) if c]
        rows = await store.fetch(columns, include_row_id=True)
        await store.update_rows([
            {
                ROW_ID: row[ROW_ID],
                number: dial_number(
                    row,
                    land=land,
                    cell=cell,
                    vtype=vtype,
                    indicator=indicator,
                    tarrance=request.is_tarrance,
                    file_type=file_type,
                ),
            }
            for row in rows
        ])

    async def _household(
        self,
        store: SampleTableStore,
        headers: list[str],
        out_dir: Path,
    ) -> tuple[dict[str, Any], dict[str, dict[str, Any]]]:
        if await store.has_column("RPARTYROLLUP") and not await store.has_column("PARTY"):
            await apply_party_mapping(store)

        stats = await process_householding(store)

        for rank in range(2, HOUSEHOLD_MAX_RANK + 1):
            for base in HOUSEHOLD_RANK_BASES:
                stored = await store.find_column(rank_column(base, rank))
                if stored and stored not in headers:
                    headers.append(stored)

        duplicate_headers = [h for h in headers if h != BATCH_COLUMN]
        files: dict[str, dict[str, Any]] = {}
        for rank in range(2, HOUSEHOLD_MAX_RANK + 1):
            duplicate = SampleTableStore(store.db, duplicate_table_name(store.table_name, rank))
            if not await duplicate.exists() or not await duplicate.count():
                continue
            filename = f"{store.table_name}_duplicate{rank}.csv"
            records = await self._write(duplicate, duplicate_headers, out_dir / filename)
            files[f"duplicate{rank}"] = {
                **self._descriptor(filename, records, duplicate_headers),
                "rank": rank,
                "description": f"Rank {rank} household members",
            }
        return stats, files

    async def _split(
        self,
        store: SampleTableStore,
        request: ExtractionRequest,
        headers: list[str],
        out_dir: Path,
        files: dict[str, dict[str, Any]],
    ) -> dict[str, str]:
        table = await store.table()
        vtype = table.c[await store.find_column("VTYPE")]
        names = {
            "landline": f"{store.table_name}_LANDLINE",
            "cell": f"{store.table_name}_CELL",
        }
        for kind, value, file_headers in (
            ("landline", VTYPE_LANDLINE, [h for h in headers if h != BATCH_COLUMN]),
            ("cell", VTYPE_CELL, headers),
        ):
            filename = f"{_checked_name(request.file_names.get(kind), kind)}.csv"
            existing = SampleTableStore(store.db, names[kind])
            if await existing.exists():
                await existing.drop()
            derived = await store.copy_to(names[kind], where=vtype == value)
            await stratify_table(derived, batch_count=self.batch_count)
            records = await self._write(derived, file_headers, out_dir / filename)
            files[kind] = self._descriptor(
                filename,
                records,
                file_headers,
                conditions=[f"Extracted from table: {names[kind]}"],
            )
        return names

    # ─── Output ────────────────────────────────────────

    async def _write(self, store: SampleTableStore, headers: list[str], path: Path) -> int:
        rows = await store.fetch(headers)
        return await asyncio.to_thread(write_csv, path, headers, rows)

    @staticmethod
    def _descriptor(
        filename: str,
        records: int,
        headers: list[str],
        conditions: list[str] | None = None,
    ) -> dict[str, Any]:
        descriptor = {
            "filename": filename,
            "url": DOWNLOAD_URL.format(filename=filename),
            "records": records,
            "headers": list(headers),
        }
        if conditions is not None:
            descriptor["conditions"] = conditions
        return descriptor
