"""
Upload orchestration: from staged files to a post-processed sample table.

    1. Validate the request and parse every file (no side effects yet)
    2. Register a FileID per physical file for the project
    3. Normalize headers per file: user exclusions, custom headers or the
       stored header mappings, FILE stamp
    4. Merge, apply variable exclusions / project inclusions
    5. Materialize the table and record its name on the file registrations
    6. Run the post-processing stages, publishing progress
    7. Bind caller IDs when the gateway says the caller is authenticated

Staged files are removed on every path.
"""

from __future__ import annotations

import asyncio
import functools
import json
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.callid.client import CallIDAssignmentClient, GatewayIdentity
from app.core.config import settings
from app.core.logging import get_logger
from app.core.progress import ProgressNotifier
from app.pipeline.engine import PipelineEngine
from app.pipeline.errors import CriticalStageError, MaterializationError, ValidationError
from app.processing.parsers import ParsedFile, get_parser, supported_extensions
from app.repositories import header_mappings as mapping_repo
from app.repositories import project_files as file_repo
from app.repositories import variables as variable_repo
from app.samples.headers import (
    NormalizedFile,
    apply_custom_headers,
    apply_mapping,
    drop_columns,
    merge_files,
    normalize_parsed,
    sanitize,
    stamp_file_id,
)
from app.samples.schema import materialize
from app.samples.store import SampleTableStore
from app.samples.tables import distinct_age_ranges
from app.samples.variable_filter import filter_variables, partition_headers

logger = get_logger(__name__)


@dataclass
class StagedFile:
    """An uploaded file written to the upload directory."""

    path: Path
    filename: str

    @property
    def extension(self) -> str:
        return os.path.splitext(self.filename)[1].lower()

    def remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove staged file", path=str(self.path), error=str(exc))


@dataclass
class UploadRequest:
    files: list[StagedFile]
    project_id: str | None
    vendor_id: int | None = None
    client_id: int | None = None
    requested_file_id: int | None = None
    age_calculation_mode: str | None = None
    custom_headers: Any = None
    excluded_columns: Any = None
    session_id: str | None = None
    identity: GatewayIdentity = field(default_factory=GatewayIdentity)


# ─── Form field helpers ───────────────────────────────

def parse_json_field(raw: str | None, field_name: str) -> Any:
    """Decode an optional JSON form field; malformed input is a 400."""
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid {field_name} JSON: {exc.msg}") from exc


def parse_optional_int(raw: Any, field_name: str) -> int | None:
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        raise ValidationError(f"{field_name} must be an integer") from None


def for_file(value: Any, index: int) -> list[str]:
    """Per-file list from a JSON list or an object keyed by file index."""
    if isinstance(value, list):
        item = value[index] if index < len(value) else None
    elif isinstance(value, dict):
        item = value.get(str(index), value.get(index))
    else:
        item = None
    if item is None:
        return []
    if not isinstance(item, list) or not all(isinstance(v, str) for v in item):
        raise ValidationError(f"Expected a list of column names for file {index + 1}")
    return item


def unsupported_message(extension: str) -> str:
    return f"Unsupported file type: {extension or '(none)'}. Supported types: {', '.join(supported_extensions())}"


async def parse_staged(staged: StagedFile) -> ParsedFile:
    parser = get_parser(staged.filename)
    if parser is None:
        raise ValidationError(unsupported_message(staged.extension))
    try:
        return await asyncio.to_thread(parser.parse, str(staged.path))
    except Exception as exc:
        raise ValidationError(f'Error processing file "{staged.filename}": {exc}') from exc


# ═══════════════════════════════════════════════════════════
#  UploadProcessor
# ═══════════════════════════════════════════════════════════

class UploadProcessor:
    def __init__(
        self,
        *,
        notifier: ProgressNotifier,
        callid_client: CallIDAssignmentClient | None = None,
        pipeline: PipelineEngine | None = None,
    ) -> None:
        self.notifier = notifier
        self.callid_client = callid_client
        self.pipeline = pipeline or PipelineEngine()

    async def process(self, db: AsyncSession, request: UploadRequest) -> dict[str, Any]:
        """Run the whole upload; raises PipelineError subclasses on failure."""
        session_id = request.session_id or uuid.uuid4().hex
        log = logger.bind(session_id=session_id, project_id=request.project_id)
        try:
            return await self._process(db, request, session_id, log)
        except Exception as exc:
            await self.notifier.error(session_id, str(exc))
            raise
        finally:
            self.notifier.close(session_id)
            for staged in request.files:
                staged.remove()

    async def _process(self, db: AsyncSession, request: UploadRequest, session_id: str, log) -> dict[str, Any]:
        # ── Validate + parse ─────────────────────────
        if not request.files:
            raise ValidationError("No files uploaded")
        if len(request.files) > settings.MAX_UPLOAD_FILES:
            raise ValidationError(f"Too many files: at most {settings.MAX_UPLOAD_FILES} per upload")
        if not request.project_id:
            raise ValidationError("Project ID is required")
        for staged in request.files:
            if get_parser(staged.filename) is None:
                raise ValidationError(unsupported_message(staged.extension))

        parsed_files = [await parse_staged(staged) for staged in request.files]
        log.info("Files parsed", files=[s.filename for s in request.files])

        # ── FileIDs ──────────────────────────────────
        file_ids = await self._register_files(db, request)

        # ── Per-file normalization ───────────────────
        normalized: list[NormalizedFile] = []
        mappings_applied: list[dict[str, str]] = []
        for index, (staged, parsed) in enumerate(zip(request.files, parsed_files)):
            try:
                headers, rows = normalize_parsed(parsed)
                headers, rows = drop_columns(headers, rows, for_file(request.excluded_columns, index))
                custom = for_file(request.custom_headers, index)
                if custom:
                    headers, rows = apply_custom_headers(headers, rows, custom)
                else:
                    mappings = await mapping_repo.get_mappings(
                        db,
                        vendor_id=request.vendor_id,
                        client_id=request.client_id,
                        original_headers=[h.name for h in headers],
                    )
                    headers, rows, applied = apply_mapping(headers, rows, mappings)
                    mappings_applied.extend(applied)
            except ValueError as exc:
                raise ValidationError(f'Error processing file "{staged.filename}": {exc}') from exc
            stamp_file_id(rows, file_ids[index])
            normalized.append(NormalizedFile(
                filename=staged.filename,
                file_id=file_ids[index],
                file_type=staged.extension,
                headers=headers,
                rows=rows,
            ))

        headers, rows = merge_files(normalized)

        # ── Variable exclusions ──────────────────────
        excluded = await variable_repo.get_excluded_set(db)
        inclusions = await variable_repo.get_inclusions_map(db, request.project_id)
        filtered = filter_variables(headers, rows, excluded, inclusions)
        if filtered.excluded_count or filtered.renamed:
            log.info("Variable exclusions applied", **filtered.summary())

        # ── Materialize ──────────────────────────────
        try:
            materialized = await materialize(
                db,
                base_name=request.project_id,
                headers=filtered.headers,
                rows=filtered.rows,
            )
            await db.commit()
        except MaterializationError as exc:
            exc.details.update(filesProcessed=len(request.files), totalRowsProcessed=len(rows))
            raise
        table_name = materialized.table_name
        log = log.bind(table=table_name)
        await self._record_table_name(db, request.project_id, file_ids, table_name, log)

        # ── Post-processing ──────────────────────────
        result = await self.pipeline.run(
            db=db,
            table_name=table_name,
            client_id=request.client_id,
            vendor_id=request.vendor_id,
            age_calculation_mode=request.age_calculation_mode,
            progress=functools.partial(self.notifier.progress, session_id),
        )
        if result.aborted:
            raise CriticalStageError(
                result.error or "Post-processing failed",
                execution_id=result.execution_id,
                step_name=result.failed_steps[-1] if result.failed_steps else None,
                details={
                    "tableName": table_name,
                    "filesProcessed": len(request.files),
                    "totalRowsProcessed": len(rows),
                    "pipeline": result.to_dict(),
                },
            )

        store = SampleTableStore(db, table_name)
        stored_headers = await store.headers()
        age_ranges = await distinct_age_ranges(store)

        # ── CallIDs ──────────────────────────────────
        call_id_assignment = None
        if self.callid_client is not None and request.identity.is_authenticated:
            call_id_assignment = await self.callid_client.assign(
                db,
                table_name=table_name,
                project_id=request.project_id,
                client_id=request.client_id,
                identity=request.identity,
            )
        else:
            log.info("CallID assignment skipped: caller not authenticated")

        await self.notifier.complete(session_id)

        filenames = [s.filename for s in request.files]
        if len(filenames) > 1:
            message = f"Successfully merged {len(filenames)} files into table {table_name}"
        else:
            message = f"Successfully processed {filenames[0]} into table {table_name}"
        log.info("Upload processed", rows=materialized.rows_inserted, pipeline_status=result.status)

        return {
            "success": True,
            "sessionId": session_id,
            "headers": stored_headers,
            "tableName": table_name,
            "rowsInserted": materialized.rows_inserted,
            "totalRows": await store.count(),
            "filesProcessed": len(filenames),
            "sourceFiles": filenames,
            "fileIds": file_ids,
            "message": message,
            "fileTypes": sorted({s.extension for s in request.files}),
            "projectId": request.project_id,
            "vendorId": request.vendor_id,
            "clientId": request.client_id,
            "systemConstantsAdded": materialized.constants_added,
            "mappedHeadersUsed": bool(mappings_applied) or any(
                for_file(request.custom_headers, i) for i in range(len(filenames))
            ),
            "headerMappingsApplied": mappings_applied,
            "variableFilter": filtered.summary(),
            "distinctAgeRanges": age_ranges,
            "pipeline": result.to_dict(),
            "callIdAssignment": call_id_assignment,
        }

    async def _register_files(self, db: AsyncSession, request: UploadRequest) -> list[int]:
        file_ids: list[int] = []
        created_by = request.identity.username or "system"
        for index, staged in enumerate(request.files):
            requested = request.requested_file_id + index if request.requested_file_id is not None else None
            try:
                file_id = await file_repo.next_file_id(db, request.project_id, requested)
                await file_repo.register_project_file(
                    db,
                    project_id=request.project_id,
                    file_id=file_id,
                    original_filename=staged.filename,
                    created_by=created_by,
                )
            except SQLAlchemyError as exc:
                raise ValidationError(f'FileID error for "{staged.filename}": {exc}') from exc
            file_ids.append(file_id)
        return file_ids

    @staticmethod
    async def _record_table_name(db: AsyncSession, project_id: str, file_ids: list[int], table_name: str, log) -> None:
        try:
            async with db.begin_nested():
                for file_id in file_ids:
                    await file_repo.update_table_name(db, project_id=project_id, file_id=file_id, table_name=table_name)
            await db.commit()
        except SQLAlchemyError as exc:
            log.warning("Could not record table name on file registrations", error=str(exc))

    # ─── Header detection ──────────────────────────────

    async def detect_headers(self, db: AsyncSession, staged: StagedFile) -> dict[str, Any]:
        """Sanitized header names of one file, split by the exclusion list."""
        try:
            parsed = await parse_staged(staged)
        finally:
            staged.remove()
        names = [sanitize(h.name) for h in parsed.headers]
        excluded = await variable_repo.get_excluded_set(db)
        kept, dropped = partition_headers(names, excluded)
        suffix = f" ({len(dropped)} excluded)" if dropped else ""
        return {
            "success": True,
            "headers": kept,
            "excludedHeaders": dropped,
            "allHeadersInOrder": names,
            "totalDetected": len(names),
            "excludedCount": len(dropped),
            "message": f"Detected {len(kept)} headers{suffix}",
        }
