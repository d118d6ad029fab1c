"""
Upload endpoints: file processing, header detection and progress stream.
"""

from __future__ import annotations

import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_callid_client, get_db, get_gateway_identity, get_progress
from app.api.errors import http_error
from app.callid.client import CallIDAssignmentClient, GatewayIdentity
from app.core.config import settings
from app.core.logging import get_logger
from app.core.progress import ProgressNotifier
from app.pipeline.errors import PipelineError, StorageError, ValidationError
from app.processing.parsers import describe_supported_types
from app.repositories import project_files as file_repo
from app.samples.upload import (
    StagedFile,
    UploadProcessor,
    UploadRequest,
    parse_json_field,
    parse_optional_int,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/sample-automation", tags=["Sample Uploads"])

_CHUNK = 1024 * 1024


async def stage_upload(upload: UploadFile) -> StagedFile:
    """Stream an upload to the upload directory, enforcing the size limit."""
    directory = Path(settings.UPLOAD_DIR)
    filename = Path(upload.filename or "").name
    path = directory / f"{uuid.uuid4().hex}_{filename}"
    size = 0
    try:
        directory.mkdir(parents=True, exist_ok=True)
        with path.open("wb") as out:
            while chunk := await upload.read(_CHUNK):
                size += len(chunk)
                if size > settings.MAX_UPLOAD_BYTES:
                    raise ValidationError(f'File "{filename}" exceeds the upload size limit')
                out.write(chunk)
    except ValidationError:
        path.unlink(missing_ok=True)
        raise
    except OSError as exc:
        path.unlink(missing_ok=True)
        raise StorageError(f'Could not store upload "{filename}": {exc}') from exc
    return StagedFile(path=path, filename=filename)


async def stage_all(uploads: list[UploadFile]) -> list[StagedFile]:
    staged: list[StagedFile] = []
    try:
        for upload in uploads:
            staged.append(await stage_upload(upload))
    except PipelineError:
        for item in staged:
            item.remove()
        raise
    return staged


# ─── Upload ───────────────────────────────────────────────
@router.post("/process-file")
async def process_file(
    files: list[UploadFile] = File(default=[]),
    project_id: str | None = Form(default=None, alias="projectId"),
    vendor_id: str | None = Form(default=None, alias="vendorId"),
    client_id: str | None = Form(default=None, alias="clientId"),
    requested_file_id: str | None = Form(default=None, alias="requestedFileId"),
    age_calculation_mode: str | None = Form(default=None, alias="ageCalculationMode"),
    custom_headers: str | None = Form(default=None, alias="customHeaders"),
    excluded_columns: str | None = Form(default=None, alias="excludedColumns"),
    session_id: str | None = Form(default=None, alias="sessionId"),
    db: AsyncSession = Depends(get_db),
    identity: GatewayIdentity = Depends(get_gateway_identity),
    notifier: ProgressNotifier = Depends(get_progress),
    callid: CallIDAssignmentClient = Depends(get_callid_client),
):
    """
    Upload one or more sample files into a new post-processed table.

    1. Stages the files in the upload directory
    2. Runs UploadProcessor (parse → normalize → filter → materialize → stages)
    3. Returns the table description and the stage report
    """
    try:
        if len(files) > settings.MAX_UPLOAD_FILES:
            raise ValidationError(f"Too many files: at most {settings.MAX_UPLOAD_FILES} per upload")
        request = UploadRequest(
            files=[],
            project_id=(project_id or "").strip() or None,
            vendor_id=parse_optional_int(vendor_id, "vendorId"),
            client_id=parse_optional_int(client_id, "clientId"),
            requested_file_id=parse_optional_int(requested_file_id, "requestedFileId"),
            age_calculation_mode=age_calculation_mode,
            custom_headers=parse_json_field(custom_headers, "customHeaders"),
            excluded_columns=parse_json_field(excluded_columns, "excludedColumns"),
            session_id=session_id,
            identity=identity,
        )
        request.files = await stage_all(files)
        processor = UploadProcessor(notifier=notifier, callid_client=callid)
        return await processor.process(db, request)
    except PipelineError as exc:
        logger.warning("Upload rejected", error=str(exc), project_id=project_id)
        raise http_error(exc) from exc


@router.post("/detect-headers")
async def detect_headers(
    file: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    notifier: ProgressNotifier = Depends(get_progress),
):
    """Detect a file's headers, split by the global exclusion list."""
    try:
        if file is None:
            raise ValidationError("No file uploaded")
        staged = await stage_upload(file)
        return await UploadProcessor(notifier=notifier).detect_headers(db, staged)
    except PipelineError as exc:
        raise http_error(exc) from exc


# ─── Progress ─────────────────────────────────────────────
@router.get("/progress/{session_id}")
async def progress_stream(session_id: str, notifier: ProgressNotifier = Depends(get_progress)):
    """Server-sent events for one upload session."""
    return StreamingResponse(
        notifier.subscribe(session_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"},
    )


# ─── Registry ─────────────────────────────────────────────
@router.get("/supported-file-types")
async def supported_file_types():
    """File processors available for upload."""
    return {"success": True, "fileTypes": describe_supported_types()}


@router.get("/project-files")
async def list_project_files(
    project_id: str = Query(..., alias="projectId"),
    db: AsyncSession = Depends(get_db),
):
    """FileIDs registered for a project, with the table each landed in."""
    records = await file_repo.list_project_files(db, project_id=project_id)
    data = [
        {
            "fileId": r.file_id,
            "originalFilename": r.original_filename,
            "tableName": r.table_name,
            "createdBy": r.created_by,
            "createdAt": r.created_at.isoformat() if r.created_at else None,
        }
        for r in records
    ]
    return {"success": True, "data": data, "total": len(data)}


@router.delete("/project-files/{file_id}")
async def delete_project_file(
    file_id: int,
    project_id: str = Query(..., alias="projectId"),
    db: AsyncSession = Depends(get_db),
):
    """Release a FileID.  The sample table it produced is left in place."""
    if not await file_repo.delete_project_file(db, project_id=project_id, file_id=file_id):
        raise HTTPException(status_code=404, detail="File registration not found")
    return {"success": True, "message": f"FileID {file_id} released"}
