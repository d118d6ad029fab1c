"""
Extraction endpoints: delivery file generation, download and cleanup.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_extraction_engine, get_gateway_identity, get_workspace
from app.api.errors import http_error
from app.api.schemas import ExtractRequest
from app.callid.client import GatewayIdentity
from app.extraction import ExtractionEngine, ExtractionRequest, ExtractionWorkspace
from app.pipeline.errors import PipelineError
from app.samples.tables import check_table_name

router = APIRouter(prefix="/sample-automation", tags=["Extraction"])


@router.post("/extract")
async def extract_files(
    payload: ExtractRequest,
    db: AsyncSession = Depends(get_db),
    identity: GatewayIdentity = Depends(get_gateway_identity),
    engine: ExtractionEngine = Depends(get_extraction_engine),
):
    """Produce the CSV delivery files for a processed table."""
    try:
        check_table_name(payload.table_name)
        request = ExtractionRequest(
            table_name=payload.table_name,
            selected_headers=payload.selected_headers,
            split_mode=payload.split_mode,
            selected_age_range=payload.selected_age_range,
            householding_enabled=payload.householding_enabled,
            file_type=payload.file_type,
            file_names={k: v for k, v in payload.file_names.model_dump().items() if v},
            client_id=payload.client_id,
        )
        return await engine.extract(db, request, identity=identity.username)
    except PipelineError as exc:
        raise http_error(exc) from exc


@router.get("/download/{filename}")
async def download_file(
    filename: str,
    identity: GatewayIdentity = Depends(get_gateway_identity),
    workspace: ExtractionWorkspace = Depends(get_workspace),
):
    """Serve a file from the caller's own extraction workspace."""
    try:
        path = workspace.resolve(identity.username, filename)
    except PermissionError:
        raise HTTPException(status_code=400, detail="Invalid file path") from None
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found") from None
    return FileResponse(path, media_type="text/csv", filename=filename)


@router.post("/cleanup")
async def cleanup_workspace(
    identity: GatewayIdentity = Depends(get_gateway_identity),
    workspace: ExtractionWorkspace = Depends(get_workspace),
):
    """Remove every extracted file of the caller."""
    removed = workspace.cleanup(identity.username)
    message = "Workspace cleaned up" if removed else "Nothing to clean up"
    return {"success": True, "removed": removed, "message": message}
