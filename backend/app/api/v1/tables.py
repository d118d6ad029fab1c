"""
Sample table endpoints: catalog, inspection, DNC scrub, reprocessing,
computed variables and removal.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.api.errors import http_error
from app.api.schemas import ComputedVariableRequest, ReprocessRequest
from app.pipeline.errors import PipelineError
from app.samples import computed, tables

router = APIRouter(prefix="/sample-automation/tables", tags=["Sample Tables"])


# ─── Catalog ──────────────────────────────────────────────
@router.get("")
async def list_tables(
    project_id: str | None = Query(default=None, alias="projectId"),
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """SA_ table families grouped by project, newest first."""
    projects = await tables.list_sample_tables(db, project_id=project_id, limit=limit)
    return {"success": True, "projects": projects, "total": len(projects)}


@router.get("/{table_name}")
async def get_table(table_name: str, db: AsyncSession = Depends(get_db)):
    try:
        return {"success": True, **await tables.table_details(db, table_name)}
    except PipelineError as exc:
        raise http_error(exc) from exc


@router.get("/{table_name}/preview")
async def preview_table(table_name: str, limit: int = 10, db: AsyncSession = Depends(get_db)):
    try:
        return {"success": True, **await tables.preview_table(db, table_name, limit)}
    except PipelineError as exc:
        raise http_error(exc) from exc


@router.get("/{table_name}/headers")
async def table_headers(table_name: str, db: AsyncSession = Depends(get_db)):
    try:
        headers = await tables.table_headers(db, table_name)
    except PipelineError as exc:
        raise http_error(exc) from exc
    return {"success": True, "tableName": table_name, "headers": headers}


@router.get("/{table_name}/age-ranges")
async def table_age_ranges(table_name: str, db: AsyncSession = Depends(get_db)):
    try:
        store = await tables.open_table(db, table_name)
    except PipelineError as exc:
        raise http_error(exc) from exc
    age_ranges = await tables.distinct_age_ranges(store)
    return {"success": True, "ageRanges": age_ranges, "count": len(age_ranges)}


# ─── Processing ───────────────────────────────────────────
@router.post("/{table_name}/dnc-scrub")
async def dnc_scrub(table_name: str, db: AsyncSession = Depends(get_db)):
    """Create ``{T}_WDNC`` and scrub it against the do-not-call list."""
    try:
        return await tables.scrub_copy(db, table_name)
    except PipelineError as exc:
        raise http_error(exc) from exc


@router.post("/{table_name}/reprocess", status_code=202)
async def reprocess_table(
    table_name: str,
    payload: ReprocessRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Queue the post-processing stages for an existing table."""
    from app.tasks.processing_tasks import post_process_table

    try:
        await tables.open_table(db, table_name)
    except PipelineError as exc:
        raise http_error(exc) from exc

    payload = payload or ReprocessRequest()
    task = post_process_table.delay(
        table_name=table_name,
        client_id=payload.client_id,
        vendor_id=payload.vendor_id,
        age_calculation_mode=payload.age_calculation_mode,
    )
    return {"success": True, "message": "Post-processing queued", "tableName": table_name, "taskId": task.id}


# ─── Computed variables ───────────────────────────────────
@router.post("/{table_name}/computed-variables/preview")
async def preview_computed_variable(
    table_name: str,
    payload: ComputedVariableRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await computed.preview_computed_variable(db, table_name, payload.model_dump(by_alias=True))
    except PipelineError as exc:
        raise http_error(exc) from exc


@router.post("/{table_name}/computed-variables", status_code=201)
async def add_computed_variable(
    table_name: str,
    payload: ComputedVariableRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        return await computed.add_computed_variable(db, table_name, payload.model_dump(by_alias=True))
    except PipelineError as exc:
        raise http_error(exc) from exc


@router.delete("/{table_name}/computed-variables/{variable}")
async def remove_computed_variable(table_name: str, variable: str, db: AsyncSession = Depends(get_db)):
    try:
        return await computed.remove_computed_variable(db, table_name, variable)
    except PipelineError as exc:
        raise http_error(exc) from exc


# ─── Removal ──────────────────────────────────────────────
@router.delete("/{table_name}")
async def delete_table(
    table_name: str,
    include_derivatives: bool = Query(default=True, alias="includeDerivatives"),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await tables.delete_sample_table(db, table_name, include_derivatives=include_derivatives)
    except PipelineError as exc:
        raise http_error(exc) from exc
