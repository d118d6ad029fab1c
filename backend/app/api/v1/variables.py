"""
Header mapping, variable exclusion, do-not-call and project inclusion endpoints.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_gateway_identity
from app.api.schemas import (
    DncNumbersCreate,
    ExclusionCreate,
    ExclusionResponse,
    ExclusionUpdate,
    HeaderMappingLookupRequest,
    HeaderMappingResponse,
    InclusionCreate,
    InclusionResponse,
    InclusionUpdate,
    SaveHeaderMappingsRequest,
)
from app.callid.client import GatewayIdentity
from app.pipeline.steps.format_phones import format_phone
from app.repositories import dnc as dnc_repo
from app.repositories import header_mappings as mapping_repo
from app.repositories import variables as variable_repo

router = APIRouter(prefix="/sample-automation", tags=["Variables"])


def _dump(model_cls, items) -> list[dict]:
    return [model_cls.model_validate(item).model_dump(by_alias=True) for item in items]


# ─── Header mappings ──────────────────────────────────────
@router.get("/header-mappings")
async def list_header_mappings(
    vendor_id: int | None = Query(default=None, alias="vendorId"),
    client_id: int | None = Query(default=None, alias="clientId"),
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    rules = await mapping_repo.list_mappings(db, vendor_id=vendor_id, client_id=client_id, search=search)
    return {"success": True, "data": _dump(HeaderMappingResponse, rules), "total": len(rules)}


@router.post("/header-mappings")
async def save_header_mappings(payload: SaveHeaderMappingsRequest, db: AsyncSession = Depends(get_db)):
    """Upsert mappings for one vendor/client scope."""
    saved = await mapping_repo.save_mappings(
        db,
        vendor_id=payload.vendor_id,
        client_id=payload.client_id,
        mappings=[m.model_dump() for m in payload.mappings],
    )
    return {"success": True, "saved": saved, "message": f"Saved {saved} header mapping(s)"}


@router.post("/header-mappings/lookup")
async def lookup_header_mappings(payload: HeaderMappingLookupRequest, db: AsyncSession = Depends(get_db)):
    """Most specific mapping per original header."""
    mappings = await mapping_repo.get_mappings(
        db,
        vendor_id=payload.vendor_id,
        client_id=payload.client_id,
        original_headers=payload.original_headers,
    )
    return {"success": True, "mappings": mappings}


@router.delete("/header-mappings")
async def delete_header_mapping(
    original_header: str = Query(..., alias="originalHeader"),
    vendor_id: int | None = Query(default=None, alias="vendorId"),
    client_id: int | None = Query(default=None, alias="clientId"),
    db: AsyncSession = Depends(get_db),
):
    affected = await mapping_repo.delete_mapping(
        db,
        original_header=original_header,
        vendor_id=vendor_id,
        client_id=client_id,
    )
    return {"success": True, "deleted": affected > 0, "rowsAffected": affected}


# ─── Variable exclusions ──────────────────────────────────
@router.get("/variable-exclusions")
async def list_variable_exclusions(search: str | None = None, db: AsyncSession = Depends(get_db)):
    exclusions = await variable_repo.list_exclusions(db, search=search)
    return {"success": True, "data": _dump(ExclusionResponse, exclusions), "total": len(exclusions)}


@router.post("/variable-exclusions", status_code=status.HTTP_201_CREATED)
async def add_variable_exclusion(
    payload: ExclusionCreate,
    db: AsyncSession = Depends(get_db),
    identity: GatewayIdentity = Depends(get_gateway_identity),
):
    if await variable_repo.get_exclusion_by_name(db, payload.variable_name) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Variable {payload.variable_name.strip().upper()} is already excluded",
        )
    try:
        async with db.begin_nested():
            exclusion = await variable_repo.add_exclusion(
                db,
                variable_name=payload.variable_name,
                description=payload.description,
                created_by=identity.username or "system",
            )
    except IntegrityError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Variable is already excluded") from None
    return {"success": True, "data": ExclusionResponse.model_validate(exclusion).model_dump(by_alias=True)}


@router.put("/variable-exclusions/{exclusion_id}")
async def update_variable_exclusion(
    exclusion_id: int,
    payload: ExclusionUpdate,
    db: AsyncSession = Depends(get_db),
):
    exclusion = await variable_repo.update_exclusion(db, exclusion_id, description=payload.description)
    if exclusion is None:
        raise HTTPException(status_code=404, detail="Variable exclusion not found")
    return {"success": True, "data": ExclusionResponse.model_validate(exclusion).model_dump(by_alias=True)}


@router.delete("/variable-exclusions/{exclusion_id}")
async def delete_variable_exclusion(exclusion_id: int, db: AsyncSession = Depends(get_db)):
    if not await variable_repo.delete_exclusion(db, exclusion_id):
        raise HTTPException(status_code=404, detail="Variable exclusion not found")
    return {"success": True, "message": "Variable exclusion deleted"}


# ─── Do-not-call list ─────────────────────────────────────
@router.post("/dnc-numbers")
async def add_dnc_numbers(payload: DncNumbersCreate, db: AsyncSession = Depends(get_db)):
    """Add numbers to the do-not-call list; entries without 10 digits are reported back."""
    formatted = {raw: format_phone(raw) for raw in payload.phone_numbers}
    invalid = [raw for raw, number in formatted.items() if number is None]
    added = await dnc_repo.add_numbers(db, (n for n in formatted.values() if n))
    return {"success": True, "added": added, "invalid": invalid}


# ─── Project inclusions ───────────────────────────────────
@router.get("/project-inclusions")
async def list_project_inclusions(
    project_id: str = Query(..., alias="projectId"),
    db: AsyncSession = Depends(get_db),
):
    inclusions = await variable_repo.list_inclusions(db, project_id=project_id)
    return {"success": True, "data": _dump(InclusionResponse, inclusions), "total": len(inclusions)}


@router.post("/project-inclusions", status_code=status.HTTP_201_CREATED)
async def add_project_inclusion(
    payload: InclusionCreate,
    db: AsyncSession = Depends(get_db),
    identity: GatewayIdentity = Depends(get_gateway_identity),
):
    try:
        async with db.begin_nested():
            inclusion = await variable_repo.add_inclusion(
                db,
                project_id=payload.project_id,
                original_variable=payload.original_variable,
                mapped_variable=payload.mapped_variable,
                created_by=identity.username or "system",
            )
    except IntegrityError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An inclusion for this variable already exists in the project",
        ) from None
    return {"success": True, "data": InclusionResponse.model_validate(inclusion).model_dump(by_alias=True)}


@router.put("/project-inclusions/{inclusion_id}")
async def update_project_inclusion(
    inclusion_id: int,
    payload: InclusionUpdate,
    db: AsyncSession = Depends(get_db),
):
    inclusion = await variable_repo.update_inclusion(db, inclusion_id, mapped_variable=payload.mapped_variable)
    if inclusion is None:
        raise HTTPException(status_code=404, detail="Project inclusion not found")
    return {"success": True, "data": InclusionResponse.model_validate(inclusion).model_dump(by_alias=True)}


@router.delete("/project-inclusions/{inclusion_id}")
async def delete_project_inclusion(inclusion_id: int, db: AsyncSession = Depends(get_db)):
    if not await variable_repo.delete_inclusion(db, inclusion_id):
        raise HTTPException(status_code=404, detail="Project inclusion not found")
    return {"success": True, "message": "Project inclusion deleted"}
