"""
Header mapping repository.

Rules are stored with the sanitized original header so lookups and
upserts agree with the names the normalizer produces.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.header_mapping import HeaderMapping
from app.samples.headers import resolve_mappings, sanitize


def _scope(column, value: int | None):
    return column.is_(None) if value is None else column == value


async def get_mappings(
    db: AsyncSession,
    *,
    vendor_id: int | None,
    client_id: int | None,
    original_headers: list[str],
) -> dict[str, dict[str, Any]]:
    """Most specific mapping per original header for this vendor/client."""
    wanted = sorted({sanitize(h) for h in original_headers if sanitize(h)})
    if not wanted:
        return {}
    stmt = select(HeaderMapping).where(
        HeaderMapping.original_header.in_(wanted),
        or_(HeaderMapping.vendor_id.is_(None), HeaderMapping.vendor_id == vendor_id),
        or_(HeaderMapping.client_id.is_(None), HeaderMapping.client_id == client_id),
    )
    rules = (await db.execute(stmt)).scalars().all()
    return resolve_mappings(rules, vendor_id=vendor_id, client_id=client_id, original_headers=wanted)


async def save_mappings(
    db: AsyncSession,
    *,
    vendor_id: int | None,
    client_id: int | None,
    mappings: list[dict[str, Any]],
) -> int:
    """Upsert ``{original, mapped}`` pairs for one scope.  Returns the number saved."""
    saved = 0
    for item in mappings:
        original = sanitize(item.get("original"))
        mapped = sanitize(item.get("mapped"))
        if not original or not mapped:
            continue
        stmt = select(HeaderMapping).where(
            HeaderMapping.original_header == original,
            _scope(HeaderMapping.vendor_id, vendor_id),
            _scope(HeaderMapping.client_id, client_id),
        )
        existing = (await db.execute(stmt)).scalar_one_or_none()
        if existing is None:
            db.add(HeaderMapping(
                original_header=original,
                mapped_header=mapped,
                vendor_id=vendor_id,
                client_id=client_id,
            ))
        else:
            existing.mapped_header = mapped
        saved += 1
    await db.flush()
    return saved


async def list_mappings(
    db: AsyncSession,
    *,
    vendor_id: int | None = None,
    client_id: int | None = None,
    search: str | None = None,
) -> list[HeaderMapping]:
    """All rules, optionally filtered, ordered by vendor, client, original."""
    stmt = select(HeaderMapping).order_by(
        HeaderMapping.vendor_id,
        HeaderMapping.client_id,
        HeaderMapping.original_header,
    )
    if vendor_id is not None:
        stmt = stmt.where(HeaderMapping.vendor_id == vendor_id)
    if client_id is not None:
        stmt = stmt.where(HeaderMapping.client_id == client_id)
    if search:
        pattern = f"%{search.strip().upper()}%"
        stmt = stmt.where(or_(
            HeaderMapping.original_header.like(pattern),
            HeaderMapping.mapped_header.like(pattern),
        ))
    return list((await db.execute(stmt)).scalars().all())


async def delete_mapping(
    db: AsyncSession,
    *,
    original_header: str,
    vendor_id: int | None,
    client_id: int | None,
) -> int:
    """Delete the rule for exactly this scope.  Returns rows affected."""
    stmt = delete(HeaderMapping).where(
        HeaderMapping.original_header == sanitize(original_header),
        _scope(HeaderMapping.vendor_id, vendor_id),
        _scope(HeaderMapping.client_id, client_id),
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount or 0
