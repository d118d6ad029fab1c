"""Do-not-call list repository."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.dnc_number import DncNumber


async def listed_numbers(db: AsyncSession, numbers: Iterable[str]) -> set[str]:
    """Subset of ``numbers`` present on the DNC list."""
    candidates = sorted({n for n in numbers if n})
    listed: set[str] = set()
    for start in range(0, len(candidates), 1000):
        stmt = select(DncNumber.phone_number).where(DncNumber.phone_number.in_(candidates[start:start + 1000]))
        listed.update((await db.execute(stmt)).scalars().all())
    return listed


async def add_numbers(db: AsyncSession, numbers: Iterable[str]) -> int:
    """Add numbers not already listed.  Returns how many were new."""
    wanted = {n for n in numbers if n}
    existing = await listed_numbers(db, wanted)
    new = sorted(wanted - existing)
    db.add_all(DncNumber(phone_number=n) for n in new)
    await db.flush()
    return len(new)
