"""Age bracket lookup repository."""

from __future__ import annotations

from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.age_range import AgeRange


class Bracket(NamedTuple):
    code: int
    min_age: int
    max_age: int
    label: str


DEFAULT_BRACKETS: tuple[Bracket, ...] = (
    Bracket(1, 18, 24, "18-24"),
    Bracket(2, 25, 34, "25-34"),
    Bracket(3, 35, 44, "35-44"),
    Bracket(4, 45, 54, "45-54"),
    Bracket(5, 55, 64, "55-64"),
    Bracket(6, 65, 99, "65+"),
)


async def list_brackets(db: AsyncSession) -> list[Bracket]:
    """Configured brackets ordered by code; the built-in set when none are stored."""
    rows = (await db.execute(select(AgeRange).order_by(AgeRange.code))).scalars().all()
    if not rows:
        return list(DEFAULT_BRACKETS)
    return [Bracket(r.code, r.min_age, r.max_age, r.label) for r in rows]
