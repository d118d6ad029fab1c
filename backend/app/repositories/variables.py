"""
Variable exclusion / project inclusion repository.

The two loader functions used during upload (``get_excluded_set`` and
``get_inclusions_map``) degrade to empty collections on database errors:
filtering is an enrichment, not a reason to fail an upload.
"""

from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.models.variable_rule import ProjectVariableInclusion, VariableExclusion

logger = get_logger(__name__)


# ─── Exclusions ───────────────────────────────────────

async def list_exclusions(db: AsyncSession, *, search: str | None = None) -> list[VariableExclusion]:
    """All exclusions ordered by name, optionally filtered."""
    stmt = select(VariableExclusion).order_by(VariableExclusion.variable_name)
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(
            VariableExclusion.variable_name.ilike(pattern),
            VariableExclusion.description.ilike(pattern),
        ))
    return list((await db.execute(stmt)).scalars().all())


async def get_exclusion(db: AsyncSession, exclusion_id: int) -> VariableExclusion | None:
    return await db.get(VariableExclusion, exclusion_id)


async def get_exclusion_by_name(db: AsyncSession, variable_name: str) -> VariableExclusion | None:
    stmt = select(VariableExclusion).where(VariableExclusion.variable_name == variable_name.strip().upper())
    return (await db.execute(stmt)).scalar_one_or_none()


async def add_exclusion(
    db: AsyncSession,
    *,
    variable_name: str,
    description: str | None = None,
    created_by: str = "system",
) -> VariableExclusion:
    """Create an exclusion (name stored uppercase)."""
    exclusion = VariableExclusion(
        variable_name=variable_name.strip().upper(),
        description=description,
        created_by=created_by,
    )
    db.add(exclusion)
    await db.flush()
    return exclusion


async def update_exclusion(
    db: AsyncSession,
    exclusion_id: int,
    *,
    description: str | None,
) -> VariableExclusion | None:
    exclusion = await get_exclusion(db, exclusion_id)
    if exclusion is None:
        return None
    exclusion.description = description
    await db.flush()
    return exclusion


async def delete_exclusion(db: AsyncSession, exclusion_id: int) -> bool:
    exclusion = await get_exclusion(db, exclusion_id)
    if exclusion is None:
        return False
    await db.delete(exclusion)
    await db.flush()
    return True


async def get_excluded_set(db: AsyncSession) -> set[str]:
    """Uppercase names of every excluded variable; empty on error."""
    try:
        result = await db.execute(select(VariableExclusion.variable_name))
    except SQLAlchemyError as exc:
        logger.warning("Could not load variable exclusions", error=str(exc))
        return set()
    return {name.upper() for name in result.scalars().all() if name}


# ─── Project inclusions ───────────────────────────────

async def list_inclusions(db: AsyncSession, *, project_id: str) -> list[ProjectVariableInclusion]:
    stmt = (
        select(ProjectVariableInclusion)
        .where(ProjectVariableInclusion.project_id == str(project_id))
        .order_by(ProjectVariableInclusion.original_variable)
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_inclusion(db: AsyncSession, inclusion_id: int) -> ProjectVariableInclusion | None:
    return await db.get(ProjectVariableInclusion, inclusion_id)


async def add_inclusion(
    db: AsyncSession,
    *,
    project_id: str,
    original_variable: str,
    mapped_variable: str,
    created_by: str = "system",
) -> ProjectVariableInclusion:
    inclusion = ProjectVariableInclusion(
        project_id=str(project_id),
        original_variable=original_variable.strip().upper(),
        mapped_variable=mapped_variable.strip().upper(),
        created_by=created_by,
    )
    db.add(inclusion)
    await db.flush()
    return inclusion


async def update_inclusion(
    db: AsyncSession,
    inclusion_id: int,
    *,
    mapped_variable: str,
) -> ProjectVariableInclusion | None:
    inclusion = await get_inclusion(db, inclusion_id)
    if inclusion is None:
        return None
    inclusion.mapped_variable = mapped_variable.strip().upper()
    await db.flush()
    return inclusion


async def delete_inclusion(db: AsyncSession, inclusion_id: int) -> bool:
    inclusion = await get_inclusion(db, inclusion_id)
    if inclusion is None:
        return False
    await db.delete(inclusion)
    await db.flush()
    return True


async def get_inclusions_map(db: AsyncSession, project_id: str | None) -> dict[str, str]:
    """Uppercase original → mapped name for a project; empty on error."""
    if not project_id:
        return {}
    try:
        rows = await list_inclusions(db, project_id=project_id)
    except SQLAlchemyError as exc:
        logger.warning("Could not load project inclusions", project_id=project_id, error=str(exc))
        return {}
    return {row.original_variable.upper(): row.mapped_variable for row in rows}
