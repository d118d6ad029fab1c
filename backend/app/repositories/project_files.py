"""Project file registration repository (FileID sequencing)."""

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.project_file import ProjectFile


async def next_file_id(db: AsyncSession, project_id: str, requested: int | None = None) -> int:
    """
    Pick the FileID for a new upload.

    The requested id is honoured when it is free; otherwise the project's
    highest id + 1 (or 1 for a new project).
    """
    if requested is not None:
        stmt = select(ProjectFile.id).where(
            ProjectFile.project_id == str(project_id),
            ProjectFile.file_id == requested,
        )
        if (await db.execute(stmt)).first() is None:
            return requested

    stmt = select(func.max(ProjectFile.file_id)).where(ProjectFile.project_id == str(project_id))
    current = (await db.execute(stmt)).scalar_one_or_none()
    return (current or 0) + 1


async def register_project_file(
    db: AsyncSession,
    *,
    project_id: str,
    file_id: int,
    original_filename: str,
    table_name: str | None = None,
    created_by: str = "system",
) -> ProjectFile:
    record = ProjectFile(
        project_id=str(project_id),
        file_id=file_id,
        original_filename=original_filename,
        table_name=table_name,
        created_by=created_by,
    )
    db.add(record)
    await db.flush()
    return record


async def update_table_name(db: AsyncSession, *, project_id: str, file_id: int, table_name: str) -> int:
    """Point a registration at the table its rows landed in."""
    stmt = (
        update(ProjectFile)
        .where(ProjectFile.project_id == str(project_id), ProjectFile.file_id == file_id)
        .values(table_name=table_name)
    )
    result = await db.execute(stmt)
    await db.flush()
    return result.rowcount or 0


async def list_project_files(db: AsyncSession, *, project_id: str) -> list[ProjectFile]:
    stmt = (
        select(ProjectFile)
        .where(ProjectFile.project_id == str(project_id))
        .order_by(ProjectFile.file_id)
    )
    return list((await db.execute(stmt)).scalars().all())


async def delete_project_file(db: AsyncSession, *, project_id: str, file_id: int) -> bool:
    stmt = select(ProjectFile).where(
        ProjectFile.project_id == str(project_id),
        ProjectFile.file_id == file_id,
    )
    record = (await db.execute(stmt)).scalar_one_or_none()
    if record is None:
        return False
    await db.delete(record)
    await db.flush()
    return True
