"""
ProjectFile: one row per uploaded physical file.

Traces which sample table a project's upload landed in.  ``file_id`` is the
per-project sequence number stamped into the table's FILE column.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from app.db.models.base import Base, utcnow


class ProjectFile(Base):
    """Registered upload for a project."""

    __tablename__ = "project_files"
    __table_args__ = (
        UniqueConstraint("project_id", "file_id", name="uq_project_file_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # ── Identity ──────────────────────────────
    project_id = Column(String(50), nullable=False, index=True)
    file_id = Column(Integer, nullable=False)
    original_filename = Column(String(500), nullable=False)

    # ── Destination (set after materialization) ──
    table_name = Column(String(255), nullable=True, index=True)

    created_by = Column(String(255), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ProjectFile project={self.project_id} file={self.file_id} table={self.table_name}>"
