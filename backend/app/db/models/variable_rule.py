"""
Variable exclusion rules.

VariableExclusion is global: any uploaded column with that (uppercase) name
is dropped before storage.  ProjectVariableInclusion re-includes an excluded
column for one project, optionally under a new name.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from app.db.models.base import Base, utcnow


class VariableExclusion(Base):
    """Globally excluded variable name."""

    __tablename__ = "variable_exclusions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    variable_name = Column(String(255), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    created_by = Column(String(255), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<VariableExclusion {self.variable_name}>"


class ProjectVariableInclusion(Base):
    """Per-project override that keeps (and renames) an excluded variable."""

    __tablename__ = "project_variable_inclusions"
    __table_args__ = (
        UniqueConstraint("project_id", "original_variable", name="uq_project_inclusion"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(50), nullable=False, index=True)
    original_variable = Column(String(255), nullable=False)
    mapped_variable = Column(String(255), nullable=False)
    created_by = Column(String(255), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ProjectVariableInclusion project={self.project_id} {self.original_variable}->{self.mapped_variable}>"
