"""AgeRange: bracket lookup used to populate AGERANGE from IAGE."""

from __future__ import annotations

from sqlalchemy import Column, Integer, String

from app.db.models.base import Base


class AgeRange(Base):
    """Inclusive age bracket identified by an integer code."""

    __tablename__ = "age_ranges"

    code = Column(Integer, primary_key=True, autoincrement=False)
    min_age = Column(Integer, nullable=False)
    max_age = Column(Integer, nullable=False)
    label = Column(String(50), nullable=False)

    def __repr__(self) -> str:
        return f"<AgeRange {self.code}: {self.min_age}-{self.max_age}>"
