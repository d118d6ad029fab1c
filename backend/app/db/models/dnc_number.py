"""DncNumber: one listed do-not-call phone number (10 digits)."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String

from app.db.models.base import Base, utcnow


class DncNumber(Base):
    """Do-not-call list entry."""

    __tablename__ = "dnc_numbers"

    phone_number = Column(String(10), primary_key=True)
    added_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<DncNumber {self.phone_number}>"
