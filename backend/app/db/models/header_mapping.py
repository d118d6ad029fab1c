"""
HeaderMapping: persisted rename rule applied to uploaded column headers.

A rule may be scoped to a vendor, a client, both, or neither.  Lookup
precedence is resolved in ``app.repositories.header_mappings``.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint

from app.db.models.base import Base, utcnow


class HeaderMapping(Base):
    """One original → mapped header rule."""

    __tablename__ = "header_mappings"
    __table_args__ = (
        UniqueConstraint("original_header", "vendor_id", "client_id", name="uq_header_mapping_scope"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)

    # ── Rule ──────────────────────────────────
    original_header = Column(String(255), nullable=False, index=True)
    mapped_header = Column(String(255), nullable=False)

    # ── Scope (NULL = any) ────────────────────
    vendor_id = Column(Integer, nullable=True, index=True)
    client_id = Column(Integer, nullable=True, index=True)

    # ── Timestamps ────────────────────────────
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<HeaderMapping {self.original_header}->{self.mapped_header} "
            f"vendor={self.vendor_id} client={self.client_id}>"
        )
