"""
PipelineContext: mutable state object carried through every stage.

One context per post-processing run.  It identifies the sample table and
the vendor/client the upload belongs to (which decides the stage list),
holds the table store the stages read and write through, and collects
per-stage results for the final report.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.core.constants import AgeCalculationMode, TARRANCE_CLIENT_ID

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.samples.store import SampleTableStore


# ═══════════════════════════════════════════════════════════
#  StepResult
# ═══════════════════════════════════════════════════════════

@dataclass
class StepResult:
    """Outcome of a single pipeline stage execution."""

    step_name: str
    status: str                     # StepStatus value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialise for API responses / task results."""
        return {
            "step_name": self.step_name,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "metadata": self.metadata,
        }


# ═══════════════════════════════════════════════════════════
#  PipelineContext
# ═══════════════════════════════════════════════════════════

@dataclass
class PipelineContext:
    """
    Carries all state between post-processing stages.

    Stages communicate through ``extra`` (e.g. the age stage records
    whether IAGE was produced so the birth-year fallback can skip).
    """

    # ─── Identity (set at init) ────────────────────────
    table_name: str
    db: AsyncSession
    store: SampleTableStore
    client_id: int | None = None
    vendor_id: int | None = None
    age_calculation_mode: str | None = None
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    # ─── Execution tracking ────────────────────────────
    current_step_index: int = 0
    total_steps: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    # ─── Arbitrary stage-to-stage data ─────────────────
    extra: dict[str, Any] = field(default_factory=dict)

    # ─── Identity helpers ──────────────────────────────

    @property
    def is_tarrance(self) -> bool:
        return self.client_id == TARRANCE_CLIENT_ID

    @property
    def use_january_reference(self) -> bool:
        """Birth-year ages use Jan 1 unless the caller asked for today."""
        return (self.age_calculation_mode or AgeCalculationMode.JANUARY) != AgeCalculationMode.TODAY

    # ─── General helpers ───────────────────────────────

    def add_error(self, error: str) -> None:
        """Record a non-fatal error."""
        self.errors.append(error)

    def set_extra(self, key: str, value: Any) -> None:
        """Store arbitrary data for downstream stages."""
        self.extra[key] = value

    def get_extra(self, key: str, default: Any = None) -> Any:
        """Retrieve data stored by an upstream stage."""
        return self.extra.get(key, default)

    def to_summary_dict(self) -> dict[str, Any]:
        """Compact summary for logging / responses."""
        return {
            "execution_id": self.execution_id,
            "table_name": self.table_name,
            "client_id": self.client_id,
            "vendor_id": self.vendor_id,
            "age_calculation_mode": self.age_calculation_mode,
            "steps_completed": len(self.step_results),
            "total_steps": self.total_steps,
            "errors": self.errors,
        }
