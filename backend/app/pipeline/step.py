"""
PipelineStep: abstract base class for all post-processing stages.

The engine calls execute() and records timing, logging, and errors
automatically.  Stages only need to implement the business logic.

A stage marked ``critical`` stops the run when it fails; any other
failure is recorded and the engine moves on to the next stage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from app.core.constants import StepStatus
from app.pipeline.context import PipelineContext, StepResult


class PipelineStep(ABC):
    """
    Base class for every pipeline stage.

    Subclasses MUST implement:
        - name (str)         : unique identifier, e.g. "format_phone_numbers"
        - description (str)  : human-readable label for logs/progress events
        - execute(ctx)       : the actual business logic

    Subclasses MAY implement:
        - should_skip(ctx)   : return True to skip this stage conditionally
    """

    name: str = "unnamed_step"
    description: str = "No description"
    critical: bool = False

    @abstractmethod
    async def execute(self, ctx: PipelineContext) -> StepResult:
        """
        Run the stage's logic.  Must return a StepResult.

        Raise StepExecutionError on failure.
        """
        ...

    async def should_skip(self, ctx: PipelineContext) -> bool:
        """Return True to skip this stage.  Default: never skip."""
        return False

    # ─── Helpers available to all stages ───────────────

    def _finish(
        self,
        status: str,
        started_at: datetime,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StepResult:
        now = datetime.now(timezone.utc)
        return StepResult(
            step_name=self.name,
            status=status,
            started_at=started_at,
            completed_at=now,
            duration_ms=int((now - started_at).total_seconds() * 1000),
            error=error,
            metadata=metadata or {},
        )

    def _success(
        self,
        started_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> StepResult:
        """Build a successful StepResult with timing."""
        return self._finish(StepStatus.COMPLETED, started_at, metadata=metadata)

    def _skipped(
        self,
        started_at: datetime,
        reason: str,
        metadata: dict[str, Any] | None = None,
    ) -> StepResult:
        """Build a SKIPPED result (e.g. the source column is absent)."""
        return self._finish(StepStatus.SKIPPED, started_at, metadata={"reason": reason, **(metadata or {})})

    def _now(self) -> datetime:
        """UTC-aware now."""
        return datetime.now(timezone.utc)
