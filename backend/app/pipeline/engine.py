"""
PipelineEngine: runs the post-processing stages against one sample table.

Responsibilities:
    - Resolve the stage list for the vendor/client via StageStrategy
    - Execute each stage with timing, logging, and error handling
    - Stop on a failed critical stage; record and continue otherwise
    - Publish per-stage progress through an optional callback
    - Return a complete PipelineResult
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import PipelineStatus, StepStatus
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.errors import StepExecutionError
from app.pipeline.step import PipelineStep
from app.pipeline.strategy import StageStrategy
from app.samples.store import SampleTableStore

# (step_number, total_steps, message)
ProgressCallback = Callable[[int, int, str], Awaitable[None]]


@dataclass
class PipelineResult:
    """Final outcome of a post-processing run."""

    execution_id: str
    status: str                     # PipelineStatus value
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_duration_ms: int = 0
    steps_completed: int = 0
    total_steps: int = 0
    step_results: list[dict[str, Any]] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)
    context_summary: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def aborted(self) -> bool:
        """True when a critical stage failed."""
        return self.status == PipelineStatus.FAILED

    def metadata_for(self, step_name: str) -> dict[str, Any]:
        """Metadata recorded by one stage (empty if it did not run)."""
        for item in self.step_results:
            if item["step_name"] == step_name:
                return item["metadata"]
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
            "steps_completed": self.steps_completed,
            "total_steps": self.total_steps,
            "step_results": self.step_results,
            "failed_steps": self.failed_steps,
            "error": self.error,
        }


class PipelineEngine:
    """
    Runs an ordered list of PipelineStep objects against a PipelineContext.

    Usage::

        engine = PipelineEngine()
        result = await engine.run(
            db=session,
            table_name="SA_1234_1018_0930",
            client_id=102,
            vendor_id=4,
        )
    """

    def __init__(self, strategy: StageStrategy | None = None) -> None:
        self.strategy = strategy or StageStrategy()
        self.logger = structlog.get_logger("pipeline.engine")

    async def run(
        self,
        *,
        db: AsyncSession,
        table_name: str,
        client_id: int | None = None,
        vendor_id: int | None = None,
        age_calculation_mode: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """Resolve the stage list for this upload and run it."""
        started_at = datetime.now(timezone.utc)

        ctx = PipelineContext(
            table_name=table_name,
            db=db,
            store=SampleTableStore(db, table_name),
            client_id=client_id,
            vendor_id=vendor_id,
            age_calculation_mode=age_calculation_mode,
        )

        log = self.logger.bind(
            execution_id=ctx.execution_id,
            table=table_name,
            client_id=client_id,
            vendor_id=vendor_id,
        )

        steps = self.strategy.resolve(client_id=client_id, vendor_id=vendor_id)
        log.info("Post-processing started", stages=[s.name for s in steps])

        result = await self.run_steps(ctx, steps, progress=progress)
        result.started_at = started_at

        log.info(
            "Post-processing finished",
            status=result.status,
            steps_completed=result.steps_completed,
            total_steps=result.total_steps,
            failed_steps=result.failed_steps,
            duration_ms=result.total_duration_ms,
        )

        return result

    async def run_steps(
        self,
        ctx: PipelineContext,
        steps: list[PipelineStep],
        progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """
        Execute an ordered list of stages against a context.

        Can be called directly (bypassing strategy resolution) for testing
        or when you have a pre-built stage list.
        """
        started_at = datetime.now(timezone.utc)
        ctx.total_steps = len(steps)

        log = self.logger.bind(
            execution_id=ctx.execution_id,
            table=ctx.table_name,
            total_steps=len(steps),
        )

        pipeline_status = PipelineStatus.RUNNING
        steps_completed = 0
        failed_steps: list[str] = []
        fatal_error: str | None = None

        for index, step in enumerate(steps):
            ctx.current_step_index = index
            step_number = index + 1

            step_log = log.bind(
                step_name=step.name,
                step_index=step_number,
                critical=step.critical,
            )

            if progress is not None:
                try:
                    await progress(step_number, len(steps), step.description)
                except Exception as exc:
                    step_log.warning("Progress publish failed", error=str(exc))

            # ── Check skip condition ──────────────────
            try:
                if await step.should_skip(ctx):
                    step_log.info("Step skipped")
                    ctx.step_results.append(StepResult(
                        step_name=step.name,
                        status=StepStatus.SKIPPED,
                        started_at=datetime.now(timezone.utc),
                        completed_at=datetime.now(timezone.utc),
                    ))
                    steps_completed += 1
                    continue
            except Exception as exc:
                step_log.warning("should_skip raised, running step anyway", error=str(exc))

            # ── Execute step ──────────────────────────
            step_log.info(f"Step {step_number}/{len(steps)}: {step.description}")

            result = await self._execute(step, ctx, step_log)
            ctx.step_results.append(result)

            if result.status in (StepStatus.COMPLETED, StepStatus.SKIPPED):
                steps_completed += 1
                step_log.info(
                    "Step completed" if result.status == StepStatus.COMPLETED else "Step skipped",
                    duration_ms=result.duration_ms,
                    metadata=result.metadata,
                )
                continue

            failed_steps.append(step.name)
            ctx.add_error(f"Step '{step.name}' failed: {result.error}")

            if step.critical:
                step_log.error(
                    "Critical step failed, pipeline stopping",
                    error=result.error,
                    duration_ms=result.duration_ms,
                )
                pipeline_status = PipelineStatus.FAILED
                fatal_error = f"Step '{step.name}' failed: {result.error}"
                break

            step_log.warning(
                "Non-critical step failed, continuing",
                error=result.error,
                duration_ms=result.duration_ms,
            )

        # ── Finalise ──────────────────────────────────
        completed_at = datetime.now(timezone.utc)
        total_duration_ms = int((completed_at - started_at).total_seconds() * 1000)

        if pipeline_status != PipelineStatus.FAILED:
            pipeline_status = PipelineStatus.PARTIALLY_COMPLETED if failed_steps else PipelineStatus.COMPLETED

        return PipelineResult(
            execution_id=ctx.execution_id,
            status=pipeline_status,
            started_at=started_at,
            completed_at=completed_at,
            total_duration_ms=total_duration_ms,
            steps_completed=steps_completed,
            total_steps=len(steps),
            step_results=[sr.to_dict() for sr in ctx.step_results],
            failed_steps=failed_steps,
            context_summary=ctx.to_summary_dict(),
            error=fatal_error,
        )

    async def _execute(
        self,
        step: PipelineStep,
        ctx: PipelineContext,
        log: structlog.BoundLogger,
    ) -> StepResult:
        """Execute a stage once, turning any exception into a FAILED result."""
        started_at = datetime.now(timezone.utc)
        try:
            return await step.execute(ctx)

        except StepExecutionError as exc:
            return StepResult(
                step_name=step.name,
                status=StepStatus.FAILED,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                error=str(exc),
            )

        except Exception as exc:
            log.exception("Unexpected error in step", error=str(exc))
            return StepResult(
                step_name=step.name,
                status=StepStatus.FAILED,
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                error=f"Unexpected: {exc}",
                metadata={"traceback": traceback.format_exc()},
            )
