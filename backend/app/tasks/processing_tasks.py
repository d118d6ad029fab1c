"""
Celery tasks: post-processing of existing sample tables.

Wires the PipelineEngine into the Celery task system.  Each task runs its
own event loop with ``asyncio.run`` and a throwaway unpooled engine, so
no connection outlives the loop it was opened on.
"""

import asyncio

import structlog

from app.tasks import celery_app
from app.db.session import make_session_factory
from app.pipeline.engine import PipelineEngine, PipelineResult

logger = structlog.get_logger("tasks.processing")


async def _run_pipeline(
    table_name: str,
    client_id: int | None,
    vendor_id: int | None,
    age_calculation_mode: str | None,
) -> PipelineResult:
    engine, factory = make_session_factory()
    try:
        async with factory() as session:
            return await PipelineEngine().run(
                db=session,
                table_name=table_name,
                client_id=client_id,
                vendor_id=vendor_id,
                age_calculation_mode=age_calculation_mode,
            )
    finally:
        await engine.dispose()


@celery_app.task(bind=True, name="app.tasks.processing_tasks.post_process_table")
def post_process_table(
    self,
    table_name: str,
    client_id: int | None = None,
    vendor_id: int | None = None,
    age_calculation_mode: str | None = None,
):
    """
    Re-run the post-processing stages for ``table_name``.

    Stages commit as they complete, so a crash leaves the table in the
    state of the last finished stage.
    """
    task_log = logger.bind(
        task_id=self.request.id,
        table=table_name,
        client_id=client_id,
        vendor_id=vendor_id,
    )
    task_log.info("Post-processing task started")

    try:
        result = asyncio.run(_run_pipeline(table_name, client_id, vendor_id, age_calculation_mode))
    except Exception as exc:
        task_log.exception("Post-processing task failed", error=str(exc))
        raise

    task_log.info(
        "Post-processing task finished",
        pipeline_status=result.status,
        steps_completed=result.steps_completed,
        total_steps=result.total_steps,
        failed_steps=result.failed_steps,
        duration_ms=result.total_duration_ms,
    )

    return {
        "execution_id": result.execution_id,
        "status": result.status,
        "steps_completed": result.steps_completed,
        "total_steps": result.total_steps,
        "failed_steps": result.failed_steps,
        "duration_ms": result.total_duration_ms,
        "error": result.error,
    }
