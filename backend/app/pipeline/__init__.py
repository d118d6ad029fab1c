"""
Post-processing pipeline for materialized sample tables.

This package provides the step-based engine that runs the ordered,
vendor/client-conditional cleanup stages against one sample table, with
per-stage logging, error handling, and a critical-path stop.
"""

from app.pipeline.engine import PipelineEngine, PipelineResult
from app.pipeline.context import PipelineContext, StepResult
from app.pipeline.step import PipelineStep
from app.pipeline.strategy import StageStrategy

__all__ = [
    "PipelineEngine",
    "PipelineResult",
    "PipelineContext",
    "PipelineStep",
    "StageStrategy",
    "StepResult",
]
