"""
Domain-specific exception hierarchy for sample processing.

All exceptions inherit from PipelineError so callers can catch broadly or
narrowly as needed.  Each exception carries structured context (table
name, stage name, etc.) for logging/debugging.

The API layer maps these onto HTTP status codes:
    ValidationError                          → 400
    MaterializationError, CriticalStageError → 500
    ExtractionError                          → 500
    TableNotFoundError                       → 404
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all sample-processing errors."""

    def __init__(
        self,
        message: str,
        *,
        execution_id: str | None = None,
        step_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.execution_id = execution_id
        self.step_name = step_name
        self.details = details or {}
        super().__init__(message)


class StepExecutionError(PipelineError):
    """A stage failed during execution."""
    pass


class CriticalStageError(PipelineError):
    """A critical stage failed and the remaining stages were not run."""
    pass


class ValidationError(PipelineError):
    """Request or file content rejected before any side effect."""
    pass


class MaterializationError(PipelineError):
    """Creating or loading a sample table failed."""
    pass


class ExtractionError(PipelineError):
    """Producing delivery files from a sample table failed."""
    pass


class APIRequestError(PipelineError):
    """A request to an external service failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_body: str | None = None,
        **kwargs,
    ) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message, **kwargs)


class TableNotFoundError(PipelineError):
    """The named sample table does not exist."""
    pass


class StorageError(PipelineError):
    """Reading or writing workspace files failed."""
    pass
