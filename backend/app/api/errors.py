"""Translation of domain errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from app.pipeline.errors import (
    CriticalStageError,
    ExtractionError,
    MaterializationError,
    PipelineError,
    StorageError,
    TableNotFoundError,
    ValidationError,
)

_STATUS: dict[type[PipelineError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    TableNotFoundError: status.HTTP_404_NOT_FOUND,
    MaterializationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    CriticalStageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ExtractionError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    StorageError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_error(exc: PipelineError) -> HTTPException:
    """``{success: false, message, **details}`` with the mapped status code."""
    code = next(
        (value for cls, value in _STATUS.items() if isinstance(exc, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return HTTPException(
        status_code=code,
        detail={"success": False, "message": str(exc), **exc.details},
    )
