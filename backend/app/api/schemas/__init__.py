"""API schema package."""

from app.api.schemas.sample_automation import (
    ComputedVariableRequest,
    DncNumbersCreate,
    ExclusionCreate,
    ExclusionResponse,
    ExclusionUpdate,
    ExtractRequest,
    HeaderMappingLookupRequest,
    HeaderMappingResponse,
    InclusionCreate,
    InclusionResponse,
    InclusionUpdate,
    ReprocessRequest,
    SaveHeaderMappingsRequest,
)

__all__ = [
    "ComputedVariableRequest",
    "DncNumbersCreate",
    "ExclusionCreate",
    "ExclusionResponse",
    "ExclusionUpdate",
    "ExtractRequest",
    "HeaderMappingLookupRequest",
    "HeaderMappingResponse",
    "InclusionCreate",
    "InclusionResponse",
    "InclusionUpdate",
    "ReprocessRequest",
    "SaveHeaderMappingsRequest",
]
