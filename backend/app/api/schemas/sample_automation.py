"""Sample automation request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ─── Header mappings ──────────────────────────────────

class HeaderMappingItem(CamelModel):
    original: str | None = None
    mapped: str | None = None


class SaveHeaderMappingsRequest(CamelModel):
    vendor_id: int | None = None
    client_id: int | None = None
    mappings: list[HeaderMappingItem] = Field(default_factory=list)


class HeaderMappingLookupRequest(CamelModel):
    vendor_id: int | None = None
    client_id: int | None = None
    original_headers: list[str] = Field(default_factory=list)


class HeaderMappingResponse(CamelModel):
    id: int
    original_header: str
    mapped_header: str
    vendor_id: int | None
    client_id: int | None


# ─── Variable exclusions / inclusions ─────────────────

class ExclusionCreate(CamelModel):
    variable_name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None


class ExclusionUpdate(CamelModel):
    description: str | None = None


class DncNumbersCreate(CamelModel):
    phone_numbers: list[str] = Field(..., min_length=1)


class ExclusionResponse(CamelModel):
    id: int
    variable_name: str
    description: str | None
    created_by: str
    created_at: datetime | None = None


class InclusionCreate(CamelModel):
    project_id: str = Field(..., min_length=1, max_length=50)
    original_variable: str = Field(..., min_length=1, max_length=255)
    mapped_variable: str = Field(..., min_length=1, max_length=255)


class InclusionUpdate(CamelModel):
    mapped_variable: str = Field(..., min_length=1, max_length=255)


class InclusionResponse(CamelModel):
    id: int
    project_id: str
    original_variable: str
    mapped_variable: str
    created_by: str
    created_at: datetime | None = None


# ─── Extraction ───────────────────────────────────────

class ExtractFileNames(CamelModel):
    single: str | None = None
    landline: str | None = None
    cell: str | None = None


class ExtractRequest(CamelModel):
    table_name: str = Field(..., min_length=1)
    selected_headers: list[str] = Field(default_factory=list)
    split_mode: Literal["all", "split"] = "all"
    selected_age_range: int | None = None
    householding_enabled: bool = False
    file_type: Literal["landline", "cell"] | None = None
    file_names: ExtractFileNames = Field(default_factory=ExtractFileNames)
    client_id: int | None = None


# ─── Computed variables ───────────────────────────────

class ComputedCondition(CamelModel):
    variable: str
    operator: str
    value: Any = None


class ComputedRule(CamelModel):
    conditions: list[ComputedCondition] = Field(default_factory=list)
    condition_logic: Literal["AND", "OR"] = "AND"
    output_value: Any = None


class ComputedVariableRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=128)
    output_type: Literal["INT", "TEXT", "CHAR", "VARCHAR"] = "TEXT"
    output_length: int | None = Field(default=None, ge=1)
    rules: list[ComputedRule] = Field(default_factory=list)
    default_value: Any = None


# ─── Reprocess ────────────────────────────────────────

class ReprocessRequest(CamelModel):
    client_id: int | None = None
    vendor_id: int | None = None
    age_calculation_mode: Literal["january", "today"] | None = None
