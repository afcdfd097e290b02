"""Pydantic schemas for pipelines and the operation catalog."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class PipelineCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    definition: str
    definition_format: str = "yaml"
    description: str | None = None
    tags: list[str] | None = None
    status: str = "active"
    created_by: str | None = None


class PipelineUpdate(BaseModel):
    definition: str | None = None
    definition_format: str | None = None
    description: str | None = None
    tags: list[str] | None = None
    status: str | None = None
    version: int | None = None  # the version the caller last read
    change_message: str | None = None


class PipelineDuplicate(BaseModel):
    name: str | None = None


class PipelineValidate(BaseModel):
    definition: str
    definition_format: str = "yaml"


class PipelineRun(BaseModel):
    variables: dict[str, Any] | None = None
    priority: int = Field(default=5, ge=1, le=10)
    dry_run: bool = False
    created_by: str | None = None


class PipelineResponse(BaseModel):
    id: str
    name: str
    description: str | None
    definition: str
    definition_format: str
    variables: dict
    tags: list[str] | None
    version: int
    status: str
    steps_count: int
    last_run_at: datetime | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PipelineListResponse(BaseModel):
    pipelines: list[PipelineResponse]
    total: int


class PipelineVersionResponse(BaseModel):
    version: int
    definition: str
    definition_format: str
    variables: dict
    steps: list[dict]
    change_message: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class PipelineVersionListResponse(BaseModel):
    versions: list[PipelineVersionResponse]
    total: int


class DefinitionReport(BaseModel):
    valid: bool
    errors: list[dict]
    warnings: list[dict]
    steps_count: int


class OperationResponse(BaseModel):
    name: str
    type: str
    description: str
    parameters: dict[str, dict]


class OperationListResponse(BaseModel):
    operations: list[OperationResponse]
    total: int
