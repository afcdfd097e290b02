"""Pydantic schemas for jobs."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class JobCreate(BaseModel):
    pipeline_id: str
    variables: dict[str, Any] | None = None
    priority: int = Field(default=5, ge=1, le=10)
    dry_run: bool = False
    created_by: str | None = None


class JobRetry(BaseModel):
    created_by: str | None = None


class JobStepResponse(BaseModel):
    id: str
    position: int
    step_id: str
    name: str
    operation: str
    operation_type: str
    status: str
    started_at: datetime | None
    completed_at: datetime | None
    duration_ms: int | None
    metrics: dict | None
    error: dict | None

    model_config = {"from_attributes": True}


class JobResponse(BaseModel):
    id: str
    pipeline_id: str
    pipeline_name: str
    pipeline_version: int
    status: str
    progress: int
    variables: dict
    priority: int
    dry_run: bool
    triggered_by: str
    retry_of: str | None
    cancel_requested: bool
    started_at: datetime | None
    completed_at: datetime | None
    duration_ms: int | None
    metrics: dict
    error_kind: str | None
    error_message: str | None
    error_details: dict | None
    output_graph: str | None
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class JobDetailResponse(JobResponse):
    steps: list[JobStepResponse] = []


class JobListResponse(BaseModel):
    jobs: list[JobResponse]
    total: int


class JobLogResponse(BaseModel):
    id: int
    timestamp: datetime
    level: str
    step: str | None
    message: str
    details: dict | None

    model_config = {"from_attributes": True}


class JobLogListResponse(BaseModel):
    logs: list[JobLogResponse]
    total: int


class JobStatsResponse(BaseModel):
    running: int
    pending: int
    completed_today: int
    failed_today: int
    queued: int
