"""Pydantic schemas for job schedules."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ScheduleCreate(BaseModel):
    pipeline_id: str
    cron_expression: str
    variables: dict[str, Any] | None = None
    priority: int = Field(default=5, ge=1, le=10)
    is_active: bool = True


class ScheduleUpdate(BaseModel):
    cron_expression: str | None = None
    variables: dict[str, Any] | None = None
    priority: int | None = Field(default=None, ge=1, le=10)
    is_active: bool | None = None


class ScheduleResponse(BaseModel):
    id: str
    pipeline_id: str
    cron_expression: str
    variables: dict
    priority: int
    is_active: bool
    last_run: datetime | None
    next_run: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ScheduleListResponse(BaseModel):
    schedules: list[ScheduleResponse]
    total: int
