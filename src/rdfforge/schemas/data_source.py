"""Pydantic schemas for uploaded data sources."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ColumnInfo(BaseModel):
    name: str
    type: str
    nullable: bool
    null_count: int
    unique_count: int
    sample_values: list[Any]


class DataSourceResponse(BaseModel):
    id: str
    name: str
    original_filename: str
    format: str
    size_bytes: int
    row_count: int | None
    column_count: int | None
    column_schema: list[ColumnInfo] | None = Field(default=None, serialization_alias="schema")
    encoding: str
    delimiter: str | None
    has_header: bool
    uploaded_by: str | None
    uploaded_at: datetime
    analyzed_at: datetime | None

    model_config = {"from_attributes": True}


class DataSourceListResponse(BaseModel):
    data_sources: list[DataSourceResponse]
    total: int


class DataPreview(BaseModel):
    columns: list[str]
    data: list[dict[str, Any]]
    column_schema: list[ColumnInfo] = Field(serialization_alias="schema")
    total_rows: int


class DataAnalysis(BaseModel):
    columns: list[ColumnInfo]
    row_count: int
    row_errors: int = 0


class FormatDetection(BaseModel):
    format: str
    encoding: str
    delimiter: str | None
    confidence: float
