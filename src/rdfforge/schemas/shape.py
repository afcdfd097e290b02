"""Pydantic schemas for SHACL shapes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class ShapeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    content: str
    content_format: str = "turtle"
    uri: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    is_template: bool = False
    created_by: str | None = None


class ShapeUpdate(BaseModel):
    content: str | None = None
    content_format: str | None = None
    name: str | None = None
    description: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    version: int | None = None
    change_message: str | None = None


class ShapeResponse(BaseModel):
    id: str
    uri: str
    name: str
    description: str | None
    target_class: str | None
    content: str
    content_format: str
    category: str | None
    tags: list[str] | None
    is_template: bool
    version: int
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ShapeListResponse(BaseModel):
    shapes: list[ShapeResponse]
    total: int


class ShapeVersionResponse(BaseModel):
    version: int
    content: str
    content_format: str
    change_message: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ShapeVersionListResponse(BaseModel):
    versions: list[ShapeVersionResponse]
    total: int


class ShapeSyntaxRequest(BaseModel):
    content: str
    content_format: str = "turtle"


class ShapeSyntaxReport(BaseModel):
    valid: bool
    errors: list[dict]
    warnings: list[dict]
    shape_count: int


class ShapeInferRequest(BaseModel):
    data: str
    data_format: str = "turtle"
    target_class: str | None = None
    shape_uri: str | None = None


class ShapeInferResponse(BaseModel):
    definition: dict[str, Any]
    content: str


class PropertyDefinition(BaseModel):
    """Structured property shape; `class` is accepted as the JSON name of shape_class."""

    path: str
    name: str | None = None
    description: str | None = None
    min_count: int | None = Field(default=None, ge=0)
    max_count: int | None = Field(default=None, ge=0)
    datatype: str | None = None
    shape_class: str | None = Field(default=None, alias="class")
    node_kind: str | None = None
    pattern: str | None = None
    flags: str | None = None
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    min_inclusive: Any = None
    max_inclusive: Any = None
    min_exclusive: Any = None
    max_exclusive: Any = None
    values_in: list[Any] | None = Field(default=None, alias="in")
    has_value: Any = None
    node: str | None = None
    severity: str | None = None
    message: str | None = None

    model_config = {"populate_by_name": True}


class ShapeDefinition(BaseModel):
    uri: str
    name: str | None = None
    target_class: str | None = None
    closed: bool = False
    ignored_properties: list[str] | None = None
    severity: str | None = None
    prefixes: dict[str, str] | None = None
    properties: list[PropertyDefinition] = []


class ShapeGenerateResponse(BaseModel):
    content: str
    content_format: str = "turtle"
