"""Pydantic schemas for the dimension registry."""

from datetime import datetime

from pydantic import BaseModel, Field


class DimensionCreate(BaseModel):
    uri: str = Field(min_length=1, max_length=1024)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    type: str = "coded"
    base_uri: str | None = None


class DimensionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class DimensionResponse(BaseModel):
    id: str
    uri: str
    name: str
    description: str | None
    type: str
    base_uri: str | None
    value_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class DimensionListResponse(BaseModel):
    dimensions: list[DimensionResponse]
    total: int


class DimensionValueCreate(BaseModel):
    code: str
    label: str | None = None
    uri: str | None = None
    parent: str | None = None
    sort_order: int = 0


class DimensionValuesCreate(BaseModel):
    values: list[DimensionValueCreate] = Field(min_length=1)


class DimensionValueResponse(BaseModel):
    id: str
    code: str
    uri: str
    label: str | None
    parent_code: str | None
    sort_order: int

    model_config = {"from_attributes": True}


class DimensionValueListResponse(BaseModel):
    values: list[DimensionValueResponse]
    total: int


class HierarchyNode(BaseModel):
    code: str
    uri: str
    label: str | None
    children: list["HierarchyNode"] = []


class HierarchyResponse(BaseModel):
    dimension_id: str
    roots: list[HierarchyNode]
