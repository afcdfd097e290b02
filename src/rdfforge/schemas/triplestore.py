"""Pydantic schemas for triplestore connections."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class TriplestoreCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: str = "memory"
    url: str | None = None
    graph_store_url: str | None = None
    default_graph: str | None = None
    auth_type: str = "none"
    auth_config: dict[str, Any] | None = None
    is_default: bool = False


class TriplestoreResponse(BaseModel):
    id: str
    name: str
    type: str
    url: str | None
    graph_store_url: str | None
    default_graph: str | None
    auth_type: str
    is_default: bool
    health_status: str
    last_health_check: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class TriplestoreListResponse(BaseModel):
    triplestores: list[TriplestoreResponse]
    total: int


class HealthResponse(BaseModel):
    id: str
    name: str
    success: bool
    latency_ms: int
    message: str


class GraphInfo(BaseModel):
    uri: str
    triple_count: int


class GraphListResponse(BaseModel):
    graphs: list[GraphInfo]
    total: int


class SparqlRequest(BaseModel):
    query: str
    graph_uri: str | None = None


class SparqlResponse(BaseModel):
    variables: list[str]
    bindings: list[dict[str, Any]]
    boolean: bool | None
    execution_time: int


class ResourceResponse(BaseModel):
    uri: str
    types: list[str]
    label: str | None
    properties: list[dict[str, Any]]
