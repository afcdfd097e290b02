"""Pydantic schemas for SHACL validation runs."""

from pydantic import BaseModel, Field, model_validator


class ValidationRequest(BaseModel):
    shape_id: str | None = None
    shape_content: str | None = None
    shape_format: str = "turtle"
    data: str | None = None
    data_format: str = "turtle"
    triplestore_id: str | None = None
    graph_uri: str | None = None
    max_violations: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_sources(self):
        if not self.shape_id and not self.shape_content:
            raise ValueError("shape_id or shape_content is required")
        if self.data is None and not self.graph_uri:
            raise ValueError("data or graph_uri is required")
        return self


class ViolationResponse(BaseModel):
    focus_node: str
    path: str | None
    value: str | None
    severity: str
    constraint: str
    source_shape: str
    message: str


class ValidationResponse(BaseModel):
    conforms: bool
    violation_count: int
    warning_count: int
    info_count: int
    focus_node_count: int
    violations: list[ViolationResponse]
    execution_time: int
