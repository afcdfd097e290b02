"""VALIDATION steps: check the job graph against a SHACL shape."""

from __future__ import annotations

from rdfforge.core.errors import DataQualityError, InputValidationError
from rdfforge.pipeline.context import JobContext
from rdfforge.repositories.shape_repo import ShapeRepository
from rdfforge.shacl import load_shapes, validate


async def _shape_content(ctx: JobContext, params: dict) -> tuple[str, str]:
    if params.get("shapeContent"):
        return params["shapeContent"], params["shapeFormat"]
    async with ctx.resources.database.session() as session:
        shape = await ShapeRepository(session).get_by_id(params["shapeId"])
    if shape is None:
        raise InputValidationError(
            f"Shape '{params['shapeId']}' not found",
            errors=[{"path": "shapeId", "message": "unknown shape"}],
        )
    return shape.content, shape.content_format


async def validate_shacl(ctx: JobContext, params: dict) -> dict:
    content, fmt = await _shape_content(ctx, params)
    report = validate(load_shapes(content, fmt), ctx.graph)
    summary = report.to_dict(max_violations=params["maxViolations"])
    metrics = {
        "conforms": report.conforms,
        "violation_count": report.violation_count,
        "warning_count": report.warning_count,
        "focus_node_count": report.focus_node_count,
        "execution_time": report.execution_time,
    }

    if report.conforms:
        ctx.log(f"Graph conforms ({report.focus_node_count} focus nodes, {report.warning_count} warnings)")
        return metrics

    message = f"SHACL validation failed: {report.violation_count} violations on {report.focus_node_count} focus nodes"
    if params["failOnViolation"]:
        ctx.log(message, "error", {"violations": summary["violations"]})
        raise DataQualityError(
            message,
            errors=summary["violations"],
            details={"metrics": metrics},
        )
    ctx.warn(message + " (continuing, failOnViolation is false)", {"violations": summary["violations"]})
    return metrics


HANDLERS = {
    "validate-shacl": validate_shacl,
}
