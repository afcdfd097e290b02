"""Pipeline definitions: parsing YAML/JSON/Turtle documents into ordered step lists."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any

import yaml
from rdflib import RDF, Literal, Namespace

from rdfforge.core.errors import InputValidationError
from rdfforge.core.values import check_variables
from rdfforge.pipeline.operations import OPERATIONS, OperationType, check_params
from rdfforge.rdf import parse_graph

FORGE = Namespace("https://rdf-forge.dev/pipeline#")


@dataclass
class StepDefinition:
    id: str
    name: str
    operation: str
    operation_type: str
    params: dict[str, Any] = field(default_factory=dict)
    timeout_seconds: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StepDefinition":
        return cls(**data)


@dataclass
class PipelineDefinition:
    steps: list[StepDefinition]
    variables: dict[str, Any] = field(default_factory=dict)
    description: str | None = None

    def steps_as_dicts(self) -> list[dict]:
        return [s.to_dict() for s in self.steps]


# ─── Loading ───

def _load_document(text: str, fmt: str) -> dict:
    fmt = fmt.lower()
    try:
        if fmt == "yaml":
            document = yaml.safe_load(text)
        elif fmt == "json":
            document = json.loads(text)
        elif fmt == "turtle":
            return _load_turtle(text)
        else:
            raise InputValidationError(
                f"Unsupported definition format '{fmt}'",
                errors=[{"path": "definition_format", "message": "expected yaml, json or turtle"}],
            )
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise InputValidationError(
            f"Could not parse {fmt} definition: {e}",
            errors=[{"path": "definition", "message": str(e)}],
        ) from e

    if document is None:
        return {"steps": []}
    if isinstance(document, list):
        return {"steps": document}
    if not isinstance(document, dict):
        raise InputValidationError(
            "Pipeline definition must be a mapping or a list of steps",
            errors=[{"path": "definition", "message": f"got {type(document).__name__}"}],
        )
    return document


def _turtle_value(term: Any) -> Any:
    if isinstance(term, Literal):
        return term.toPython() if not isinstance(term.toPython(), Literal) else str(term)
    return str(term)


def _load_turtle(text: str) -> dict:
    """Read a forge: vocabulary pipeline.

    Steps are forge:step nodes ordered by forge:order; params are
    [forge:name; forge:value] pairs, with forge:jsonValue for objects and arrays.
    """
    graph = parse_graph(text, "turtle")
    pipeline = graph.value(None, RDF.type, FORGE.Pipeline)
    if pipeline is None:
        raise InputValidationError(
            "Turtle definition has no forge:Pipeline",
            errors=[{"path": "definition", "message": "expected a resource of type forge:Pipeline"}],
        )

    def _pairs(subject, predicate) -> dict:
        pairs = {}
        for node in graph.objects(subject, predicate):
            name = graph.value(node, FORGE.name)
            if name is None:
                continue
            json_value = graph.value(node, FORGE.jsonValue)
            if json_value is not None:
                try:
                    pairs[str(name)] = json.loads(str(json_value))
                except json.JSONDecodeError as e:
                    raise InputValidationError(
                        f"Invalid forge:jsonValue for '{name}': {e}",
                        errors=[{"path": str(name), "message": str(e)}],
                    ) from e
            else:
                pairs[str(name)] = _turtle_value(graph.value(node, FORGE.value))
        return pairs

    steps = []
    for node in graph.objects(pipeline, FORGE.step):
        order = graph.value(node, FORGE.order)
        step: dict[str, Any] = {
            "id": _turtle_value(graph.value(node, FORGE.stepId)) if graph.value(node, FORGE.stepId) else None,
            "name": _turtle_value(graph.value(node, FORGE.name)) if graph.value(node, FORGE.name) else None,
            "operation": _turtle_value(graph.value(node, FORGE.operation)) if graph.value(node, FORGE.operation) else None,
            "params": _pairs(node, FORGE.param),
            "_order": order.toPython() if isinstance(order, Literal) else None,
        }
        timeout = graph.value(node, FORGE.timeoutSeconds)
        if timeout is not None:
            step["timeoutSeconds"] = _turtle_value(timeout)
        steps.append(step)

    if any(s["_order"] is None for s in steps):
        raise InputValidationError(
            "Every forge:step needs a forge:order",
            errors=[{"path": "steps", "message": "missing forge:order"}],
        )
    steps.sort(key=lambda s: s["_order"])
    for s in steps:
        s.pop("_order")

    description = graph.value(pipeline, FORGE.description)
    return {
        "steps": steps,
        "variables": _pairs(pipeline, FORGE.variable),
        "description": str(description) if description is not None else None,
    }


# ─── Parsing and checks ───

def _collect(document: dict) -> tuple[PipelineDefinition, list[dict], list[dict]]:
    errors: list[dict] = []
    warnings: list[dict] = []

    raw_steps = document.get("steps") or []
    if not isinstance(raw_steps, list):
        errors.append({"path": "steps", "message": "steps must be a list"})
        raw_steps = []

    try:
        variables = check_variables(document.get("variables") or {})
    except InputValidationError as e:
        errors.extend(e.errors)
        variables = {}

    steps: list[StepDefinition] = []
    seen_ids: set[str] = set()
    for index, raw in enumerate(raw_steps):
        path = f"steps[{index}]"
        if not isinstance(raw, dict):
            errors.append({"path": path, "message": "step must be a mapping"})
            continue

        step_id = str(raw.get("id") or f"step-{index + 1}")
        if step_id in seen_ids:
            errors.append({"path": f"{path}.id", "message": f"Duplicate step id '{step_id}'"})
        seen_ids.add(step_id)

        op_name = raw.get("operation") or raw.get("operationName")
        if not op_name:
            errors.append({"path": f"{path}.operation", "message": "operation is required"})
            continue
        operation = OPERATIONS.get(op_name)
        if operation is None:
            errors.append({"path": f"{path}.operation", "message": f"Unknown operation '{op_name}'"})
            continue

        declared_type = raw.get("type") or raw.get("operationType")
        if declared_type and str(declared_type).upper() != operation.type.value:
            errors.append({
                "path": f"{path}.type",
                "message": f"Operation '{op_name}' is {operation.type.value}, not {declared_type}",
            })

        params = raw.get("params", raw.get("parameters")) or {}
        if not isinstance(params, dict):
            errors.append({"path": f"{path}.params", "message": "params must be a mapping"})
            continue
        for problem in check_params(operation, params, allow_placeholders=True):
            errors.append({"path": f"{path}.params.{problem['param']}", "message": problem["message"]})

        timeout = raw.get("timeoutSeconds", raw.get("timeout_seconds"))
        if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
            errors.append({"path": f"{path}.timeoutSeconds", "message": "must be a positive number"})
            timeout = None

        steps.append(StepDefinition(
            id=step_id,
            name=str(raw.get("name") or step_id),
            operation=op_name,
            operation_type=operation.type.value,
            params=params,
            timeout_seconds=float(timeout) if timeout is not None else None,
        ))

    if steps and not any(s.operation_type == OperationType.OUTPUT.value for s in steps):
        warnings.append({"path": "steps", "message": "Pipeline has no OUTPUT step; generated quads are discarded"})
    if steps and steps[0].operation_type != OperationType.SOURCE.value:
        warnings.append({"path": "steps[0]", "message": "First step is not a SOURCE step"})

    definition = PipelineDefinition(steps=steps, variables=variables, description=document.get("description"))
    return definition, errors, warnings


def parse_definition(text: str, fmt: str = "yaml") -> PipelineDefinition:
    """Parse and check a definition.

    Raises:
        InputValidationError: With one entry per problem found
    """
    definition, errors, _ = _collect(_load_document(text, fmt))
    if errors:
        raise InputValidationError(f"Invalid pipeline definition ({len(errors)} errors)", errors=errors)
    return definition


def check_definition(text: str, fmt: str = "yaml", require_steps: bool = True) -> dict:
    """Validation report for a definition: {valid, errors, warnings, steps_count}."""
    try:
        definition, errors, warnings = _collect(_load_document(text, fmt))
    except InputValidationError as e:
        return {"valid": False, "errors": e.errors or [{"path": "definition", "message": e.message}], "warnings": [], "steps_count": 0}
    if require_steps and not definition.steps and not errors:
        errors.append({"path": "steps", "message": "Pipeline must have at least one step"})
    return {"valid": not errors, "errors": errors, "warnings": warnings, "steps_count": len(definition.steps)}
