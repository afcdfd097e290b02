"""Operation catalog: the closed set of step operations and their parameter schemas."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from rdfforge.core.errors import ParameterError
from rdfforge.core.values import has_placeholder


class OperationType(str, enum.Enum):
    SOURCE = "SOURCE"
    TRANSFORM = "TRANSFORM"
    CUBE = "CUBE"
    VALIDATION = "VALIDATION"
    OUTPUT = "OUTPUT"


_TYPE_CHECKS = {
    "string": lambda v: isinstance(v, str),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "object": lambda v: isinstance(v, dict),
    "array": lambda v: isinstance(v, list),
}


@dataclass(frozen=True)
class ParameterSpec:
    type: str
    required: bool = False
    default: Any = None
    description: str = ""
    choices: tuple | None = None

    def to_dict(self) -> dict:
        param = {
            "type": self.type,
            "required": self.required,
            "default": self.default,
            "description": self.description,
        }
        if self.choices:
            param["choices"] = list(self.choices)
        return param


@dataclass(frozen=True)
class Operation:
    name: str
    type: OperationType
    description: str
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    one_of: tuple[str, ...] = ()  # at least one of these must be set

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type.value,
            "description": self.description,
            "parameters": {name: param.to_dict() for name, param in self.parameters.items()},
        }


def _op(name: str, op_type: OperationType, description: str, one_of: tuple[str, ...] = (), **parameters: ParameterSpec) -> Operation:
    return Operation(name=name, type=op_type, description=description, parameters=parameters, one_of=one_of)


P = ParameterSpec

OPERATIONS: dict[str, Operation] = {
    op.name: op
    for op in (
        # SOURCE
        _op(
            "load-csv", OperationType.SOURCE, "Read a CSV/TSV data source into rows",
            one_of=("dataSourceId", "content"),
            dataSourceId=P("string", description="Registered data source id"),
            content=P("string", description="Inline CSV text, used when no data source is given"),
            delimiter=P("string", default=",", description="Field delimiter"),
            hasHeader=P("boolean", default=True, description="First row holds column names"),
            encoding=P("string", default="utf-8", description="Text encoding of the file"),
            errorThreshold=P("number", default=0.1, description="Maximum share of malformed rows before the step fails"),
        ),
        _op(
            "load-json", OperationType.SOURCE, "Read an array of JSON objects into rows",
            one_of=("dataSourceId", "content"),
            dataSourceId=P("string", description="Registered data source id"),
            content=P("string", description="Inline JSON text"),
            recordsPath=P("string", description="Dotted path to the records array inside the document"),
        ),
        _op(
            "load-rdf", OperationType.SOURCE, "Read an RDF document into the current graph",
            one_of=("dataSourceId", "content"),
            dataSourceId=P("string", description="Registered data source id"),
            content=P("string", description="Inline RDF text"),
            format=P("string", default="turtle", description="RDF serialization",
                     choices=("turtle", "ntriples", "jsonld", "rdfxml", "trig", "nquads")),
        ),
        # TRANSFORM
        _op(
            "rename-columns", OperationType.TRANSFORM, "Rename columns",
            mapping=P("object", required=True, description="Old column name to new column name"),
        ),
        _op(
            "select-columns", OperationType.TRANSFORM, "Keep only the listed columns, in order",
            columns=P("array", required=True, description="Column names to keep"),
        ),
        _op(
            "derive-column", OperationType.TRANSFORM, "Add a column computed from a {column} template",
            column=P("string", required=True, description="Name of the new column"),
            template=P("string", required=True, description="Template such as '{year}-{month}'"),
        ),
        _op(
            "filter-rows", OperationType.TRANSFORM, "Keep rows matching a condition",
            column=P("string", required=True, description="Column to test"),
            operator=P("string", default="eq", description="Comparison operator",
                       choices=("eq", "ne", "gt", "gte", "lt", "lte", "contains", "in", "notEmpty")),
            value=P("any", description="Value to compare with (a list for 'in')"),
        ),
        _op(
            "cast-types", OperationType.TRANSFORM, "Convert column values to typed values",
            types=P("object", required=True, description="Column name to string|integer|decimal|boolean|date|datetime"),
            errorThreshold=P("number", default=0.1, description="Maximum share of rows that may fail to cast"),
        ),
        # CUBE
        _op(
            "create-observations", OperationType.CUBE, "Map rows to cube observations",
            cubeUri=P("string", required=True, description="URI of the cube"),
            dimensions=P("object", required=True, description="Column name to dimension property URI"),
            measures=P("object", required=True, description="Column name to measure property URI"),
            observationBaseUri=P("string", description="Base URI for observations (default: <cubeUri>/observation/)"),
            attributes=P("object", description="Column name to attribute property URI"),
            codelists=P("object", description="Dimension column to registered dimension id; codes map to the dimension's value IRIs"),
            errorThreshold=P("number", default=0.0, description="Maximum share of rows rejected for repeated dimension values or unknown codes"),
        ),
        _op(
            "map-to-rdf", OperationType.CUBE, "Map rows to resources with one property per column",
            baseUri=P("string", required=True, description="Base URI for generated subjects"),
            properties=P("object", required=True, description="Column name to property URI"),
            subjectColumn=P("string", description="Column whose value identifies the subject"),
            subjectTemplate=P("string", description="Template for subject local names, e.g. '{id}'"),
            typeUri=P("string", description="rdf:type added to every subject"),
            datatypes=P("object", description="Column name to XSD datatype (local name or IRI)"),
        ),
        # VALIDATION
        _op(
            "validate-shacl", OperationType.VALIDATION, "Validate the current graph against a SHACL shape",
            one_of=("shapeId", "shapeContent"),
            shapeId=P("string", description="Registered shape id"),
            shapeContent=P("string", description="Inline shape content"),
            shapeFormat=P("string", default="turtle", description="Shape serialization", choices=("turtle", "jsonld")),
            failOnViolation=P("boolean", default=True, description="Fail the step when the graph does not conform"),
            maxViolations=P("integer", default=100, description="Maximum violations kept in the step report"),
        ),
        # OUTPUT
        _op(
            "graph-store-write", OperationType.OUTPUT, "Write the current graph to a triplestore named graph",
            graphUri=P("string", required=True, description="Target named graph"),
            triplestoreId=P("string", description="Triplestore connection id (default connection if omitted)"),
            mode=P("string", default="replace", description="Replace the graph or append to it", choices=("replace", "append")),
        ),
    )
}


def get_operation(name: str) -> Operation:
    try:
        return OPERATIONS[name]
    except KeyError:
        raise ParameterError(f"Unknown operation '{name}'", {"operation": name, "available": sorted(OPERATIONS)})


def list_operations(op_type: OperationType | None = None) -> list[Operation]:
    return [op for op in OPERATIONS.values() if op_type is None or op.type == op_type]


def check_params(operation: Operation, params: dict[str, Any], allow_placeholders: bool = False) -> list[dict]:
    """Return a list of {param, message} problems; empty when params are acceptable.

    With allow_placeholders, values still holding ${var} references skip type checks.
    """
    problems = []
    for name in params:
        if name not in operation.parameters:
            problems.append({"param": name, "message": f"Unknown parameter for '{operation.name}'"})

    for name, param in operation.parameters.items():
        if name not in params or params[name] is None:
            if param.required:
                problems.append({"param": name, "message": "Required parameter is missing"})
            continue
        value = params[name]
        if allow_placeholders and has_placeholder(value):
            continue
        check = _TYPE_CHECKS.get(param.type)
        if check is not None and not check(value):
            problems.append({"param": name, "message": f"Expected {param.type}, got {type(value).__name__}"})
        elif param.choices and value not in param.choices:
            problems.append({"param": name, "message": f"Must be one of {list(param.choices)}"})

    if operation.one_of and all(params.get(name) in (None, "") for name in operation.one_of):
        problems.append({"param": "|".join(operation.one_of), "message": f"One of {list(operation.one_of)} is required"})
    return problems


def validate_params(operation: Operation, params: dict[str, Any]) -> dict[str, Any]:
    """Check params once per step and fill defaults.

    Raises:
        ParameterError: On unknown, missing, mistyped or out-of-range params
    """
    problems = check_params(operation, params)
    if problems:
        summary = "; ".join(f"{p['param']}: {p['message']}" for p in problems)
        raise ParameterError(f"Invalid parameters for '{operation.name}': {summary}", {"problems": problems})

    resolved = {name: param.default for name, param in operation.parameters.items()}
    resolved.update({k: v for k, v in params.items() if v is not None})
    return resolved
