"""Pipeline definitions, the operation catalog and the step runtime."""

from rdfforge.pipeline.context import JobContext, StepResources, StepTrace
from rdfforge.pipeline.definition import PipelineDefinition, StepDefinition, check_definition, parse_definition
from rdfforge.pipeline.operations import OPERATIONS, Operation, OperationType, get_operation, list_operations

__all__ = [
    "JobContext",
    "OPERATIONS",
    "Operation",
    "OperationType",
    "PipelineDefinition",
    "StepDefinition",
    "StepResources",
    "StepTrace",
    "check_definition",
    "get_operation",
    "list_operations",
    "parse_definition",
]
