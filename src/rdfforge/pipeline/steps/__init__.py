"""Step handlers, one module per operation type.

HANDLERS is the closed dispatch table: operation type -> operation name -> handler.
Every handler takes (ctx, params) with params already checked and defaulted,
and returns the step's metrics.
"""

from rdfforge.pipeline.operations import OperationType
from rdfforge.pipeline.steps import cube, output, source, transform, validation

HANDLERS = {
    OperationType.SOURCE: source.HANDLERS,
    OperationType.TRANSFORM: transform.HANDLERS,
    OperationType.CUBE: cube.HANDLERS,
    OperationType.VALIDATION: validation.HANDLERS,
    OperationType.OUTPUT: output.HANDLERS,
}

__all__ = ["HANDLERS"]
