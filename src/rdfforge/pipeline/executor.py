"""Step executor: checks params, dispatches to the handler, applies timeout and retries."""

from __future__ import annotations

import asyncio
import logging

from rdfforge.core.config import ForgeSettings
from rdfforge.core.errors import InfrastructureError, InputValidationError, StepTimeoutError
from rdfforge.core.retry import with_backoff
from rdfforge.core.values import substitute
from rdfforge.pipeline.context import JobContext
from rdfforge.pipeline.definition import StepDefinition
from rdfforge.pipeline.operations import get_operation, validate_params
from rdfforge.pipeline.steps import HANDLERS

logger = logging.getLogger("rdfforge.executor")


def resolve_params(step: StepDefinition, variables: dict) -> dict:
    """Substitute ${name} references in a step's params.

    Raises:
        InputValidationError: If a referenced variable is not defined
    """
    try:
        return substitute(step.params, variables)
    except KeyError as e:
        name = e.args[0]
        raise InputValidationError(
            f"Step '{step.name}' references undefined variable '{name}'",
            errors=[{"path": f"steps.{step.id}.params", "message": f"undefined variable '{name}'"}],
        ) from e


async def execute_step(ctx: JobContext, step: StepDefinition, settings: ForgeSettings) -> dict:
    """Run one step and return its metrics.

    Infrastructure faults are retried with exponential backoff; timeouts
    only when settings.retry_on_timeout is set. Anything else propagates.
    """
    operation = get_operation(step.operation)
    params = validate_params(operation, resolve_params(step, ctx.variables))
    handler = HANDLERS[operation.type][operation.name]
    timeout = step.timeout_seconds or settings.default_step_timeout

    async def attempt() -> dict:
        try:
            return await asyncio.wait_for(handler(ctx, params), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise StepTimeoutError(
                f"Step '{step.name}' exceeded its {timeout:g}s timeout",
                {"timeout_seconds": timeout},
            ) from e

    async def on_retry(number: int, error: BaseException, delay: float) -> None:
        ctx.warn(
            f"{error} (retry {number}/{settings.retry_attempts} in {delay:.2f}s)",
            {"kind": getattr(getattr(error, "kind", None), "value", None), "attempt": number},
        )

    retry_on: tuple[type[BaseException], ...] = (InfrastructureError,)
    if settings.retry_on_timeout:
        retry_on = (InfrastructureError, StepTimeoutError)

    return await with_backoff(
        attempt,
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
        retry_on=retry_on,
        on_retry=on_retry,
    )
