"""JSON-typed values and ${name} variable substitution."""

from __future__ import annotations

import re
from typing import Any, Dict

from pydantic import JsonValue, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from rdfforge.core.errors import InputValidationError

Variables = Dict[str, JsonValue]

_variables_adapter = TypeAdapter(Variables)
_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_.-]*)\}")


def check_variables(value: Any, field: str = "variables") -> Variables:
    """Ensure a mapping only holds JSON values (str, number, bool, null, list, mapping)."""
    if value is None:
        return {}
    try:
        return _variables_adapter.validate_python(value)
    except PydanticValidationError as e:
        errors = [{"path": f"{field}." + ".".join(str(p) for p in err["loc"]), "message": err["msg"]} for err in e.errors()]
        raise InputValidationError(f"Invalid {field}", errors=errors) from e


def resolve_variables(defaults: Variables | None, overrides: Variables | None) -> Variables:
    """Job-level values override pipeline defaults."""
    resolved = dict(defaults or {})
    resolved.update(overrides or {})
    return resolved


def has_placeholder(value: Any) -> bool:
    if isinstance(value, str):
        return bool(_PLACEHOLDER.search(value))
    if isinstance(value, dict):
        return any(has_placeholder(v) for v in value.values())
    if isinstance(value, list):
        return any(has_placeholder(v) for v in value)
    return False


def substitute(value: Any, variables: Variables) -> Any:
    """Replace ${name} references with variable values.

    A string that is exactly one placeholder takes the variable's typed value;
    placeholders embedded in longer strings are replaced with its text form.

    Raises:
        KeyError: If a referenced variable is not defined
    """
    if isinstance(value, dict):
        return {k: substitute(v, variables) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute(v, variables) for v in value]
    if not isinstance(value, str):
        return value

    whole = _PLACEHOLDER.fullmatch(value)
    if whole:
        return variables[whole.group(1)]

    def _replace(match: re.Match) -> str:
        resolved = variables[match.group(1)]
        if isinstance(resolved, bool):
            return "true" if resolved else "false"
        return "" if resolved is None else str(resolved)

    return _PLACEHOLDER.sub(_replace, value)
