"""Error kinds raised by the engine and rendered by the API."""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    PARAMETER = "parameter"
    INFRASTRUCTURE = "infrastructure"
    TIMEOUT = "timeout"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    EXECUTION = "execution"
    DATA_QUALITY = "data_quality"


class ForgeError(Exception):
    """Base error carrying a machine-readable kind and structured details."""

    kind: ErrorKind = ErrorKind.EXECUTION
    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "kind": self.kind.value, "details": self.details}


class InputValidationError(ForgeError):
    """Bad input shape or params; the job never starts."""

    kind = ErrorKind.VALIDATION
    status_code = 422

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None, details: dict[str, Any] | None = None):
        details = dict(details or {})
        if errors:
            details["errors"] = errors
        super().__init__(message, details)
        self.errors = errors or []


class DataQualityError(ForgeError):
    """A step ran but its data failed a quality gate: SHACL conformance or a row error threshold."""

    kind = ErrorKind.DATA_QUALITY
    status_code = 422

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None, details: dict[str, Any] | None = None):
        details = dict(details or {})
        if errors:
            details["errors"] = errors
        super().__init__(message, details)
        self.errors = errors or []


class ParameterError(ForgeError):
    kind = ErrorKind.PARAMETER
    status_code = 422


class InfrastructureError(ForgeError):
    """Storage or triplestore unavailable. Retried with backoff."""

    kind = ErrorKind.INFRASTRUCTURE
    status_code = 503


class StepTimeoutError(ForgeError):
    kind = ErrorKind.TIMEOUT
    status_code = 504


class ConflictError(ForgeError):
    kind = ErrorKind.CONFLICT
    status_code = 409


class NotFoundError(ForgeError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} '{entity_id}' not found", {"entity": entity, "id": entity_id})
