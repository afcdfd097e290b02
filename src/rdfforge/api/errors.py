"""Render engine errors as {detail, kind, details} JSON."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rdfforge.core.errors import ForgeError, InputValidationError

logger = logging.getLogger("rdfforge.api")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ForgeError)
    async def forge_error_handler(request: Request, exc: ForgeError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"path": ".".join(str(part) for part in e["loc"] if part != "body") or "body", "message": e["msg"]}
            for e in exc.errors()
        ]
        error = InputValidationError(f"Invalid request ({len(errors)} errors)", errors=errors)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
