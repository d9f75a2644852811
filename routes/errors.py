"""Request-boundary translation of pipeline errors into HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agent_pipeline.errors import PipelineError, ValidationError

from .metrics import REQUESTS_TOTAL

logger = logging.getLogger(__name__)

_INTERNAL_ERROR = {"error": "Internal server error"}


async def _pipeline_error(request: Request, exc: PipelineError) -> JSONResponse:
    REQUESTS_TOTAL.labels(endpoint=request.url.path, http_status=str(exc.status_code)).inc()
    if exc.status_code >= 500 and exc.status_code not in (502, 503):
        logger.error(
            "request.internal_error",
            exc_info=exc,
            extra={"path": request.url.path, "code": exc.code},
        )
        return JSONResponse(_INTERNAL_ERROR, status_code=exc.status_code)
    if exc.status_code >= 500:
        logger.warning("request.upstream_error", extra={"path": request.url.path, "code": exc.code, "error": str(exc)})
    headers = exc.headers() if hasattr(exc, "headers") else None
    return JSONResponse(exc.payload(), status_code=exc.status_code, headers=headers)


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location or 'body'}: {error.get('msg', 'invalid value')}")
    return await _pipeline_error(request, ValidationError("; ".join(problems) or "Invalid request"))


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    REQUESTS_TOTAL.labels(endpoint=request.url.path, http_status="500").inc()
    logger.error("request.unhandled_error", exc_info=exc, extra={"path": request.url.path})
    return JSONResponse(_INTERNAL_ERROR, status_code=500)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, _pipeline_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(Exception, _unhandled_error)
