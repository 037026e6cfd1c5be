"""Gestion standardisée des erreurs API avec enveloppes d'erreur.

Les exceptions du domaine (`CrossKBError`) sont converties en enveloppe
`{code, message, trace_id, details}`; `details.retryable` distingue « réessayer » de « configuration
à corriger ».
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from crosskb.core.constants import (
    HTTP_CONFLICT,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NOT_FOUND,
    HTTP_SERVICE_UNAVAILABLE,
    HTTP_UNPROCESSABLE_ENTITY,
)
from crosskb.domain.errors import (
    AgentNotFound,
    CrossKBError,
    EmbeddingUnavailable,
    GenerationUnavailable,
    InvalidLinkTransition,
    InvalidOperation,
    LinkConflict,
    LinkNotFound,
    NoSourcesAvailable,
    SourceNotFound,
)

log = structlog.get_logger(__name__)

# Ordre significatif: première classe correspondante
_STATUS_BY_ERROR: tuple[tuple[type[CrossKBError], int], ...] = (
    (EmbeddingUnavailable, HTTP_SERVICE_UNAVAILABLE),
    (NoSourcesAvailable, HTTP_SERVICE_UNAVAILABLE),
    (GenerationUnavailable, HTTP_SERVICE_UNAVAILABLE),
    (LinkNotFound, HTTP_NOT_FOUND),
    (AgentNotFound, HTTP_NOT_FOUND),
    (SourceNotFound, HTTP_NOT_FOUND),
    (LinkConflict, HTTP_CONFLICT),
    (InvalidLinkTransition, HTTP_CONFLICT),
    (InvalidOperation, HTTP_UNPROCESSABLE_ENTITY),
)

_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}


@dataclass
class ErrorEnvelope:
    """Standard error envelope for API responses."""

    code: str
    message: str
    trace_id: str | None = None
    details: dict[str, Any] | None = None


def create_error_response(status_code: int, envelope: ErrorEnvelope) -> JSONResponse:
    """Create a standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "code": envelope.code,
            "message": envelope.message,
            "trace_id": envelope.trace_id,
            **({"details": envelope.details} if envelope.details else {}),
        },
    )


def extract_trace_id(request: Request) -> str | None:
    """X-Trace-ID entrant, sinon l'identifiant résolu par RequestIDMiddleware."""
    return request.headers.get("X-Trace-ID") or getattr(request.state, "request_id", None)


def status_for(exc: CrossKBError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return HTTP_INTERNAL_SERVER_ERROR


def handle_domain_error(request: Request, exc: CrossKBError) -> JSONResponse:
    """Convertit une erreur du domaine en enveloppe standard."""
    status = status_for(exc)
    trace_id = extract_trace_id(request)
    log.warning(
        "api_domain_error",
        code=exc.code,
        status_code=status,
        retryable=exc.retryable,
        trace_id=trace_id,
    )
    details = {**exc.details, "retryable": exc.retryable}
    return create_error_response(
        status, ErrorEnvelope(exc.code, exc.message, trace_id, details)
    )


def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException with standard envelope."""
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    return create_error_response(
        exc.status_code, ErrorEnvelope(code, str(exc.detail), extract_trace_id(request))
    )


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]} for err in exc.errors()
    ]
    return create_error_response(
        HTTP_UNPROCESSABLE_ENTITY,
        ErrorEnvelope(
            "VALIDATION_ERROR",
            "invalid request payload",
            extract_trace_id(request),
            {"errors": errors, "retryable": False},
        ),
    )


def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with standard envelope."""
    trace_id = extract_trace_id(request)
    log.error(
        "api_unexpected_error",
        trace_id=trace_id,
        exception_type=type(exc).__name__,
        exc_info=exc,
    )
    return create_error_response(
        HTTP_INTERNAL_SERVER_ERROR,
        ErrorEnvelope("INTERNAL_ERROR", "An unexpected error occurred", trace_id),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CrossKBError, handle_domain_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_generic_exception)
