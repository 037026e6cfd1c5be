"""Middleware Starlette de corrélation des requêtes.

L'identifiant reçu dans `X-Request-ID` est repris s'il est sûr (alphanumérique, `-`, `_`, `.`,
128 caractères max); sinon un UUID4 est généré. Il est lié au contexte structlog pendant la
requête, exposé dans `request.state.request_id` et renvoyé sur la réponse.
"""

import re
from collections.abc import Awaitable, Callable
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

REQUEST_ID_HEADER = "X-Request-ID"
_SAFE_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


def coerce_request_id(value: str | None) -> str:
    """Identifiant entrant s'il est sûr pour les logs, sinon un nouvel UUID4."""
    if value and _SAFE_ID_RE.match(value):
        return value
    return str(uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER) -> None:
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        rid = coerce_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=rid)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        response.headers[self.header_name] = rid
        return response
