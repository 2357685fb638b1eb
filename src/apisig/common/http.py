"""Request context utilities."""

from __future__ import annotations

import contextvars
import time
import uuid

import structlog

from starlette.requests import Request
from starlette.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from apisig.common.logging import get_logger

logger = get_logger(__name__)

_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "apisig_request_id",
    default=None,
)


def get_request_id() -> str | None:
    """Get current request id."""
    return _request_id_var.get()


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Bind a request id, method and path into the logging context.

    The id is taken from the incoming header when present and echoed on the
    response, so verification log lines can be matched to client requests.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self._header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self._header_name) or uuid.uuid4().hex
        request.state.request_id = request_id
        token = _request_id_var.set(request_id)
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers.setdefault(self._header_name, request_id)
            logger.debug(
                "Request completed",
                status=response.status_code,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            return response
        finally:
            _request_id_var.reset(token)
            structlog.contextvars.clear_contextvars()
