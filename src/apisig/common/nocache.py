"""Response policy that keeps every cache from storing responses."""

from __future__ import annotations

from collections.abc import MutableMapping

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Expires": "0",
    # HTTP/1.0 clients
    "Pragma": "no-cache",
}


def apply_no_cache_headers(headers: MutableMapping[str, str]) -> None:
    """Overwrite the cache related headers in place."""
    for name, value in NO_CACHE_HEADERS.items():
        headers[name] = value


class NoCacheMiddleware(BaseHTTPMiddleware):
    """Force no-cache headers on every response passing through."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        apply_no_cache_headers(response.headers)
        return response
