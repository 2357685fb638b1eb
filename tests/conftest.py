"""Pytest configuration and fixtures."""

from collections.abc import Callable

import pytest
from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from apisig.common.auth import AuthConfig, InboundRequest, RequestAuthenticator
from apisig.common.settings import Settings

SECRET = "your_secret_key"
FIXED_NOW = 1_700_000_000


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        secret_key=SECRET,
        allowed_skew_seconds=20,
        log_level="DEBUG",
    )


@pytest.fixture
def auth_config() -> AuthConfig:
    return AuthConfig(secret_key=SECRET.encode("utf-8"), allowed_skew_seconds=20)


@pytest.fixture
def authenticator(auth_config: AuthConfig) -> RequestAuthenticator:
    """Authenticator with a clock frozen at FIXED_NOW."""
    return RequestAuthenticator(auth_config, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_request() -> Callable[..., InboundRequest]:
    """Factory for inbound requests."""

    def _make(
        method: str = "GET",
        target: str = "/",
        headers: dict[str, str] | None = None,
        body: bytes = b"",
    ) -> InboundRequest:
        return InboundRequest(
            method=method,
            target=target,
            headers=Headers(headers or {}),
            body=body,
        )

    return _make


async def echo_body(request: Request) -> Response:
    """Return the request body exactly as the handler received it."""
    return Response(await request.body(), media_type="application/octet-stream")


@pytest.fixture
def echo_routes() -> list[Route]:
    """Protected routes that echo the body for any method."""
    return [
        Route("/api/available-code", echo_body, methods=["GET"]),
        Route("/api/items", echo_body, methods=["GET", "POST", "PUT", "PATCH", "DELETE"]),
    ]
