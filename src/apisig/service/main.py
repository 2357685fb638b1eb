"""Signature-protected HTTP service."""

from collections.abc import Sequence

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import BaseRoute, Route
import uvicorn

from apisig.common.auth import AuthConfig, SignatureAuthMiddleware
from apisig.common.http import RequestIdMiddleware
from apisig.common.logging import get_logger, setup_logging
from apisig.common.metrics import MetricsMiddleware, metrics_endpoint
from apisig.common.nocache import NoCacheMiddleware
from apisig.common.settings import Settings, get_settings

logger = get_logger(__name__)


async def handle_health(request: Request) -> JSONResponse:
    """Health check."""
    return JSONResponse({"status": "healthy"})


async def handle_ping(request: Request) -> JSONResponse:
    """Signed GET probe."""
    return JSONResponse({"status": "ok", "query": dict(request.query_params)})


async def handle_echo(request: Request) -> Response:
    """Echo the raw request body back to the caller."""
    body = await request.body()
    return Response(
        body,
        media_type=request.headers.get("content-type", "application/octet-stream"),
    )


def demo_routes() -> list[BaseRoute]:
    return [
        Route("/api/ping", handle_ping, methods=["GET"]),
        Route("/api/echo", handle_echo, methods=["POST", "PUT", "PATCH", "DELETE"]),
    ]


def create_app(
    settings: Settings | None = None,
    routes: Sequence[BaseRoute] | None = None,
    auth_config: AuthConfig | None = None,
) -> Starlette:
    """
    Create the Starlette application.

    Args:
        settings: Application settings (defaults to environment)
        routes: Protected routes; the demo routes are mounted when omitted
        auth_config: Verification config (defaults to one built from settings)

    Returns:
        Application with signature verification in front of every
        non-exempt route
    """
    settings = settings or get_settings()
    auth_config = auth_config or AuthConfig.from_settings(settings)

    app_routes: list[BaseRoute] = [
        Route("/health", handle_health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
    ]
    app_routes.extend(routes if routes is not None else demo_routes())

    app = Starlette(routes=app_routes)

    app.add_middleware(
        SignatureAuthMiddleware,
        config=auth_config,
        exempt_paths=settings.auth_exempt_paths,
    )
    if settings.no_cache:
        app.add_middleware(NoCacheMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        MetricsMiddleware,
        exclude_paths=["/health", "/metrics"],
    )

    logger.info(
        "Signature verification enabled",
        allowed_skew_seconds=auth_config.allowed_skew_seconds,
        exempt_paths=sorted(settings.auth_exempt_paths),
    )
    return app


def main() -> None:
    """Entry point for the protected service."""
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
