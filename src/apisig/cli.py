"""apisig CLI - sign, verify and send signed requests."""

import asyncio
import json
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

import aiohttp
import click
import uvicorn
from rich.console import Console
from rich.table import Table
from starlette.datastructures import Headers
from yarl import URL

from apisig.common.auth import AuthConfig, InboundRequest, Rejected, RequestAuthenticator
from apisig.common.hmac import SIGNATURE_HEADER, TIMESTAMP_HEADER, sign_request
from apisig.common.logging import setup_logging
from apisig.common.settings import get_settings
from apisig.service.main import create_app

console = Console()

P = ParamSpec("P")
R = TypeVar("R")


def async_command(f: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, R]:
    """Decorator to run async commands."""

    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def _read_body(data: str | None, data_file: str | None) -> bytes:
    if data is not None and data_file is not None:
        console.print("[red]Use either --data or --data-file, not both[/red]")
        sys.exit(2)
    if data_file is not None:
        path = Path(data_file).expanduser()
        if not path.exists():
            console.print(f"[red]Body file not found: {path}[/red]")
            sys.exit(1)
        return path.read_bytes()
    return (data or "").encode("utf-8")


def _sign_or_exit(
    secret: str,
    method: str,
    target: str,
    body: bytes,
    timestamp: int | None,
) -> dict[str, str]:
    try:
        return sign_request(secret, method, target, body, timestamp=timestamp)
    except UnicodeDecodeError:
        console.print("[red]Request body is not valid UTF-8[/red]")
        sys.exit(1)


secret_option = click.option(
    "--secret",
    "-s",
    envvar="APISIG_SECRET_KEY",
    required=True,
    help="Shared HMAC secret (or APISIG_SECRET_KEY)",
)
method_option = click.option("--method", "-X", default="GET", show_default=True, help="HTTP method")
data_option = click.option("--data", "-d", default=None, help="Request body")
data_file_option = click.option(
    "--data-file",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Read the request body from a file",
)


@click.group()
def cli() -> None:
    """apisig CLI - HMAC request signing tools."""


@cli.command("sign")
@secret_option
@method_option
@click.option("--target", "-t", required=True, help="Path and query, e.g. /api/items?id=1")
@data_option
@data_file_option
@click.option("--timestamp", type=int, default=None, help="Unix seconds (default: now)")
@click.option("--json", "as_json", is_flag=True, help="Print headers as JSON")
def sign_cmd(
    secret: str,
    method: str,
    target: str,
    data: str | None,
    data_file: str | None,
    timestamp: int | None,
    as_json: bool,
) -> None:
    """Compute the signature headers for a request."""
    body = _read_body(data, data_file)
    headers = _sign_or_exit(secret, method, target, body, timestamp)

    if as_json:
        click.echo(json.dumps(headers))
        return

    table = Table(title=f"{method.upper()} {target}")
    table.add_column("Header", style="cyan")
    table.add_column("Value", style="green")
    for name, value in headers.items():
        table.add_row(name, value)
    console.print(table)


@cli.command("verify")
@secret_option
@method_option
@click.option("--target", "-t", required=True, help="Path and query as received")
@click.option("--signature", required=True, help="Value of the apiSig header")
@click.option("--timestamp", required=True, help="Value of the timestamp header")
@data_option
@data_file_option
@click.option("--skew", type=click.IntRange(min=0), default=60, show_default=True, help="Allowed skew in seconds")
def verify_cmd(
    secret: str,
    method: str,
    target: str,
    signature: str,
    timestamp: str,
    data: str | None,
    data_file: str | None,
    skew: int,
) -> None:
    """Check a request signature offline."""
    body = _read_body(data, data_file)
    authenticator = RequestAuthenticator(
        AuthConfig(secret_key=secret.encode("utf-8"), allowed_skew_seconds=skew)
    )
    request = InboundRequest(
        method=method.upper(),
        target=target,
        headers=Headers({SIGNATURE_HEADER: signature, TIMESTAMP_HEADER: timestamp}),
        body=body,
    )
    outcome = authenticator.process(request)

    if isinstance(outcome, Rejected):
        console.print(f"[red]✗ {outcome.reason} ({outcome.status_code})[/red]")
        sys.exit(1)
    console.print("[green]✓ Signature verified[/green]")


@cli.command("request")
@secret_option
@method_option
@click.option("--url", required=True, help="Full URL of the protected endpoint")
@data_option
@data_file_option
@click.option("--header", "-H", "extra_headers", multiple=True, help="Extra header as 'Name: value'")
@async_command
async def request_cmd(
    secret: str,
    method: str,
    url: str,
    data: str | None,
    data_file: str | None,
    extra_headers: tuple[str, ...],
) -> None:
    """Send a signed request and print the response."""
    body = _read_body(data, data_file)
    parsed = URL(url)
    target = parsed.raw_path_qs

    headers: dict[str, str] = {}
    for item in extra_headers:
        name, sep, value = item.partition(":")
        if not sep:
            console.print(f"[red]Invalid header: {item}[/red]")
            sys.exit(2)
        headers[name.strip()] = value.strip()
    headers.update(_sign_or_exit(secret, method, target, body, None))

    async with aiohttp.ClientSession() as session:
        try:
            async with session.request(
                method.upper(),
                parsed,
                data=body or None,
                headers=headers,
            ) as response:
                status = response.status
                text = await response.text()
        except aiohttp.ClientError as exc:
            console.print(f"[red]Error: {exc}[/red]")
            sys.exit(1)

    style = "green" if status < 400 else "red"
    console.print(f"[{style}]{status}[/{style}]")
    if text:
        click.echo(text)
    if status >= 400:
        sys.exit(1)


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (default: APISIG_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: APISIG_PORT)")
def serve_cmd(host: str | None, port: int | None) -> None:
    """Run the signature-protected service."""
    settings = get_settings()
    setup_logging(settings.log_level, json_logs=settings.log_json)
    try:
        app = create_app(settings)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)

    uvicorn.run(
        app,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
