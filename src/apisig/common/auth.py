"""Signature authentication stage and middleware."""

from __future__ import annotations

import re
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Protocol, Union

from starlette.datastructures import Headers
from starlette.requests import ClientDisconnect
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from apisig.common.errors import AuthFailure, error_response
from apisig.common.hmac import (
    SIGNATURE_HEADER,
    TIMESTAMP_HEADER,
    body_is_signed,
    build_signing_string,
    decode_signature,
    query_part,
    verify,
)
from apisig.common.logging import get_logger
from apisig.common.metrics import record_auth_outcome
from apisig.common.settings import Settings

logger = get_logger(__name__)

_TIMESTAMP_RE = re.compile(r"[+-]?[0-9]+")

# Timestamps are signed 64-bit Unix seconds.
_TIMESTAMP_MIN = -(2**63)
_TIMESTAMP_MAX = 2**63 - 1


@dataclass(frozen=True)
class AuthConfig:
    """Process-wide verification settings."""

    secret_key: bytes = field(repr=False)
    allowed_skew_seconds: int
    accept_query_only_signatures: bool = True

    def __post_init__(self) -> None:
        if not self.secret_key:
            raise ValueError("secret_key must not be empty")
        if self.allowed_skew_seconds < 0:
            raise ValueError("allowed_skew_seconds must be >= 0")

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthConfig:
        """Build the config from application settings."""
        if settings.secret_key is None:
            raise ValueError("APISIG_SECRET_KEY is not configured")
        return cls(
            secret_key=settings.secret_key.get_secret_value().encode("utf-8"),
            allowed_skew_seconds=settings.allowed_skew_seconds,
            accept_query_only_signatures=settings.accept_query_only_signatures,
        )


@dataclass(frozen=True)
class InboundRequest:
    """A request with its body fully read off the transport."""

    method: str
    target: str
    headers: Mapping[str, str]
    body: bytes = b""

    @classmethod
    def from_scope(cls, scope: Scope, body: bytes) -> InboundRequest:
        """Build a request from an ASGI scope, keeping the target as transmitted."""
        raw_path = scope.get("raw_path") or scope["path"].encode("utf-8")
        target = raw_path.decode("latin-1")
        query = scope.get("query_string", b"")
        if query:
            target = f"{target}?{query.decode('latin-1')}"
        return cls(
            method=scope["method"],
            target=target,
            headers=Headers(scope=scope),
            body=body,
        )


@dataclass(frozen=True)
class SigningContext:
    """Per-request material the signature is checked against."""

    method: str
    path_and_query: str
    body_bytes: bytes | None
    claimed_timestamp: int
    claimed_signature: str


@dataclass(frozen=True)
class Authenticated:
    """The request may proceed; its body is unchanged."""

    request: InboundRequest


@dataclass(frozen=True)
class Rejected:
    """The request ends here with an error response."""

    failure: AuthFailure

    @property
    def status_code(self) -> int:
        return self.failure.status_code

    @property
    def reason(self) -> str:
        return self.failure.reason


VerificationOutcome = Union[Authenticated, Rejected]


class Stage(Protocol):
    """A request pipeline step that either forwards or short-circuits."""

    def process(self, request: InboundRequest) -> VerificationOutcome: ...


def run_stages(stages: Iterable[Stage], request: InboundRequest) -> VerificationOutcome:
    """Run stages in order, stopping at the first rejection."""
    outcome: VerificationOutcome = Authenticated(request)
    for stage in stages:
        outcome = stage.process(request)
        if isinstance(outcome, Rejected):
            return outcome
        request = outcome.request
    return outcome


def _parse_timestamp(value: str) -> int | None:
    """Parse a decimal timestamp header, or None when it is not a 64-bit integer."""
    if not _TIMESTAMP_RE.fullmatch(value):
        return None
    try:
        timestamp = int(value)
    except ValueError:
        return None
    if not _TIMESTAMP_MIN <= timestamp <= _TIMESTAMP_MAX:
        return None
    return timestamp


class RequestAuthenticator:
    """Verify HMAC-SHA256 request signatures within a timestamp window."""

    def __init__(self, config: AuthConfig, clock: Callable[[], float] | None = None) -> None:
        self._config = config
        self._clock = clock or time.time

    def process(self, request: InboundRequest) -> VerificationOutcome:
        """Authenticate a request. Never raises for bad client input."""
        start = time.perf_counter()
        outcome = self._verify(request)
        latency = time.perf_counter() - start

        if isinstance(outcome, Rejected):
            logger.warning(
                "Request signature rejected",
                reason=outcome.failure.value,
                method=request.method,
                path=request.target.split("?", 1)[0],
            )
            record_auth_outcome("rejected", outcome.failure.value, latency)
        else:
            logger.debug("Request signature verified", method=request.method)
            record_auth_outcome("authenticated", "", latency)
        return outcome

    def _verify(self, request: InboundRequest) -> VerificationOutcome:
        signature = request.headers.get(SIGNATURE_HEADER)
        if signature is None:
            return Rejected(AuthFailure.MISSING_SIGNATURE_HEADER)

        raw_timestamp = request.headers.get(TIMESTAMP_HEADER)
        if raw_timestamp is None:
            return Rejected(AuthFailure.MISSING_TIMESTAMP_HEADER)
        timestamp = _parse_timestamp(raw_timestamp)
        if timestamp is None:
            return Rejected(AuthFailure.MALFORMED_TIMESTAMP)

        now = int(self._clock())
        if abs(timestamp - now) > self._config.allowed_skew_seconds:
            return Rejected(AuthFailure.TIMESTAMP_OUT_OF_WINDOW)

        context = SigningContext(
            method=request.method.upper(),
            path_and_query=request.target,
            body_bytes=request.body if body_is_signed(request.method) else None,
            claimed_timestamp=timestamp,
            claimed_signature=signature,
        )

        body_text = None
        if context.body_bytes is not None:
            try:
                body_text = context.body_bytes.decode("utf-8")
            except UnicodeDecodeError:
                return Rejected(AuthFailure.BODY_DECODE_ERROR)

        try:
            decoded = decode_signature(context.claimed_signature)
        except ValueError:
            return Rejected(AuthFailure.SIGNATURE_DECODE_ERROR)

        if not self._matches(context, body_text, decoded):
            return Rejected(AuthFailure.SIGNATURE_MISMATCH)
        return Authenticated(request)

    def _matches(self, context: SigningContext, body_text: str | None, decoded: bytes) -> bool:
        targets = [context.path_and_query]
        if self._config.accept_query_only_signatures and not body_is_signed(context.method):
            query = query_part(context.path_and_query)
            if query is not None:
                targets.append(query)

        # compare every candidate, no early exit
        matched = False
        for target in targets:
            message = build_signing_string(context.method, target, body_text)
            matched |= verify(self._config.secret_key, message, decoded)
        return matched


class BufferedBody:
    """A request body read once from the transport and replayed downstream."""

    def __init__(self, body: bytes, receive: Receive) -> None:
        self.body = body
        self._receive = receive
        self._replayed = False

    @classmethod
    async def read(cls, receive: Receive) -> BufferedBody:
        """
        Drain the request body from an ASGI receive channel.

        Raises:
            ClientDisconnect: If the client goes away before the body is complete
        """
        chunks: list[bytes] = []
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise ClientDisconnect()
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
        return cls(b"".join(chunks), receive)

    async def replay(self) -> Message:
        """ASGI receive callable handing the buffered body to the next app."""
        if not self._replayed:
            self._replayed = True
            return {"type": "http.request", "body": self.body, "more_body": False}
        return await self._receive()


class SignatureAuthMiddleware:
    """ASGI middleware rejecting requests without a valid signature."""

    def __init__(
        self,
        app: ASGIApp,
        config: AuthConfig,
        exempt_paths: Iterable[str] = (),
        stages: Sequence[Stage] | None = None,
    ) -> None:
        self.app = app
        self._exempt_paths = set(exempt_paths)
        self._stages = list(stages) if stages is not None else [RequestAuthenticator(config)]

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in self._exempt_paths:
            await self.app(scope, receive, send)
            return

        buffered = await BufferedBody.read(receive)
        request = InboundRequest.from_scope(scope, buffered.body)
        outcome = run_stages(self._stages, request)

        if isinstance(outcome, Rejected):
            response = error_response(outcome.failure)
            await response(scope, buffered.replay, send)
            return

        await self.app(scope, buffered.replay, send)
