"""HMAC signing utilities for request authentication."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import time

SIGNATURE_HEADER = "apiSig"
TIMESTAMP_HEADER = "timestamp"

# Only the idempotent read method leaves the body out of the signing string.
BODYLESS_METHOD = "GET"


def canonical_target(target: str) -> str:
    """Strip any fragment from a request target, leaving path and query untouched."""
    return target.split("#", 1)[0]


def query_part(target: str) -> str | None:
    """Return the raw query string of a target, or None when it has none."""
    _, sep, query = canonical_target(target).partition("?")
    return query if sep else None


def body_is_signed(method: str) -> bool:
    """Whether the body of a request with this method takes part in signing."""
    return method.upper() != BODYLESS_METHOD


def build_signing_string(method: str, target: str, body_text: str | None = None) -> bytes:
    """
    Build the canonical signing string.

    The target is used exactly as transmitted. For any method but GET the
    body text is appended directly, with no separator.
    """
    message = canonical_target(target)
    if body_text and body_is_signed(method):
        message += body_text
    return message.encode("utf-8")


def digest(secret: bytes, message: bytes) -> bytes:
    """Compute the raw HMAC-SHA256 digest."""
    return hmac.new(secret, message, hashlib.sha256).digest()


def sign(secret: bytes, message: bytes) -> str:
    """Create a standard Base64 encoded HMAC signature."""
    return base64.b64encode(digest(secret, message)).decode("ascii")


def decode_signature(value: str) -> bytes:
    """
    Decode a standard, padded Base64 signature.

    Raises:
        ValueError: If the value is not valid Base64
    """
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise ValueError("invalid base64 signature") from exc


def verify(secret: bytes, message: bytes, signature: bytes) -> bool:
    """Verify a decoded HMAC signature in constant time."""
    return hmac.compare_digest(digest(secret, message), signature)


def sign_request(
    secret: bytes | str,
    method: str,
    target: str,
    body: bytes | str | None = None,
    timestamp: int | None = None,
) -> dict[str, str]:
    """
    Produce the authentication headers for an outgoing request.

    Args:
        secret: Shared secret
        method: HTTP method
        target: Path and query exactly as they will be sent
        body: Request body (ignored for GET)
        timestamp: Unix seconds, defaults to now

    Returns:
        Mapping with the signature and timestamp headers
    """
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    if not body_is_signed(method):
        body = None
    elif isinstance(body, bytes):
        body = body.decode("utf-8")
    if timestamp is None:
        timestamp = int(time.time())

    message = build_signing_string(method, target, body)
    return {
        SIGNATURE_HEADER: sign(secret, message),
        TIMESTAMP_HEADER: str(timestamp),
    }
