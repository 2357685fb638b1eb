"""Authentication failure taxonomy and error responses."""

from __future__ import annotations

from enum import Enum

from starlette.responses import PlainTextResponse


class AuthFailure(str, Enum):
    """Reasons a signed request is rejected."""

    MISSING_SIGNATURE_HEADER = "missing_signature_header"
    MISSING_TIMESTAMP_HEADER = "missing_timestamp_header"
    MALFORMED_TIMESTAMP = "malformed_timestamp"
    TIMESTAMP_OUT_OF_WINDOW = "timestamp_out_of_window"
    BODY_DECODE_ERROR = "body_decode_error"
    SIGNATURE_DECODE_ERROR = "signature_decode_error"
    SIGNATURE_MISMATCH = "signature_mismatch"

    @property
    def status_code(self) -> int:
        """400 for unparseable input, 401 for well-formed but invalid credentials."""
        return _STATUS[self]

    @property
    def reason(self) -> str:
        """Short human-readable reason sent back to the client."""
        return _REASONS[self]


_STATUS = {
    AuthFailure.MISSING_SIGNATURE_HEADER: 400,
    AuthFailure.MISSING_TIMESTAMP_HEADER: 400,
    AuthFailure.MALFORMED_TIMESTAMP: 400,
    AuthFailure.TIMESTAMP_OUT_OF_WINDOW: 401,
    AuthFailure.BODY_DECODE_ERROR: 400,
    AuthFailure.SIGNATURE_DECODE_ERROR: 400,
    AuthFailure.SIGNATURE_MISMATCH: 401,
}

_REASONS = {
    AuthFailure.MISSING_SIGNATURE_HEADER: "missing header apiSig",
    AuthFailure.MISSING_TIMESTAMP_HEADER: "missing header timestamp",
    AuthFailure.MALFORMED_TIMESTAMP: "timestamp parse error",
    AuthFailure.TIMESTAMP_OUT_OF_WINDOW: "request timeout",
    AuthFailure.BODY_DECODE_ERROR: "body parse error",
    AuthFailure.SIGNATURE_DECODE_ERROR: "base64 decode signature error",
    AuthFailure.SIGNATURE_MISMATCH: "api signature verify error",
}


def error_response(failure: AuthFailure) -> PlainTextResponse:
    return PlainTextResponse(failure.reason, status_code=failure.status_code)
