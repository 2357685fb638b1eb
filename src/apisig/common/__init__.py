"""Common utilities for apisig."""

from apisig.common.auth import (
    AuthConfig,
    Authenticated,
    Rejected,
    RequestAuthenticator,
    SignatureAuthMiddleware,
)
from apisig.common.errors import AuthFailure
from apisig.common.hmac import sign_request
from apisig.common.nocache import NoCacheMiddleware
from apisig.common.settings import Settings, get_settings

__all__ = [
    "AuthConfig",
    "AuthFailure",
    "Authenticated",
    "NoCacheMiddleware",
    "Rejected",
    "RequestAuthenticator",
    "Settings",
    "SignatureAuthMiddleware",
    "get_settings",
    "sign_request",
]
