"""
apisig: HMAC request signing for HTTP services.

Verifies shared-secret HMAC-SHA256 request signatures with a bounded
timestamp window and keeps protected responses out of every cache.
"""

__version__ = "1.0.0"
