"""
Middleware Package
==================

Response hardening for the API.
"""

from .security import SecurityHeadersMiddleware

__all__ = [
    "SecurityHeadersMiddleware",
]
