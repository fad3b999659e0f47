"""
Security Middleware
===================

Security headers on every API response, plus optional HTTPS redirects
(ENFORCE_HTTPS) behind a TLS-terminating proxy.

SSE responses from /api/chat, /api/research/deep and the tabular run
pass through unchanged apart from the headers.
"""

import os
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, RedirectResponse

ENFORCE_HTTPS = os.environ.get("ENFORCE_HTTPS", "false").lower() in ("true", "1", "yes")
HSTS_MAX_AGE = int(os.environ.get("HSTS_MAX_AGE", "31536000"))

# JSON/SSE/audio API only; nothing is rendered in a frame or runs scripts
API_CSP = "default-src 'none'; frame-ancestors 'none'"


def is_https_request(request: Request) -> bool:
    return request.url.scheme == "https" or request.headers.get("x-forwarded-proto") == "https"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Headers added:
    - X-Content-Type-Options, X-Frame-Options, Referrer-Policy
    - Content-Security-Policy (API-only policy)
    - Strict-Transport-Security when served over HTTPS
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if ENFORCE_HTTPS and not is_https_request(request):
            url = str(request.url).replace("http://", "https://", 1)
            return RedirectResponse(url, status_code=301)

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers.setdefault("Content-Security-Policy", API_CSP)

        if is_https_request(request):
            response.headers["Strict-Transport-Security"] = f"max-age={HSTS_MAX_AGE}; includeSubDomains"

        return response
