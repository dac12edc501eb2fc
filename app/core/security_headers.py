"""
Security Headers Middleware for Sweetlease.

Adds OWASP-recommended headers to every response. Lease data is private,
so authenticated API responses are never cached.
"""

from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.security import SESSION_COOKIE, USER_ID_HEADER

# The only HTML served is the interactive API docs
DOCS_CSP = "; ".join([
    "default-src 'self'",
    "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
    "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net",
    "img-src 'self' data: https://fastapi.tiangolo.com",
    "frame-ancestors 'none'",
    "base-uri 'self'",
])


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Headers added:
    - X-Content-Type-Options, X-Frame-Options, Referrer-Policy
    - Permissions-Policy (all sensors and payment disabled)
    - Content-Security-Policy on HTML responses
    - Strict-Transport-Security when enable_hsts is set
    - Cache-Control: private, no-store on authenticated /api/ responses
    """

    def __init__(
        self,
        app,
        enable_hsts: bool = False,
        hsts_max_age: int = 31536000,
        csp_policy: str | None = None,
    ):
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.hsts_max_age = hsts_max_age
        self.csp_policy = csp_policy or DOCS_CSP

    @staticmethod
    def _is_authenticated(request: Request) -> bool:
        return (
            "Authorization" in request.headers
            or USER_ID_HEADER in request.headers
            or SESSION_COOKIE in request.cookies
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Permissions-Policy"] = (
            "accelerometer=(), camera=(), geolocation=(), "
            "gyroscope=(), microphone=(), payment=(), usb=()"
        )

        if "text/html" in response.headers.get("Content-Type", ""):
            response.headers["Content-Security-Policy"] = self.csp_policy

        if self.enable_hsts:
            response.headers["Strict-Transport-Security"] = (
                f"max-age={self.hsts_max_age}; includeSubDomains"
            )

        if request.url.path.startswith("/api/") and self._is_authenticated(request):
            response.headers.setdefault("Cache-Control", "private, no-store")

        return response
