"""
Natours Backend — Security Headers Middleware
===============================================

What:  Adds transport-security and browser-hardening headers to every response.
How:   Sets a fixed header set (the usual helmet defaults) after the
       downstream app has produced its response, including error responses.
When:  Outermost middleware, so nothing downstream can skip it.

Headers:
    Content-Security-Policy             default-src 'self' and friends
    Cross-Origin-Opener-Policy          same-origin
    Cross-Origin-Resource-Policy        same-origin
    Origin-Agent-Cluster                ?1
    Referrer-Policy                     no-referrer
    Strict-Transport-Security           180 days, includeSubDomains
    X-Content-Type-Options              nosniff
    X-DNS-Prefetch-Control              off
    X-Download-Options                  noopen
    X-Frame-Options                     SAMEORIGIN
    X-Permitted-Cross-Domain-Policies   none
    X-XSS-Protection                    0 (legacy auditor disabled)
"""

from typing import Dict, Mapping, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "base-uri 'self'",
        "font-src 'self' https: data:",
        "form-action 'self'",
        "frame-ancestors 'self'",
        "img-src 'self' data:",
        "object-src 'none'",
        "script-src 'self'",
        "script-src-attr 'none'",
        "style-src 'self' https: 'unsafe-inline'",
        "upgrade-insecure-requests",
    ]
)

DEFAULT_SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}

REMOVED_HEADERS = ("X-Powered-By",)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, headers: Optional[Mapping[str, str]] = None):
        super().__init__(app)
        self.security_headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        for name in REMOVED_HEADERS:
            if name in response.headers:
                del response.headers[name]
        for name, value in self.security_headers.items():
            response.headers[name] = value
        return response
