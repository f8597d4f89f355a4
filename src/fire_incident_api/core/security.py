"""
Request pipeline middleware.

Starlette runs middleware in reverse registration order, so ``install_pipeline``
registers these innermost first. Execution order for a request:

    SecurityHeaders -> OriginGate -> CORS -> ParameterPollution -> RateLimit
        -> BodySizeLimit

Authentication, upload checks and payload validation run afterwards inside the
incident routes.
"""

import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import parse_qsl, urlencode

from fastapi import FastAPI, Request
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..config import Settings
from .errors import CorsRejectedError, PayloadTooLargeError, RateLimitExceededError
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com",
        "font-src 'self' https://fonts.gstatic.com",
        "img-src 'self' data: https:",
        "script-src 'self'",
        "object-src 'none'",
        "upgrade-insecure-requests",
    ]
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-XSS-Protection": "0",
    "Referrer-Policy": "same-origin",
}

CORS_ALLOW_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
CORS_ALLOW_HEADERS = [
    "Origin",
    "X-Requested-With",
    "Content-Type",
    "Accept",
    "Authorization",
    "Cache-Control",
]
CORS_MAX_AGE = 86400

MULTI_VALUE_PARAMS = frozenset({"sort", "filter", "limit", "offset"})


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def apply_security_headers(headers) -> None:
    """Set the fixed security header set on a mutable header mapping."""
    for name, value in SECURITY_HEADERS.items():
        headers[name] = value


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        apply_security_headers(response.headers)
        return response


class OriginPolicy:
    """Exact-match allow-list of browser origins."""

    def __init__(self, allowed_origins: Iterable[str]):
        self.allowed_origins = list(dict.fromkeys(allowed_origins))

    def is_allowed(self, origin: Optional[str]) -> bool:
        # Requests without an Origin header (curl, server-to-server) are allowed
        if not origin:
            return True
        return origin in self.allowed_origins


class OriginGateMiddleware(BaseHTTPMiddleware):
    """
    Reject requests whose Origin is not on the allow-list.

    Allowed requests continue to Starlette's CORSMiddleware, which answers
    preflights and adds the Access-Control-* response headers.
    """

    def __init__(self, app: ASGIApp, policy: OriginPolicy):
        super().__init__(app)
        self.policy = policy

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        origin = request.headers.get("origin")
        if not self.policy.is_allowed(origin):
            logger.warning(
                f"CORS origin blocked: origin={origin} allowed={self.policy.allowed_origins}"
            )
            return CorsRejectedError().to_response()
        return await call_next(request)


def collapse_query_string(query_string: str) -> str:
    """
    Collapse repeated query parameters to their last value.

    Parameters in MULTI_VALUE_PARAMS keep every value.
    """
    grouped: Dict[str, List[str]] = {}
    for key, value in parse_qsl(query_string, keep_blank_values=True):
        grouped.setdefault(key, []).append(value)

    pairs = []
    for key, values in grouped.items():
        if key in MULTI_VALUE_PARAMS:
            pairs.extend((key, value) for value in values)
        else:
            pairs.append((key, values[-1]))
    return urlencode(pairs)


class ParameterPollutionMiddleware:
    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("query_string"):
            raw = scope["query_string"].decode("latin-1")
            collapsed = collapse_query_string(raw)
            if collapsed != raw:
                scope = dict(scope)
                scope["query_string"] = collapsed.encode("latin-1")
        await self.app(scope, receive, send)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        ip = client_ip(request)
        result = self.limiter.consume(ip)
        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded ip={ip} path={request.url.path} "
                f"retry_after={result.retry_after_seconds}s"
            )
            return RateLimitExceededError(result.retry_after_seconds).to_response()
        return await call_next(request)


class BodySizeLimitMiddleware:
    """
    Reject request bodies over the configured size before they are parsed.

    Multipart uploads get their own, larger cap; their per-file limits are
    enforced by the upload stage.
    """

    def __init__(self, app: ASGIApp, max_body_size: int, multipart_max_body_size: int):
        self.app = app
        self.max_body_size = max_body_size
        self.multipart_max_body_size = multipart_max_body_size

    def _limit_for(self, headers: Headers) -> int:
        content_type = headers.get("content-type", "")
        if content_type.startswith("multipart/form-data"):
            return self.multipart_max_body_size
        return self.max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        limit = self._limit_for(headers)
        content_length = headers.get("content-length")

        if content_length and content_length.isdigit() and int(content_length) > limit:
            logger.warning(
                f"Request body too large: {content_length} bytes > {limit} on {scope.get('path')}"
            )
            response = self._too_large(limit).to_response()
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > limit:
                    raise self._too_large(limit)
            return message

        await self.app(scope, limited_receive, send)

    @staticmethod
    def _too_large(limit: int) -> PayloadTooLargeError:
        return PayloadTooLargeError(f"Request body must not exceed {limit} bytes")


def install_pipeline(
    app: FastAPI,
    settings: Settings,
    rate_limiter: RateLimiter,
) -> None:
    """Register the request pipeline, innermost stage first."""
    app.add_middleware(
        BodySizeLimitMiddleware,
        max_body_size=settings.max_body_size,
        multipart_max_body_size=settings.multipart_max_body_size,
    )
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
    app.add_middleware(ParameterPollutionMiddleware)
    policy = OriginPolicy(settings.allowed_origins)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=policy.allowed_origins,
        allow_credentials=True,
        allow_methods=CORS_ALLOW_METHODS,
        allow_headers=CORS_ALLOW_HEADERS,
        max_age=CORS_MAX_AGE,
    )
    app.add_middleware(OriginGateMiddleware, policy=policy)
    app.add_middleware(SecurityHeadersMiddleware)
