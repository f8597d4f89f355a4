"""
Error taxonomy for the Fire Incident API.

Every error that reaches a client is rendered as JSON carrying at least an
``error`` field. Validation failures add ``details``, rate-limit failures add
``retryAfter`` and a ``Retry-After`` header.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto a structured JSON response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        error: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error = error or self.error
        self.message = message
        self.details = details
        self.headers = headers or {}
        super().__init__(message or self.error)

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.error}
        if self.message:
            body["message"] = self.message
        if self.details is not None:
            body["details"] = self.details
        return body

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code, content=self.to_body(), headers=self.headers
        )


class ValidationFailedError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Validation failed"


class UploadRejectedError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Upload failed"


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Unauthorized"


class CorsRejectedError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "Not allowed by CORS"


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Incident not found"


class PayloadTooLargeError(ApiError):
    status_code = 413
    error = "Payload too large"


class RateLimitExceededError(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Too many requests"

    def __init__(
        self,
        retry_after: int,
        message: Optional[str] = "Rate limit exceeded. Please try again later.",
        error: Optional[str] = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            message=message,
            error=error,
            headers={"Retry-After": str(retry_after)},
        )

    def to_body(self) -> Dict[str, Any]:
        body = super().to_body()
        body["retryAfter"] = self.retry_after
        return body


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return exc.to_response()


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render framework HTTP errors (unknown routes, bad forms) in the API's shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "body",
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return ValidationFailedError(details=details).to_response()


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Last-resort 500 response.

    Starlette answers unhandled exceptions from outside the middleware stack, so
    the security headers are set here rather than by SecurityHeadersMiddleware.
    """
    from .security import apply_security_headers

    logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    response = JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )
    apply_security_headers(response.headers)
    return response


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
