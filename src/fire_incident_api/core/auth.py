import logging
import secrets
from typing import Optional

from fastapi import Depends, Request

from ..config import Settings, get_settings
from .errors import AuthenticationError, RateLimitExceededError
from .rate_limiter import RateLimiter
from .security import client_ip

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX):]
    return None


def get_auth_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.auth_rate_limiter


def require_api_token(
    request: Request,
    settings: Settings = Depends(get_settings),
    limiter: RateLimiter = Depends(get_auth_rate_limiter),
) -> None:
    """
    Gate mutating routes behind the static bearer token.

    The auth limiter is charged before the token is compared, so repeated
    failures turn into 429s instead of further 401s.
    """
    ip = client_ip(request)
    result = limiter.consume(ip)
    if not result.allowed:
        logger.warning(
            f"Auth rate limit exceeded ip={ip} path={request.url.path} "
            f"retry_after={result.retry_after_seconds}s"
        )
        raise RateLimitExceededError(
            result.retry_after_seconds,
            message="Account temporarily locked. Please try again later.",
            error="Too many authentication attempts",
        )

    token = extract_bearer_token(request.headers.get("Authorization"))
    expected = settings.api_token

    if not token or not expected or not secrets.compare_digest(
        token.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning(
            f"Authentication failed ip={ip} path={request.url.path} "
            f"has_token={bool(token)} user_agent={request.headers.get('User-Agent')}"
        )
        raise AuthenticationError("Invalid or missing authentication token")

    logger.info(f"Authentication successful ip={ip} path={request.url.path}")
