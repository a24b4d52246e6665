"""
Rate Limiting for Campus Portal API
===================================
Implements rate limiting using slowapi.

Default limit applies to every route; sensitive endpoints carry their own:
- /auth/login: 5 req/min (brute force protection)
- /auth/register: 3 req/min
- /fees/{id}/pay: 10 req/min
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from campus_portal.core.config import settings
from campus_portal.core.logging_config import logger


def get_user_identifier(request: Request) -> str:
    """
    Get rate limit key based on user authentication.

    Priority:
    1. Authenticated user ID (set by the auth dependency)
    2. IP address (for anonymous users)
    """
    user_id = getattr(request.state, 'user_id', None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute"],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Return the standard envelope with a Retry-After header"""
    retry_after = "60"

    logger.warning(
        f"[RateLimit] Exceeded for {get_user_identifier(request)}: {exc.detail}"
    )

    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "message": "Too many requests. Please slow down.",
            "error": {
                "code": "RATE_LIMIT_EXCEEDED",
                "message": str(exc.detail),
                "details": {"retry_after_seconds": int(retry_after)},
            },
        },
        headers={"Retry-After": retry_after},
    )


def auth_rate_limit():
    """Rate limit for auth endpoints (5/min)"""
    return limiter.limit("5/minute", key_func=get_user_identifier)


def payment_rate_limit():
    """Rate limit for payment operations (10/min)"""
    return limiter.limit("10/minute", key_func=get_user_identifier)
