"""
Shared slowapi limiter keyed by the client IP.
"""
from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded

from storefront.config import get_settings
from storefront.utils.ip_utils import get_client_ip

limiter = Limiter(key_func=get_client_ip, enabled=get_settings().RATE_LIMIT_ENABLED)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Handle rate limit exceeded errors with a JSON response."""
    return JSONResponse(
        status_code=429,
        content={
            "ok": False,
            "error": "Too many requests. Please try again later.",
            "retry_after": exc.detail,
        },
    )
