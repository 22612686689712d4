"""Rate limiting for API endpoints using slowapi."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from hackteam.api.errors import ErrorCode, build_error_response, get_request_id
from hackteam.config import settings


def _rate_limit_key(request: Request) -> str:
    """Limit per identified user, falling back to the client address."""
    user_id = request.headers.get(settings.user_id_header)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=_rate_limit_key,
    default_limits=[settings.rate_limit_global],
    enabled=settings.rate_limit_enabled,
)

# Endpoint decorators; endpoints must accept a `request: Request` argument
limit_read = limiter.limit(settings.rate_limit_read)
limit_write = limiter.limit(settings.rate_limit_write)
limit_admin = limiter.limit(settings.rate_limit_admin)


async def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render RateLimitExceeded in the standard error envelope."""
    detail = exc.detail if isinstance(exc, RateLimitExceeded) else str(exc)
    return JSONResponse(
        status_code=429,
        content=build_error_response(
            code=ErrorCode.RATE_LIMITED,
            message=f"Rate limit exceeded: {detail}",
            request_id=get_request_id(request),
        ),
    )
