"""Per-IP request limits (slowapi). Only POST /auth/login is limited."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from app.core.config import settings
from app.core.exceptions import RateLimitError

logger = logging.getLogger(__name__)

# In-memory counters: limits apply per worker process.
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


def login_rate_limit() -> str:
    return settings.LOGIN_RATE_LIMIT


async def handle_rate_limit_exceeded(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded on %s %s: client=%s limit=%s",
        request.method,
        request.url.path,
        get_remote_address(request),
        exc.detail,
    )
    error = RateLimitError("Too many login attempts, please try again later.")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())
