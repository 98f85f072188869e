"""Rate limiting for the transfer endpoints.

Uses slowapi with a fixed window. Limits are keyed by the client IP and
scoped per endpoint, so each (IP, method, path) pair has its own counter.
"""

import structlog
from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from french_quiz.config import get_settings
from french_quiz.errors import RateLimited

logger = structlog.get_logger()


def client_ip(request: Request) -> str:
    """Client IP for rate limiting and audit.

    Prefers the edge proxy's ``CF-Connecting-IP`` header, then the socket
    peer, then ``unknown``.
    """
    forwarded = request.headers.get("CF-Connecting-IP")
    if forwarded:
        return forwarded
    return get_remote_address(request) if request.client else "unknown"


def transfer_rate_limit() -> str:
    """Limit string for the transfer endpoints, e.g. ``20 per 60 seconds``."""
    settings = get_settings()
    return (
        f"{settings.rate_limit_max_requests} per "
        f"{settings.rate_limit_window_seconds} seconds"
    )


def rate_limit_exceeded_handler(request: Request, exc: Exception) -> Response:
    """429 body with the retry delay, plus the limiter's headers."""
    error = RateLimited()
    logger.warning("rate_limited", client_ip=client_ip(request), path=request.url.path)
    response = JSONResponse(
        {
            "error": error.message,
            "retryAfterSeconds": get_settings().rate_limit_window_seconds,
        },
        status_code=error.status_code,
    )
    return request.app.state.limiter._inject_headers(
        response, request.state.view_rate_limit
    )


limiter = Limiter(key_func=client_ip, strategy="fixed-window", headers_enabled=True)
