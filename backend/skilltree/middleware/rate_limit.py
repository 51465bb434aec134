"""
Rate Limiting Middleware

Prevents abuse and ensures fair resource usage using SlowAPI.

Usage:
    from skilltree.middleware.rate_limit import limiter
    from skilltree.enums import RateLimitType
    from skilltree.config import settings

    @router.post("/lesson/answer")
    @limiter.limit(settings.get_rate_limit(RateLimitType.ANSWER))
    async def submit_answer(request: Request, ...):
        ...

Rate limit configurations (from settings):
- DEFAULT: General API endpoints (100/minute)
- ANSWER: Answer submission (60/minute)
"""

import logging

from fastapi import FastAPI, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from skilltree.config import settings
from skilltree.enums import RateLimitType

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """
    Get client identifier for rate limiting.

    Keys on the learner id when the request carries one, from X-Learner-Id
    or an ``Authorization: Bearer`` token, so that learners behind a shared
    gateway are limited separately. Otherwise uses the X-Forwarded-For
    header if behind a proxy, falling back to the direct IP address.

    Args:
        request: FastAPI request object

    Returns:
        Learner id or client IP address
    """
    learner_id = (request.headers.get("X-Learner-Id") or "").strip()
    if not learner_id:
        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme.lower() == "bearer":
            learner_id = token.strip()
    if learner_id:
        return f"learner:{learner_id}"

    # Check for forwarded header (behind proxy/load balancer)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP in the chain (original client)
        return forwarded_for.split(",")[0].strip()

    # Fall back to direct client address
    return get_remote_address(request)


# Initialize limiter with default key function
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[settings.get_rate_limit(RateLimitType.DEFAULT)],
    enabled=settings.RATE_LIMIT_ENABLED,
)


def setup_rate_limiting(app: FastAPI, enabled: bool = True) -> None:
    """
    Configure rate limiting on the FastAPI app.

    Args:
        app: FastAPI application instance
        enabled: Whether to enable rate limiting
    """
    if not enabled:
        limiter.enabled = False
        logger.info("Rate limiting disabled")
        return

    # Store limiter in app state
    app.state.limiter = limiter

    # Add exception handler for rate limit exceeded
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Add middleware
    app.add_middleware(SlowAPIMiddleware)

    logger.info("Rate limiting enabled")


def get_rate_limit(rate_limit_type: RateLimitType) -> str:
    """
    Get rate limit string for an endpoint type.

    Args:
        rate_limit_type: RateLimitType enum value

    Returns:
        Rate limit string (e.g., "100/minute")
    """
    return settings.get_rate_limit(rate_limit_type)
