"""
Middleware Package

Provides FastAPI middleware for:
- Rate limiting
- Error handling

Rate limiting usage:
    from skilltree.middleware import limiter
    from skilltree.enums import RateLimitType
    from skilltree.config import settings

    @limiter.limit(settings.get_rate_limit(RateLimitType.ANSWER))
    async def my_endpoint(request: Request):
        ...
"""

from skilltree.middleware.error_handling import (
    AuthenticationError,
    CollaboratorUnavailableError,
    ConflictError,
    ErrorHandlingMiddleware,
    NotFoundError,
    PreconditionError,
    ServiceError,
    ValidationError,
    setup_error_handling,
)
from skilltree.middleware.rate_limit import get_rate_limit, limiter, setup_rate_limiting

__all__ = [
    "setup_rate_limiting",
    "limiter",
    "get_rate_limit",
    "ErrorHandlingMiddleware",
    "setup_error_handling",
    "ServiceError",
    "PreconditionError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "AuthenticationError",
    "CollaboratorUnavailableError",
]
