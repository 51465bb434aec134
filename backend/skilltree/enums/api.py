"""
API-related enums.

Defines enums for rate limiting and other API concerns.
"""

from enum import Enum


class RateLimitType(str, Enum):
    """
    Rate limit categories for different endpoint types.

    Each category has a corresponding rate limit configured in settings.
    Usage:
        from skilltree.enums import RateLimitType
        from skilltree.config import settings

        limit = settings.get_rate_limit(RateLimitType.ANSWER)
    """

    # General API endpoints
    DEFAULT = "default"

    # Answer submission (may call the grading model)
    ANSWER = "answer"
