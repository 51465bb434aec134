"""
Centralized enum definitions for the application.

All enums are organized by domain:
- learning.py: Sessions, question kinds, criteria, rewards, node states
- api.py: Rate limit categories

Usage:
    from skilltree.enums import SessionType, QuestionKind

    # Or import from specific module
    from skilltree.enums.learning import CriteriaType
"""

from skilltree.enums.api import RateLimitType
from skilltree.enums.learning import (
    CriteriaType,
    HeartsAction,
    NodeStatus,
    QuestionKind,
    ReviewUrgency,
    RewardSource,
    RewardType,
    SessionStatus,
    SessionType,
)

__all__ = [
    # API
    "RateLimitType",
    # Learning
    "CriteriaType",
    "HeartsAction",
    "NodeStatus",
    "QuestionKind",
    "ReviewUrgency",
    "RewardSource",
    "RewardType",
    "SessionStatus",
    "SessionType",
]
