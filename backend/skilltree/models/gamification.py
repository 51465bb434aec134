"""
Gamification API Models (Pydantic)

Request/response schemas for achievements, daily quests and reward events.
"""

from datetime import date, datetime
from typing import Optional, Union

from pydantic import Field

from skilltree.enums.learning import CriteriaType, RewardType
from skilltree.models.base import StrictRequest, StrictResponse
from skilltree.models.learning import HeartsResponse


# ===========================================
# Achievements
# ===========================================


class AchievementStatus(StrictResponse):
    """An achievement definition with the learner's progress toward it."""

    id: str
    name: str
    description: str = ""
    criteria_type: CriteriaType
    criteria_value: Union[int, str]
    tier: int
    xp_reward: int
    earned: bool = False
    earned_at: Optional[datetime] = None
    current_value: int = 0
    target_value: int
    progress: int = Field(default=0, ge=0, le=100)  # Percent


class AchievementListResponse(StrictResponse):
    """All achievements, earned first then by tier descending."""

    achievements: list[AchievementStatus]
    total: int
    earned: int
    total_xp_from_achievements: int


# ===========================================
# Daily Quests
# ===========================================


class QuestStatus(StrictResponse):
    """Today's state of one daily quest."""

    id: str
    name: str
    icon: Optional[str] = None
    criteria_type: CriteriaType
    current_value: int
    target_value: int
    progress: int = Field(ge=0, le=100)
    is_completed: bool
    is_claimed: bool
    can_claim: bool
    reward_type: RewardType
    reward_amount: int


class QuestListResponse(StrictResponse):
    """Today's quests plus time until the next reset."""

    quest_date: date
    quests: list[QuestStatus]
    completed_count: int
    claimable_count: int
    resets_at: datetime
    resets_in_seconds: int


class QuestClaimRequest(StrictRequest):
    """Claim today's reward for a completed quest."""

    quest_id: str = Field(..., min_length=1, max_length=64)


class RewardResponse(StrictResponse):
    """A reward emitted to the external ledger."""

    type: RewardType
    amount: int


class QuestClaimResponse(StrictResponse):
    """Outcome of a successful claim."""

    quest_id: str
    message: str
    reward: RewardResponse
    hearts: Optional[HeartsResponse] = None  # Present for hearts rewards
