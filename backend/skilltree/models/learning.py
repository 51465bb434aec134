"""
Learning API Models (Pydantic)

Request/response schemas for lessons, hearts, reviews, streaks, daily
activity and the per-learner skill tree snapshot.

ARCHITECTURE NOTE:
    This file contains PYDANTIC models for API validation.
    There is a corresponding SQLAlchemy file: skilltree/db/models.py

    Data flows: API Request → Pydantic → Service → SQLAlchemy → Database

API Contract:
    Request models use StrictRequest (extra="forbid") to reject unknown fields.
    Answer key material is never part of a question payload sent to clients.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import Field

from skilltree.enums.learning import (
    HeartsAction,
    NodeStatus,
    QuestionKind,
    ReviewUrgency,
    SessionStatus,
    SessionType,
)
from skilltree.models.base import StrictRequest, StrictResponse


# ===========================================
# Hearts
# ===========================================


class HeartsResponse(StrictResponse):
    """Effective hearts as of the request time."""

    hearts: int
    max_hearts: int
    is_unlimited: bool = False
    unlimited_until: Optional[datetime] = None
    next_refill_at: Optional[datetime] = None  # None when full or unlimited


class HeartsActionRequest(StrictRequest):
    """
    Hearts pool operation.

    amount applies to USE; hours applies to UNLIMITED and defaults to
    HEARTS_UNLIMITED_DEFAULT_HOURS.
    """

    action: HeartsAction
    amount: int = Field(default=1, ge=1, le=100)
    hours: Optional[float] = Field(default=None, gt=0, le=24 * 30)


# ===========================================
# Lesson Sessions
# ===========================================


class QuestionResponse(StrictResponse):
    """Question as shown to the learner. Carries no answer key."""

    id: str
    kind: QuestionKind
    difficulty: int
    payload: dict[str, Any] = Field(default_factory=dict)


class LessonStartRequest(StrictRequest):
    """Start a lesson on an unlocked skill node."""

    skill_node_id: str = Field(..., min_length=1, max_length=64)
    session_type: SessionType = SessionType.PRACTICE


class LessonStartResponse(StrictResponse):
    """A freshly created lesson session and its frozen question list."""

    session_id: str
    skill_node_id: str
    session_type: SessionType
    difficulty: int
    questions: list[QuestionResponse]
    hearts: HeartsResponse


class AnswerSubmitRequest(StrictRequest):
    """
    One answer to one question on the session's paper.

    answer shape by kind:
    - single_choice: option id or text
    - fill_in: list of blank values (a bare string for a single blank)
    - matching: mapping of left item to right item
    - ordering: list of item ids in the chosen order
    - free_text: string
    """

    session_id: str = Field(..., min_length=1, max_length=36)
    question_id: str = Field(..., min_length=1, max_length=64)
    answer: Any = None


class AnswerResultResponse(StrictResponse):
    """Grading outcome plus the session's running counters."""

    question_id: str
    is_correct: bool
    score: float
    max_score: float
    correct_answer: Any = None
    feedback: Optional[str] = None
    needs_review: bool = False
    xp_awarded: int = 0
    heart_deducted: bool = False
    hearts: HeartsResponse
    out_of_hearts: bool = False
    questions_answered: int
    questions_correct: int
    questions_total: int


class LessonCompleteRequest(StrictRequest):
    """Complete an in-progress session."""

    session_id: str = Field(..., min_length=1, max_length=36)


class XPBreakdown(StrictResponse):
    """Where a completed lesson's XP came from."""

    answers: int
    completion: int
    perfect: int = 0
    achievements: int = 0
    total: int


class StreakUpdate(StrictResponse):
    """Streak after a lesson completion."""

    current_streak: int
    longest_streak: int
    extended: bool  # True when this completion increased the streak


class EarnedAchievement(StrictResponse):
    """An achievement earned by the current request."""

    id: str
    name: str
    tier: int
    xp_reward: int


class DailyProgressResponse(StrictResponse):
    """Today's totals against the daily goal."""

    activity_date: date
    xp_earned: int = 0
    lessons_completed: int = 0
    perfect_lessons: int = 0
    goal_xp: int
    goal_met: bool = False


class LessonCompleteResponse(StrictResponse):
    """Result of the terminal transition of a lesson session."""

    session_id: str
    skill_node_id: str
    questions_total: int
    questions_correct: int
    hearts_lost: int
    is_perfect: bool
    xp: XPBreakdown
    level_before: int
    level_after: int
    leveled_up: bool
    node_xp_earned: int
    strength: float
    next_review_at: Optional[datetime] = None
    streak: StreakUpdate
    daily: DailyProgressResponse
    achievements_earned: list[EarnedAchievement] = Field(default_factory=list)


class LessonSessionResponse(StrictResponse):
    """Read view of an owned session."""

    id: str
    skill_node_id: str
    session_type: SessionType
    difficulty: int
    status: SessionStatus
    questions: list[QuestionResponse]
    questions_answered: int
    questions_correct: int
    hearts_lost: int
    xp_earned: int
    xp_bonus: int
    is_perfect: bool
    created_at: datetime
    completed_at: Optional[datetime] = None


# ===========================================
# Reviews
# ===========================================


class ReviewItem(StrictResponse):
    """A node in the review queue, strength already decayed to now."""

    skill_node_id: str
    name: str
    unit_id: str
    current_level: int
    strength: float
    original_strength: float
    next_review_at: Optional[datetime] = None
    days_since_last_practice: Optional[int] = None
    urgency: ReviewUrgency


class ReviewQueueResponse(StrictResponse):
    """Due reviews, weakest first."""

    items: list[ReviewItem]
    total_needing_review: int
    tip: Optional[str] = None


class ReviewPickRequest(StrictRequest):
    """
    Pick a node to review.

    Either name a node, or set review_all to take the most urgent one.
    """

    skill_node_id: Optional[str] = Field(default=None, max_length=64)
    review_all: bool = False


class ReviewPickResponse(StrictResponse):
    """Node chosen for review; start a REVIEW lesson on it next."""

    skill_node_id: str
    name: str
    current_level: int
    strength: float
    session_type: SessionType = SessionType.REVIEW


# ===========================================
# Streaks & Activity
# ===========================================


class StreakResponse(StrictResponse):
    """
    Streak information.

    current_streak is reported as stored; it is only advanced or reset by
    lesson completions.
    """

    current_streak: int
    longest_streak: int
    last_active_date: Optional[date] = None
    is_active_today: bool = False
    milestones_reached: list[int] = Field(default_factory=list)
    next_milestone: Optional[int] = None


class ActivityDay(StrictResponse):
    """One calendar day of activity. Days without activity are zero-filled."""

    date: date
    xp_earned: int = 0
    lessons_completed: int = 0
    goal_xp: int
    goal_met: bool = False


class ActivityHistoryResponse(StrictResponse):
    """Daily activity for the most recent N days, oldest first."""

    days: list[ActivityDay]
    total_xp: int
    active_days: int
    goals_met: int
    daily_goal_xp: int


# ===========================================
# Skill Tree Snapshot
# ===========================================


class SkillUnlockRequest(StrictRequest):
    """Claim initial progress on an unlocked node."""

    skill_node_id: str = Field(..., min_length=1, max_length=64)


class SkillNodeState(StrictResponse):
    """One node as seen by one learner."""

    id: str
    unit_id: str
    name: str
    description: str = ""
    order: int
    prerequisites: list[str] = Field(default_factory=list)
    is_elective: bool = False
    is_unlocked: bool
    status: NodeStatus
    current_level: int = 0
    xp_earned: int = 0
    next_level_xp: Optional[int] = None  # None at max level
    xp_to_next_level: Optional[int] = None
    strength: Optional[float] = None  # Effective strength, None without progress
    lessons_completed: int = 0
    perfect_lessons: int = 0
    next_review_at: Optional[datetime] = None


class SkillUnitState(StrictResponse):
    """A unit and its nodes for one learner."""

    id: str
    name: str
    description: str = ""
    icon: Optional[str] = None
    color: Optional[str] = None
    is_elective: bool = False
    completed_nodes: int  # Nodes at max level
    total_nodes: int
    nodes: list[SkillNodeState]


class LearnerTotals(StrictResponse):
    """Lifetime aggregates across all nodes."""

    total_xp: int = 0
    lessons_completed: int = 0
    perfect_lessons: int = 0
    nodes_started: int = 0
    nodes_mastered: int = 0


class SkillTreeResponse(StrictResponse):
    """
    Client read model.

    Composes unlock state, levels, XP to next level, effective strength,
    hearts, streak, today's progress and due reviews. Holds no state of its
    own.
    """

    units: list[SkillUnitState]
    totals: LearnerTotals
    hearts: HeartsResponse
    streak: StreakResponse
    daily: DailyProgressResponse
    due_reviews: list[ReviewItem]
