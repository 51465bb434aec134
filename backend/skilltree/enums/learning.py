"""
Learning System Enums

Defines enums for lesson sessions, question kinds, progression criteria,
and the derived states shown in the skill tree.
"""

from enum import Enum


class SessionType(str, Enum):
    """
    Lesson session types.

    PRACTICE sessions advance a node; REVIEW sessions revisit a node that
    the spaced repetition scheduler flagged as due. Both follow the same
    state machine and commit the same way.
    """

    PRACTICE = "practice"
    REVIEW = "review"


class SessionStatus(str, Enum):
    """
    Lesson session states.

    State transitions:
    - IN_PROGRESS → COMPLETED (terminal)
    """

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestionKind(str, Enum):
    """
    Question kinds served by the question bank.

    Grading policy per kind:
    - SINGLE_CHOICE: case-insensitive exact match
    - FILL_IN: normalised per-blank match with substring leniency
    - MATCHING: count of correct pairs
    - ORDERING: count of items in the correct position
    - FREE_TEXT: delegated to the grading model
    """

    SINGLE_CHOICE = "single_choice"
    FILL_IN = "fill_in"
    MATCHING = "matching"
    ORDERING = "ordering"
    FREE_TEXT = "free_text"


class CriteriaType(str, Enum):
    """
    Aggregate an achievement or daily quest is measured against.

    Achievements read lifetime totals; quests read today's totals.
    """

    XP = "xp"
    LESSONS = "lessons"
    STREAK = "streak"
    PERFECT_LESSONS = "perfect_lessons"
    UNIT_COMPLETE = "unit_complete"


class RewardType(str, Enum):
    """Reward currencies emitted to the external ledger."""

    GEMS = "gems"
    HEARTS = "hearts"
    STREAK_FREEZE = "streak_freeze"


class RewardSource(str, Enum):
    """What issued a reward event."""

    QUEST = "quest"
    ACHIEVEMENT = "achievement"


class NodeStatus(str, Enum):
    """
    Display state of a skill node for one learner.

    Derived on every read from unlock state, level and effective strength.
    """

    LOCKED = "locked"
    AVAILABLE = "available"  # Unlocked, nothing learned yet
    IN_PROGRESS = "in_progress"
    NEEDS_REVIEW = "needs_review"  # Effective strength below the due threshold
    LEGENDARY = "legendary"  # Max level reached


class ReviewUrgency(str, Enum):
    """Why a node sits in the review queue."""

    OVERDUE = "overdue"  # nextReviewAt has passed
    WEAKENING = "weakening"  # Strength decayed below the threshold


class HeartsAction(str, Enum):
    """Hearts pool operations exposed over the API."""

    USE = "use"
    PRACTICE = "practice"
    REFILL = "refill"
    UNLIMITED = "unlimited"
