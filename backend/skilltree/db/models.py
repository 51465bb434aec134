"""
SQLAlchemy Database Models for Learner Progression

Tables:
- skill_progress: Per-(learner, skill node) mastery record
- lesson_sessions: One row per lesson attempt (the "paper" being taken)
- lesson_answers: Graded answers, one per question per session
- hearts_pools: Per-learner consumable attempt resource
- streak_records: Per-learner daily continuity counter
- daily_progress: Per-(learner, calendar date) activity aggregate
- user_achievements: Write-once earned badges
- user_quest_progress: Per-(learner, quest, date) quest state with claim latch
- reward_events: Outbox of rewards for the external currency ledger

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    There is a corresponding Pydantic file: skilltree/models/learning.py

    Static catalog data (skill nodes, achievement and quest definitions)
    is NOT stored here; it lives in config/curriculum.yaml.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from skilltree.db.base import Base
from skilltree.db.types import UTCDateTime


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _new_session_id() -> str:
    return str(uuid.uuid4())


# ===========================================
# Skill Progress
# ===========================================


class SkillProgress(Base):
    """
    Mastery record for one learner on one skill node.

    Created lazily when a node is claimed or a lesson on it is completed.
    current_level is never set directly; it is recomputed from xp_earned
    after every award.

    Attributes:
        id: Primary key.
        learner_id: Opaque learner identity from the auth context.
        skill_node_id: Catalog node id.
        current_level: Largest level whose XP threshold xp_earned reaches (0-5).
        xp_earned: Monotonic non-negative XP total on this node.
        lessons_completed: Number of completed lessons on this node.
        perfect_lessons: Completed lessons with every answer correct and no
            hearts lost.
        strength: Retention estimate clamped to [0.2, 1.0].
        strength_decayed_at: Point in time the stored strength already
            reflects decay through. Null until the first decay write-back
            after a practice.
        last_practiced_at: Completion time of the latest lesson.
        next_review_at: When the node is next due for review.
    """

    __tablename__ = "skill_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "skill_node_id", name="uq_skill_progress_learner_node"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), index=True)
    skill_node_id: Mapped[str] = mapped_column(String(64), index=True)

    current_level: Mapped[int] = mapped_column(Integer, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, default=0)
    lessons_completed: Mapped[int] = mapped_column(Integer, default=0)
    perfect_lessons: Mapped[int] = mapped_column(Integer, default=0)

    strength: Mapped[float] = mapped_column(Float, default=1.0)
    strength_decayed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    last_practiced_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    next_review_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utc_now, onupdate=_utc_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


# ===========================================
# Lesson Sessions & Answers
# ===========================================


class LessonSession(Base):
    """
    One lesson attempt.

    The question list is frozen at creation together with each question's
    kind, payload and answer key, so grading never depends on the question
    bank returning the same content later.

    Attributes:
        id: UUID string primary key.
        learner_id: Owner. Only the owner may answer or complete the session.
        skill_node_id: Node the lesson is for.
        session_type: "practice" or "review".
        difficulty: Target difficulty (1-5) the questions were picked for.
        questions: Ordered snapshot of {id, kind, payload, answer_key,
            difficulty} dicts.
        questions_answered: Running count of graded answers.
        questions_correct: Running count of correct answers.
        hearts_lost: Hearts actually deducted during the session.
        xp_earned: Sum of per-answer XP, then the final total once completed.
        xp_bonus: Completion, perfect and achievement bonus XP.
        is_perfect: Set on completion.
        status: "in_progress" or "completed".
        version: Optimistic concurrency counter.
    """

    __tablename__ = "lesson_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_session_id)
    learner_id: Mapped[str] = mapped_column(String(128), index=True)
    skill_node_id: Mapped[str] = mapped_column(String(64))
    session_type: Mapped[str] = mapped_column(String(20), default="practice")
    difficulty: Mapped[int] = mapped_column(Integer, default=1)
    questions: Mapped[list] = mapped_column(JSON, default=list)

    questions_answered: Mapped[int] = mapped_column(Integer, default=0)
    questions_correct: Mapped[int] = mapped_column(Integer, default=0)
    hearts_lost: Mapped[int] = mapped_column(Integer, default=0)
    xp_earned: Mapped[int] = mapped_column(Integer, default=0)
    xp_bonus: Mapped[int] = mapped_column(Integer, default=0)
    is_perfect: Mapped[bool] = mapped_column(Boolean, default=False)

    status: Mapped[str] = mapped_column(String(20), default="in_progress")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utc_now)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def questions_total(self) -> int:
        return len(self.questions or [])


class LessonAnswer(Base):
    """
    A graded answer. At most one per (session, question).

    Attributes:
        session_id: Parent lesson session.
        question_id: Question on the session's paper.
        learner_answer: Raw submitted answer wrapped as {"value": answer}.
        is_correct: Whether the answer counted as correct.
        score: Items right (blanks, pairs, positions) or grader score.
        max_score: Items available for the question.
        feedback: Grader feedback for free-text answers.
        needs_review: Grading fell back to the conservative default.
        xp_awarded: Per-answer XP.
        heart_deducted: Whether this answer actually removed a heart.
    """

    __tablename__ = "lesson_answers"
    __table_args__ = (
        UniqueConstraint("session_id", "question_id", name="uq_lesson_answer_question"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("lesson_sessions.id", ondelete="CASCADE"), index=True
    )
    question_id: Mapped[str] = mapped_column(String(64))
    learner_answer: Mapped[Optional[dict]] = mapped_column(JSON)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    score: Mapped[float] = mapped_column(Float, default=0.0)
    max_score: Mapped[float] = mapped_column(Float, default=1.0)
    feedback: Mapped[Optional[str]] = mapped_column(Text)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, default=0)
    heart_deducted: Mapped[bool] = mapped_column(Boolean, default=False)
    answered_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utc_now)


# ===========================================
# Hearts, Streaks & Daily Progress
# ===========================================


class HeartsPool(Base):
    """
    Per-learner hearts.

    hearts is the value as of last_refill_at; regeneration since then is
    derived on read. While unlimited_until lies in the future the pool
    reports max_hearts regardless of the stored value.
    """

    __tablename__ = "hearts_pools"

    learner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    hearts: Mapped[int] = mapped_column(Integer, default=5)
    max_hearts: Mapped[int] = mapped_column(Integer, default=5)
    last_refill_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utc_now)
    unlimited_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utc_now, onupdate=_utc_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class StreakRecord(Base):
    """
    Per-learner streak. longest_streak >= current_streak always.

    last_active_date is a calendar date in the learner timezone.
    """

    __tablename__ = "streak_records"

    learner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_active_date: Mapped[Optional[date]] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, default=_utc_now, onupdate=_utc_now
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class DailyProgress(Base):
    """Per-learner per-day totals. goal_met is derived, never stored."""

    __tablename__ = "daily_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "activity_date", name="uq_daily_progress_learner_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), index=True)
    activity_date: Mapped[date] = mapped_column(Date, index=True)
    xp_earned: Mapped[int] = mapped_column(Integer, default=0)
    lessons_completed: Mapped[int] = mapped_column(Integer, default=0)
    perfect_lessons: Mapped[int] = mapped_column(Integer, default=0)
    goal_xp: Mapped[int] = mapped_column(Integer, default=50)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def goal_met(self) -> bool:
        return self.xp_earned >= self.goal_xp


# ===========================================
# Achievements, Quests & Rewards
# ===========================================


class UserAchievement(Base):
    """Earned badge. Write-once; the unique constraint rejects duplicates."""

    __tablename__ = "user_achievements"
    __table_args__ = (
        UniqueConstraint("learner_id", "achievement_id", name="uq_user_achievement"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), index=True)
    achievement_id: Mapped[str] = mapped_column(String(64))
    earned_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utc_now)


class UserQuestProgress(Base):
    """
    Quest state for one learner, quest and calendar date.

    is_claimed is a one-way latch: it only ever flips false -> true, and
    the flip is done with a conditional UPDATE so a racing second claim
    matches no rows.
    """

    __tablename__ = "user_quest_progress"
    __table_args__ = (
        UniqueConstraint("learner_id", "quest_id", "quest_date", name="uq_user_quest_day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), index=True)
    quest_id: Mapped[str] = mapped_column(String(64))
    quest_date: Mapped[date] = mapped_column(Date)
    current_value: Mapped[int] = mapped_column(Integer, default=0)
    target_value: Mapped[int] = mapped_column(Integer)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    is_claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)


class RewardEvent(Base):
    """
    Reward issued to a learner, consumed by the external currency ledger.

    Only the hearts pool is maintained locally; gems and streak freezes are
    recorded here and nowhere else.
    """

    __tablename__ = "reward_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(128), index=True)
    source: Mapped[str] = mapped_column(String(20))
    source_id: Mapped[str] = mapped_column(String(64))
    reward_type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utc_now)
