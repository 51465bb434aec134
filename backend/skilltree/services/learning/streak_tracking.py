"""
Streak Tracking Service

Per-learner count of consecutive calendar days with at least one completed
lesson.

Advance rule (on every lesson completion, comparing today to the last
active date):
- same day → no change (already counted today)
- next day → current + 1, longest = max(longest, current)
- later, or no prior record → current = 1 (longest kept; 1 on first record)

Usage:
    from skilltree.services.learning.streak_tracking import StreakTracker

    tracker = StreakTracker(db)
    update = await tracker.record_activity(learner_id, today)
    streak = await tracker.get_streak(learner_id)
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import StreakRecord
from skilltree.models.learning import StreakResponse, StreakUpdate
from skilltree.services.learning.timeutil import Clock, local_date, utc_now

logger = logging.getLogger(__name__)


@dataclass
class StreakAdvance:
    """Result of applying one day's activity to a streak."""

    current_streak: int
    longest_streak: int
    last_active_date: date
    extended: bool


def advance_streak(
    current_streak: int,
    longest_streak: int,
    last_active_date: Optional[date],
    today: date,
) -> StreakAdvance:
    """
    Apply a completion on `today` to a streak.

    Idempotent for repeated same-day completions. A completion dated before
    the last active date (clock skew) changes nothing.

    Args:
        current_streak: Stored current streak.
        longest_streak: Stored longest streak.
        last_active_date: Stored last active date, None if never active.
        today: Calendar date of the completion.

    Returns:
        StreakAdvance with the new values.
    """
    if last_active_date is not None and today <= last_active_date:
        return StreakAdvance(current_streak, longest_streak, last_active_date, extended=False)

    if last_active_date is not None and today - last_active_date == timedelta(days=1):
        current = current_streak + 1
        return StreakAdvance(
            current_streak=current,
            longest_streak=max(longest_streak, current),
            last_active_date=today,
            extended=True,
        )

    # Gap, or first activity ever
    return StreakAdvance(
        current_streak=1,
        longest_streak=max(longest_streak, 1),
        last_active_date=today,
        extended=True,
    )


def milestones_for(longest_streak: int, current_streak: int) -> tuple[list[int], Optional[int]]:
    """Milestones reached (by longest streak) and the next one to aim for."""
    milestones = settings.STREAK_MILESTONES
    reached = [m for m in milestones if longest_streak >= m]
    next_milestone = next((m for m in milestones if m > current_streak), None)
    return reached, next_milestone


class StreakTracker:
    """
    Service for reading and advancing streak records.

    record_activity flushes; the calling operation commits.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        """
        Initialize the streak tracker.

        Args:
            db: SQLAlchemy async database session.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.clock = clock or utc_now

    async def get_record(self, learner_id: str) -> Optional[StreakRecord]:
        return await self.db.get(StreakRecord, learner_id)

    async def _get_or_create(self, learner_id: str) -> StreakRecord:
        record = await self.get_record(learner_id)
        if record is not None:
            return record

        record = StreakRecord(learner_id=learner_id, current_streak=0, longest_streak=0)
        try:
            async with self.db.begin_nested():
                self.db.add(record)
        except IntegrityError:
            record = await self.db.get(StreakRecord, learner_id, populate_existing=True)
        return record

    async def record_activity(self, learner_id: str, today: Optional[date] = None) -> StreakUpdate:
        """
        Advance the streak for a lesson completed on `today`.

        Args:
            learner_id: Learner.
            today: Calendar date of the completion; defaults to today in the
                learner timezone.

        Returns:
            StreakUpdate after the completion.
        """
        today = today or local_date(self.clock())
        record = await self._get_or_create(learner_id)

        advance = advance_streak(
            record.current_streak or 0,
            record.longest_streak or 0,
            record.last_active_date,
            today,
        )
        record.current_streak = advance.current_streak
        record.longest_streak = advance.longest_streak
        record.last_active_date = advance.last_active_date
        await self.db.flush()

        if advance.extended and advance.current_streak > 1:
            logger.info(f"Learner {learner_id} streak now {advance.current_streak} days")

        return StreakUpdate(
            current_streak=advance.current_streak,
            longest_streak=advance.longest_streak,
            extended=advance.extended,
        )

    async def get_streak(self, learner_id: str) -> StreakResponse:
        """
        Streak with milestone information.

        Returns:
            StreakResponse; all zeros for a learner with no completions.
        """
        record = await self.get_record(learner_id)
        today = local_date(self.clock())

        if record is None or record.last_active_date is None:
            reached, next_milestone = milestones_for(0, 0)
            return StreakResponse(
                current_streak=0,
                longest_streak=0,
                milestones_reached=reached,
                next_milestone=next_milestone,
            )

        reached, next_milestone = milestones_for(record.longest_streak, record.current_streak)
        return StreakResponse(
            current_streak=record.current_streak,
            longest_streak=record.longest_streak,
            last_active_date=record.last_active_date,
            is_active_today=record.last_active_date == today,
            milestones_reached=reached,
            next_milestone=next_milestone,
        )
