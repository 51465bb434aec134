"""
Daily Progress Service

Per-learner per-calendar-day totals (XP, lessons, perfect lessons) and the
daily XP goal, plus the activity history built from them.

Usage:
    from skilltree.services.learning.daily_progress import DailyProgressService

    service = DailyProgressService(db)
    today = await service.record_lesson(learner_id, xp=120, is_perfect=True)
    history = await service.get_activity_history(learner_id, days=30)
"""

from datetime import date, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import DailyProgress
from skilltree.models.learning import (
    ActivityDay,
    ActivityHistoryResponse,
    DailyProgressResponse,
)
from skilltree.services.learning.timeutil import Clock, local_date, utc_now


def to_response(row: Optional[DailyProgress], day: date) -> DailyProgressResponse:
    if row is None:
        return DailyProgressResponse(activity_date=day, goal_xp=settings.DAILY_GOAL_XP)
    return DailyProgressResponse(
        activity_date=row.activity_date,
        xp_earned=row.xp_earned,
        lessons_completed=row.lessons_completed,
        perfect_lessons=row.perfect_lessons,
        goal_xp=row.goal_xp,
        goal_met=row.goal_met,
    )


class DailyProgressService:
    """
    Create-or-accumulate daily totals.

    record_lesson flushes; the calling operation commits.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        """
        Initialize the daily progress service.

        Args:
            db: SQLAlchemy async database session.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.clock = clock or utc_now

    def today(self) -> date:
        return local_date(self.clock())

    async def get_day(self, learner_id: str, day: date) -> Optional[DailyProgress]:
        result = await self.db.execute(
            select(DailyProgress).where(
                DailyProgress.learner_id == learner_id,
                DailyProgress.activity_date == day,
            )
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, learner_id: str, day: date) -> DailyProgress:
        row = await self.get_day(learner_id, day)
        if row is not None:
            return row

        row = DailyProgress(
            learner_id=learner_id,
            activity_date=day,
            xp_earned=0,
            lessons_completed=0,
            perfect_lessons=0,
            goal_xp=settings.DAILY_GOAL_XP,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(row)
        except IntegrityError:
            row = await self.get_day(learner_id, day)
        return row

    async def record_lesson(
        self,
        learner_id: str,
        xp: int,
        is_perfect: bool = False,
        day: Optional[date] = None,
    ) -> DailyProgressResponse:
        """
        Add one completed lesson to a day's totals.

        Args:
            learner_id: Learner.
            xp: XP the lesson earned in total.
            is_perfect: Whether the lesson was perfect.
            day: Calendar date; defaults to today in the learner timezone.

        Returns:
            The day's totals after the update.
        """
        day = day or self.today()
        row = await self._get_or_create(learner_id, day)
        row.xp_earned += xp
        row.lessons_completed += 1
        if is_perfect:
            row.perfect_lessons += 1
        await self.db.flush()
        return to_response(row, day)

    async def get_today(self, learner_id: str) -> DailyProgressResponse:
        day = self.today()
        return to_response(await self.get_day(learner_id, day), day)

    async def get_activity_history(
        self, learner_id: str, days: Optional[int] = None
    ) -> ActivityHistoryResponse:
        """
        Daily activity for the last `days` days, including today.

        Args:
            learner_id: Learner.
            days: Window length; defaults to ACTIVITY_DEFAULT_DAYS and is
                capped at ACTIVITY_MAX_DAYS.

        Returns:
            ActivityHistoryResponse with one entry per day, oldest first.
        """
        days = max(1, min(days or settings.ACTIVITY_DEFAULT_DAYS, settings.ACTIVITY_MAX_DAYS))
        end = self.today()
        start = end - timedelta(days=days - 1)

        result = await self.db.execute(
            select(DailyProgress).where(
                DailyProgress.learner_id == learner_id,
                DailyProgress.activity_date >= start,
                DailyProgress.activity_date <= end,
            )
        )
        by_date = {row.activity_date: row for row in result.scalars().all()}

        history = []
        for offset in range(days):
            day = start + timedelta(days=offset)
            row = by_date.get(day)
            if row is None:
                history.append(ActivityDay(date=day, goal_xp=settings.DAILY_GOAL_XP))
            else:
                history.append(
                    ActivityDay(
                        date=day,
                        xp_earned=row.xp_earned,
                        lessons_completed=row.lessons_completed,
                        goal_xp=row.goal_xp,
                        goal_met=row.goal_met,
                    )
                )

        return ActivityHistoryResponse(
            days=history,
            total_xp=sum(d.xp_earned for d in history),
            active_days=sum(1 for d in history if d.lessons_completed > 0),
            goals_met=sum(1 for d in history if d.goal_met),
            daily_goal_xp=settings.DAILY_GOAL_XP,
        )
