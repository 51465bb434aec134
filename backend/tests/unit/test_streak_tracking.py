"""
Unit tests for streak tracking.
"""

from datetime import date, timedelta

import pytest

from skilltree.services.learning.streak_tracking import (
    StreakTracker,
    advance_streak,
    milestones_for,
)

TODAY = date(2026, 3, 2)


class TestAdvanceStreak:
    """Tests for the pure advance rule."""

    def test_first_activity_starts_at_one(self):
        result = advance_streak(0, 0, None, TODAY)
        assert (result.current_streak, result.longest_streak) == (1, 1)
        assert result.extended

    def test_same_day_is_idempotent(self):
        result = advance_streak(4, 6, TODAY, TODAY)
        assert (result.current_streak, result.longest_streak) == (4, 6)
        assert not result.extended

    def test_next_day_extends(self):
        result = advance_streak(4, 4, TODAY - timedelta(days=1), TODAY)
        assert (result.current_streak, result.longest_streak) == (5, 5)
        assert result.last_active_date == TODAY

    def test_next_day_below_longest_keeps_longest(self):
        result = advance_streak(2, 9, TODAY - timedelta(days=1), TODAY)
        assert (result.current_streak, result.longest_streak) == (3, 9)

    def test_gap_resets_to_one(self):
        """Last active three days ago: the streak restarts."""
        result = advance_streak(8, 8, TODAY - timedelta(days=3), TODAY)
        assert (result.current_streak, result.longest_streak) == (1, 8)
        assert result.extended

    def test_earlier_date_changes_nothing(self):
        result = advance_streak(3, 3, TODAY, TODAY - timedelta(days=1))
        assert (result.current_streak, result.last_active_date) == (3, TODAY)
        assert not result.extended


class TestMilestones:
    def test_reached_and_next(self):
        reached, next_milestone = milestones_for(longest_streak=8, current_streak=2)
        assert reached == [3, 7]
        assert next_milestone == 3

    def test_none_left(self):
        _, next_milestone = milestones_for(400, 400)
        assert next_milestone is None


class TestStreakTracker:
    """Tests for StreakTracker against the database."""

    @pytest.mark.asyncio
    async def test_empty_streak(self, db_session, clock, learner_id):
        tracker = StreakTracker(db_session, clock)
        streak = await tracker.get_streak(learner_id)

        assert streak.current_streak == 0
        assert streak.longest_streak == 0
        assert not streak.is_active_today
        assert streak.next_milestone == 3

    @pytest.mark.asyncio
    async def test_consecutive_days(self, db_session, clock, learner_id):
        tracker = StreakTracker(db_session, clock)

        first = await tracker.record_activity(learner_id)
        again = await tracker.record_activity(learner_id)
        clock.advance(days=1)
        second = await tracker.record_activity(learner_id)

        assert first.current_streak == 1
        assert again.current_streak == 1
        assert not again.extended
        assert second.current_streak == 2

        streak = await tracker.get_streak(learner_id)
        assert streak.is_active_today
        assert streak.last_active_date == clock.now.date()

    @pytest.mark.asyncio
    async def test_gap_resets(self, db_session, clock, learner_id):
        tracker = StreakTracker(db_session, clock)
        for _ in range(3):
            await tracker.record_activity(learner_id)
            clock.advance(days=1)

        clock.advance(days=2)
        update = await tracker.record_activity(learner_id)

        assert update.current_streak == 1
        assert update.longest_streak == 3

        streak = await tracker.get_streak(learner_id)
        assert streak.milestones_reached == [3]

    @pytest.mark.asyncio
    async def test_stored_streak_reported_as_is(self, db_session, clock, learner_id):
        """Reading never resets a stale streak; only a completion does."""
        tracker = StreakTracker(db_session, clock)
        await tracker.record_activity(learner_id)
        clock.advance(days=5)

        streak = await tracker.get_streak(learner_id)

        assert streak.current_streak == 1
        assert not streak.is_active_today
