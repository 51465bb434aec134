"""
Unit tests for daily quests: listing, daily reset and the one-way claim latch.
"""

import pytest
from sqlalchemy import func, select

from skilltree.db.models import RewardEvent, UserQuestProgress
from skilltree.enums.learning import RewardType
from skilltree.middleware.error_handling import ConflictError, NotFoundError, PreconditionError
from skilltree.services.learning.daily_progress import DailyProgressService
from skilltree.services.learning.hearts import HeartsEconomy
from skilltree.services.learning.quests import QuestService
from skilltree.services.learning.streak_tracking import StreakTracker


async def count_rewards(db) -> int:
    return await db.scalar(select(func.count()).select_from(RewardEvent))


class TestListQuests:
    """Tests for today's offer and progress."""

    @pytest.mark.asyncio
    async def test_offer_is_capped_and_ordered(self, db_session, graph, clock, learner_id):
        service = QuestService(db_session, graph, clock)

        listing = await service.list_quests(learner_id)

        assert [q.id for q in listing.quests] == ["q-xp", "q-lessons", "q-perfect", "q-streak"]
        assert listing.quest_date == clock.now.date()
        assert listing.completed_count == 0

    @pytest.mark.asyncio
    async def test_reset_countdown(self, db_session, graph, clock, learner_id):
        """09:00 UTC: fifteen hours to the next local midnight."""
        listing = await QuestService(db_session, graph, clock).list_quests(learner_id)
        assert listing.resets_in_seconds == 15 * 3600
        assert listing.resets_at.hour == 0

    @pytest.mark.asyncio
    async def test_progress_from_todays_totals(self, db_session, graph, clock, learner_id):
        daily = DailyProgressService(db_session, clock)
        await daily.record_lesson(learner_id, xp=60, is_perfect=True)
        await StreakTracker(db_session, clock).record_activity(learner_id)

        listing = await QuestService(db_session, graph, clock).list_quests(learner_id)
        by_id = {q.id: q for q in listing.quests}

        assert by_id["q-xp"].current_value == 10  # capped at target
        assert by_id["q-xp"].can_claim
        assert by_id["q-lessons"].current_value == 1
        assert by_id["q-lessons"].progress == 50
        assert not by_id["q-lessons"].is_completed
        assert by_id["q-perfect"].is_completed
        assert by_id["q-streak"].is_completed
        assert listing.claimable_count == 3

    @pytest.mark.asyncio
    async def test_new_day_resets_progress(self, db_session, graph, clock, learner_id):
        await DailyProgressService(db_session, clock).record_lesson(learner_id, xp=60)
        service = QuestService(db_session, graph, clock)
        await service.list_quests(learner_id)

        clock.advance(days=1)
        listing = await service.list_quests(learner_id)

        xp_quest = next(q for q in listing.quests if q.id == "q-xp")
        assert xp_quest.current_value == 0
        assert not xp_quest.is_completed


class TestClaimQuest:
    """Tests for the claim latch."""

    @pytest.mark.asyncio
    async def test_claim_gems(self, db_session, graph, clock, learner_id):
        await DailyProgressService(db_session, clock).record_lesson(learner_id, xp=20)
        service = QuestService(db_session, graph, clock)

        result = await service.claim(learner_id, "q-xp")

        assert result.reward.type == RewardType.GEMS
        assert result.reward.amount == 5
        assert result.hearts is None

        event = await db_session.scalar(select(RewardEvent))
        assert (event.source, event.source_id, event.amount) == ("quest", "q-xp", 5)

        listing = await service.list_quests(learner_id)
        claimed = next(q for q in listing.quests if q.id == "q-xp")
        assert claimed.is_claimed
        assert not claimed.can_claim

    @pytest.mark.asyncio
    async def test_claim_twice_rewards_once(self, db_session, graph, clock, learner_id):
        await DailyProgressService(db_session, clock).record_lesson(learner_id, xp=20)
        service = QuestService(db_session, graph, clock)
        await service.claim(learner_id, "q-xp")

        with pytest.raises(ConflictError):
            await service.claim(learner_id, "q-xp")

        assert await count_rewards(db_session) == 1

    @pytest.mark.asyncio
    async def test_racing_claim_loses(self, db_session, session_maker, graph, clock, learner_id):
        """A request holding a stale unclaimed row is stopped by the conditional update."""
        await DailyProgressService(db_session, clock).record_lesson(learner_id, xp=20)
        service = QuestService(db_session, graph, clock)
        await service.list_quests(learner_id)

        async with session_maker() as other_db:
            other = QuestService(other_db, graph, clock)
            await other.list_quests(learner_id)

            await service.claim(learner_id, "q-xp")

            with pytest.raises(ConflictError):
                await other.claim(learner_id, "q-xp")

        assert await count_rewards(db_session) == 1

    @pytest.mark.asyncio
    async def test_claim_not_completed(self, db_session, graph, clock, learner_id):
        service = QuestService(db_session, graph, clock)

        with pytest.raises(PreconditionError) as exc_info:
            await service.claim(learner_id, "q-lessons")

        assert exc_info.value.details["target_value"] == 2
        assert await count_rewards(db_session) == 0

    @pytest.mark.asyncio
    async def test_hearts_reward_refills_pool(self, db_session, graph, clock, learner_id):
        hearts = HeartsEconomy(db_session, clock)
        await hearts.consume(learner_id, 4)
        daily = DailyProgressService(db_session, clock)
        await daily.record_lesson(learner_id, xp=20)
        await daily.record_lesson(learner_id, xp=20)

        result = await QuestService(db_session, graph, clock).claim(learner_id, "q-lessons")

        assert result.hearts is not None
        assert result.hearts.hearts == 3
        assert (await hearts.current(learner_id)).hearts == 3

    @pytest.mark.parametrize("quest_id", ["missing", "q-extra", "q-retired"])
    @pytest.mark.asyncio
    async def test_quest_not_offered_today(self, db_session, graph, clock, learner_id, quest_id):
        with pytest.raises(NotFoundError):
            await QuestService(db_session, graph, clock).claim(learner_id, quest_id)

    @pytest.mark.asyncio
    async def test_claim_again_next_day(self, db_session, graph, clock, learner_id):
        daily = DailyProgressService(db_session, clock)
        service = QuestService(db_session, graph, clock)
        await daily.record_lesson(learner_id, xp=20)
        await service.claim(learner_id, "q-xp")

        clock.advance(days=1)
        await daily.record_lesson(learner_id, xp=20)
        await service.claim(learner_id, "q-xp")

        assert await count_rewards(db_session) == 2
        rows = await db_session.scalar(select(func.count()).select_from(UserQuestProgress))
        assert rows == 8
