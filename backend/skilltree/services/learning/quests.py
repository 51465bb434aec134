"""
Daily Quest Service

Small per-day goals measured against today's DailyProgress and the
current streak. Progress rows are keyed by (learner, quest, date), so a
new calendar day in the learner timezone starts every quest from zero.

Claiming flips is_claimed with a conditional UPDATE
(WHERE is_claimed = false); if it matches no row another request claimed
first and this one is rejected, so a reward is emitted at most once.

Usage:
    from skilltree.services.learning.quests import QuestService

    service = QuestService(db)
    quests = await service.list_quests(learner_id)
    claim = await service.claim(learner_id, "daily-xp-10")
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import DailyProgress, StreakRecord, UserQuestProgress
from skilltree.enums.learning import CriteriaType, RewardSource
from skilltree.middleware.error_handling import (
    ConflictError,
    NotFoundError,
    PreconditionError,
)
from skilltree.models.curriculum import QuestDefinition
from skilltree.models.gamification import (
    QuestClaimResponse,
    QuestListResponse,
    QuestStatus,
    RewardResponse,
)
from skilltree.services.learning.achievements import progress_percent
from skilltree.services.learning.rewards import RewardEmitter
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.timeutil import Clock, local_date, next_local_midnight, utc_now

logger = logging.getLogger(__name__)


def quest_value(
    definition: QuestDefinition,
    daily: Optional[DailyProgress],
    streak: Optional[StreakRecord],
) -> int:
    """Today's value of the aggregate a quest measures."""
    if definition.criteria_type == CriteriaType.STREAK:
        return streak.current_streak if streak else 0
    if daily is None:
        return 0
    if definition.criteria_type == CriteriaType.XP:
        return daily.xp_earned
    if definition.criteria_type == CriteriaType.LESSONS:
        return daily.lessons_completed
    return daily.perfect_lessons


class QuestService:
    """
    Daily quest listing and claiming.

    Both public methods are complete API operations and commit.
    """

    def __init__(
        self,
        db: AsyncSession,
        graph: Optional[SkillGraph] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the quest service.

        Args:
            db: SQLAlchemy async database session.
            graph: Skill graph whose catalog holds the quest definitions.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.graph = graph or get_skill_graph()
        self.clock = clock or utc_now
        self.rewards = RewardEmitter(db, self.clock)

    def active_definitions(self) -> list[QuestDefinition]:
        """Today's offer: active quests by display order, at most QUESTS_PER_DAY."""
        active = [q for q in self.graph.curriculum.quests if q.is_active]
        active.sort(key=lambda q: (q.display_order, q.id))
        return active[: settings.QUESTS_PER_DAY]

    async def _get_row(self, learner_id: str, quest_id: str, day: date) -> Optional[UserQuestProgress]:
        result = await self.db.execute(
            select(UserQuestProgress).where(
                UserQuestProgress.learner_id == learner_id,
                UserQuestProgress.quest_id == quest_id,
                UserQuestProgress.quest_date == day,
            )
        )
        return result.scalar_one_or_none()

    async def _sync_row(
        self,
        learner_id: str,
        definition: QuestDefinition,
        day: date,
        daily: Optional[DailyProgress],
        streak: Optional[StreakRecord],
    ) -> UserQuestProgress:
        """Create-or-refresh today's progress row from the aggregates."""
        row = await self._get_row(learner_id, definition.id, day)
        if row is None:
            row = UserQuestProgress(
                learner_id=learner_id,
                quest_id=definition.id,
                quest_date=day,
                current_value=0,
                target_value=definition.criteria_value,
                is_completed=False,
                is_claimed=False,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(row)
            except IntegrityError:
                row = await self._get_row(learner_id, definition.id, day)

        value = quest_value(definition, daily, streak)
        row.current_value = min(value, row.target_value)
        # Completion is sticky within the day
        row.is_completed = row.is_completed or value >= row.target_value
        return row

    async def _sync_all(self, learner_id: str, day: date) -> list[tuple[QuestDefinition, UserQuestProgress]]:
        result = await self.db.execute(
            select(DailyProgress).where(
                DailyProgress.learner_id == learner_id,
                DailyProgress.activity_date == day,
            )
        )
        daily = result.scalar_one_or_none()
        streak = await self.db.get(StreakRecord, learner_id)

        pairs = []
        for definition in self.active_definitions():
            row = await self._sync_row(learner_id, definition, day, daily, streak)
            pairs.append((definition, row))
        await self.db.flush()
        return pairs

    async def list_quests(self, learner_id: str) -> QuestListResponse:
        """Today's quests with progress, plus the countdown to the next reset."""
        now = self.clock()
        day = local_date(now)
        pairs = await self._sync_all(learner_id, day)
        await self.db.commit()

        quests = [
            QuestStatus(
                id=definition.id,
                name=definition.name,
                icon=definition.icon,
                criteria_type=definition.criteria_type,
                current_value=row.current_value,
                target_value=row.target_value,
                progress=progress_percent(row.current_value, row.target_value),
                is_completed=row.is_completed,
                is_claimed=row.is_claimed,
                can_claim=row.is_completed and not row.is_claimed,
                reward_type=definition.reward_type,
                reward_amount=definition.reward_amount,
            )
            for definition, row in pairs
        ]

        resets_at = next_local_midnight(now)
        return QuestListResponse(
            quest_date=day,
            quests=quests,
            completed_count=sum(1 for q in quests if q.is_completed),
            claimable_count=sum(1 for q in quests if q.can_claim),
            resets_at=resets_at,
            resets_in_seconds=max(0, int((resets_at - now).total_seconds())),
        )

    async def claim(self, learner_id: str, quest_id: str) -> QuestClaimResponse:
        """
        Claim today's reward for a completed quest.

        Raises:
            NotFoundError: Quest not offered today.
            PreconditionError: Quest not completed yet.
            ConflictError: Already claimed today (including by a racing
                request).
        """
        now = self.clock()
        day = local_date(now)

        definition = next((q for q in self.active_definitions() if q.id == quest_id), None)
        if definition is None:
            raise NotFoundError(f"Quest {quest_id} not found", details={"quest_id": quest_id})

        pairs = await self._sync_all(learner_id, day)
        row = next(r for d, r in pairs if d.id == quest_id)

        if not row.is_completed:
            await self.db.commit()
            raise PreconditionError(
                f"Quest {quest_id} is not completed yet",
                details={
                    "quest_id": quest_id,
                    "current_value": row.current_value,
                    "target_value": row.target_value,
                },
            )
        if row.is_claimed:
            raise ConflictError(f"Quest {quest_id} already claimed today", details={"quest_id": quest_id})

        result = await self.db.execute(
            update(UserQuestProgress)
            .where(UserQuestProgress.id == row.id, UserQuestProgress.is_claimed.is_(False))
            .values(is_claimed=True, claimed_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise ConflictError(f"Quest {quest_id} already claimed today", details={"quest_id": quest_id})

        hearts = await self.rewards.emit(
            learner_id,
            RewardSource.QUEST,
            definition.id,
            definition.reward_type,
            definition.reward_amount,
        )
        await self.db.commit()

        logger.info(f"Learner {learner_id} claimed quest {quest_id}")
        return QuestClaimResponse(
            quest_id=quest_id,
            message=f"Claimed {definition.reward_amount} {definition.reward_type.value}",
            reward=RewardResponse(type=definition.reward_type, amount=definition.reward_amount),
            hearts=hearts.to_response() if hearts else None,
        )
