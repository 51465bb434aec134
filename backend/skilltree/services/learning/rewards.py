"""
Reward Emission

Records currency rewards from quests and achievements. Gems and streak
freezes belong to the external ledger and are only recorded as
RewardEvent rows; hearts rewards are also applied to the local pool.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.db.models import RewardEvent
from skilltree.enums.learning import RewardSource, RewardType
from skilltree.services.learning.hearts import HeartsEconomy, HeartsState
from skilltree.services.learning.timeutil import Clock, utc_now

logger = logging.getLogger(__name__)


class RewardEmitter:
    """Writes reward events inside the caller's transaction."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or utc_now
        self.hearts = HeartsEconomy(db, self.clock)

    async def emit(
        self,
        learner_id: str,
        source: RewardSource,
        source_id: str,
        reward_type: RewardType,
        amount: int,
    ) -> Optional[HeartsState]:
        """
        Record one reward.

        Returns:
            Hearts state after the grant for hearts rewards, else None.
        """
        self.db.add(
            RewardEvent(
                learner_id=learner_id,
                source=source.value,
                source_id=source_id,
                reward_type=reward_type.value,
                amount=amount,
                created_at=self.clock(),
            )
        )
        logger.info(f"Reward {amount} {reward_type.value} to {learner_id} from {source.value} {source_id}")

        if reward_type == RewardType.HEARTS:
            return await self.hearts.grant(learner_id, amount)

        await self.db.flush()
        return None
