"""
Hearts Economy

Per-learner consumable resource that gates lesson starts and is lost on
wrong answers. Regeneration is a pure function of (stored state, now):

    added = floor((now - last_refill_at) / refill_interval)
    current = min(max_hearts, hearts + added)

No timer runs in the background. Any write that changes the effective
count stores it and moves last_refill_at to now, so the same elapsed
interval is never granted twice. While unlimited mode is active the pool
reports max_hearts and consumption is a no-op.

Usage:
    from skilltree.services.learning.hearts import HeartsEconomy

    hearts = HeartsEconomy(db)
    state = await hearts.current(learner_id)
    state, deducted = await hearts.consume(learner_id)
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import HeartsPool
from skilltree.enums.learning import HeartsAction
from skilltree.middleware.error_handling import PreconditionError
from skilltree.models.learning import HeartsActionRequest, HeartsResponse
from skilltree.services.learning.timeutil import Clock, utc_now

logger = logging.getLogger(__name__)


# ===========================================
# Pure Regeneration
# ===========================================


@dataclass
class HeartsState:
    """Effective pool state at a point in time."""

    hearts: int
    max_hearts: int
    is_unlimited: bool = False
    unlimited_until: Optional[datetime] = None
    next_refill_at: Optional[datetime] = None

    @property
    def can_start_lesson(self) -> bool:
        return self.is_unlimited or self.hearts > 0

    def to_response(self) -> HeartsResponse:
        return HeartsResponse(
            hearts=self.hearts,
            max_hearts=self.max_hearts,
            is_unlimited=self.is_unlimited,
            unlimited_until=self.unlimited_until,
            next_refill_at=self.next_refill_at,
        )


def refill_interval() -> timedelta:
    return timedelta(hours=settings.HEARTS_REFILL_INTERVAL_HOURS)


def is_unlimited(pool: HeartsPool, now: datetime) -> bool:
    return pool.unlimited_until is not None and pool.unlimited_until > now


def effective_hearts(pool: HeartsPool, now: datetime) -> HeartsState:
    """
    Hearts available at `now`.

    Args:
        pool: Stored pool.
        now: Evaluation time.

    Returns:
        HeartsState; hearts never exceeds max_hearts, and equals it while
        unlimited mode is active.
    """
    if is_unlimited(pool, now):
        return HeartsState(
            hearts=pool.max_hearts,
            max_hearts=pool.max_hearts,
            is_unlimited=True,
            unlimited_until=pool.unlimited_until,
        )

    interval = refill_interval()
    elapsed = max(timedelta(0), now - pool.last_refill_at)
    added = math.floor(elapsed / interval)
    current = max(0, min(pool.max_hearts, pool.hearts + added))

    next_refill_at = None
    if current < pool.max_hearts:
        next_refill_at = pool.last_refill_at + interval * (added + 1)

    return HeartsState(
        hearts=current,
        max_hearts=pool.max_hearts,
        next_refill_at=next_refill_at,
    )


# ===========================================
# Service
# ===========================================


class HeartsEconomy:
    """
    Hearts pool operations for one request.

    consume/grant/refill/grant_unlimited flush but do not commit;
    apply_action is a complete API operation and commits.
    """

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        """
        Initialize the hearts economy.

        Args:
            db: SQLAlchemy async database session.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.clock = clock or utc_now

    async def get_pool(self, learner_id: str) -> HeartsPool:
        """Fetch the learner's pool, creating a full one on first access."""
        pool = await self.db.get(HeartsPool, learner_id)
        if pool is not None:
            return pool

        pool = HeartsPool(
            learner_id=learner_id,
            hearts=settings.HEARTS_MAX,
            max_hearts=settings.HEARTS_MAX,
            last_refill_at=self.clock(),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(pool)
        except IntegrityError:
            result = await self.db.execute(
                select(HeartsPool).where(HeartsPool.learner_id == learner_id)
            )
            pool = result.scalar_one()
        return pool

    async def current(self, learner_id: str) -> HeartsState:
        pool = await self.get_pool(learner_id)
        return effective_hearts(pool, self.clock())

    def _store(self, pool: HeartsPool, hearts: int, now: datetime) -> HeartsState:
        pool.hearts = max(0, min(pool.max_hearts, hearts))
        pool.last_refill_at = now
        return effective_hearts(pool, now)

    async def consume(self, learner_id: str, amount: int = 1) -> tuple[HeartsState, int]:
        """
        Remove hearts, flooring at zero.

        Args:
            learner_id: Learner.
            amount: Hearts to remove.

        Returns:
            Tuple of (state after, hearts actually removed). Nothing is
            removed while unlimited mode is active or the pool is empty.
        """
        pool = await self.get_pool(learner_id)
        now = self.clock()
        state = effective_hearts(pool, now)

        if state.is_unlimited or state.hearts == 0 or amount <= 0:
            return state, 0

        deducted = min(amount, state.hearts)
        state = self._store(pool, state.hearts - deducted, now)
        await self.db.flush()

        if state.hearts == 0:
            logger.info(f"Learner {learner_id} is out of hearts")
        return state, deducted

    async def grant(self, learner_id: str, amount: int) -> HeartsState:
        """Add hearts, capped at max. Used for quest rewards."""
        pool = await self.get_pool(learner_id)
        now = self.clock()
        state = effective_hearts(pool, now)

        if state.is_unlimited or amount <= 0:
            return state

        new_total = min(state.max_hearts, state.hearts + amount)
        if new_total == state.hearts:
            return state

        state = self._store(pool, new_total, now)
        await self.db.flush()
        return state

    async def grant_from_practice(self, learner_id: str) -> HeartsState:
        """
        Earn one heart outside a lesson.

        Raises:
            PreconditionError: Pool already full (or unlimited).
        """
        state = await self.current(learner_id)
        if state.is_unlimited or state.hearts >= state.max_hearts:
            raise PreconditionError(
                "Hearts already full",
                details={"hearts": state.hearts, "max_hearts": state.max_hearts},
            )
        return await self.grant(learner_id, 1)

    async def refill(self, learner_id: str) -> HeartsState:
        pool = await self.get_pool(learner_id)
        now = self.clock()
        state = effective_hearts(pool, now)
        if state.is_unlimited or state.hearts >= state.max_hearts:
            return state

        state = self._store(pool, pool.max_hearts, now)
        await self.db.flush()
        return state

    async def grant_unlimited(self, learner_id: str, hours: Optional[float] = None) -> HeartsState:
        """
        Turn on unlimited mode for `hours`.

        An existing later expiry is kept rather than shortened.
        """
        hours = hours or settings.HEARTS_UNLIMITED_DEFAULT_HOURS
        pool = await self.get_pool(learner_id)
        now = self.clock()

        until = now + timedelta(hours=hours)
        if pool.unlimited_until is None or pool.unlimited_until < until:
            pool.unlimited_until = until
        await self.db.flush()

        logger.info(f"Learner {learner_id} has unlimited hearts until {pool.unlimited_until}")
        return effective_hearts(pool, now)

    async def apply_action(self, learner_id: str, request: HeartsActionRequest) -> HeartsResponse:
        """
        Run one hearts API action and commit.

        Args:
            learner_id: Learner.
            request: Action and its parameters.

        Returns:
            HeartsResponse after the action.
        """
        if request.action == HeartsAction.USE:
            state, _ = await self.consume(learner_id, request.amount)
        elif request.action == HeartsAction.PRACTICE:
            state = await self.grant_from_practice(learner_id)
        elif request.action == HeartsAction.REFILL:
            state = await self.refill(learner_id)
        else:
            state = await self.grant_unlimited(learner_id, request.hours)

        await self.db.commit()
        return state.to_response()
