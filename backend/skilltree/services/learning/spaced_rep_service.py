"""
Spaced Repetition Scheduler

Computes review intervals, strength decay and review due-ness from
SkillProgress records.

Scheduling (on every lesson completion for a node):
    base_hours = 2^level * 24
    multiplier = 1 + strength * 0.5 on a pass, 0.5 otherwise
    next_review_at = now + round(base_hours * multiplier) hours

Decay (lazy, applied when the review queue is read):
    after a 3-day grace period strength loses 0.05 per whole day since the
    last practice, floored at 0.2. The decayed value is written back, and
    strength_decayed_at records how far decay has been realized so the
    next read only applies the remainder.

A node is due iff next_review_at has passed or effective strength < 0.5.

Usage:
    from skilltree.services.learning.spaced_rep_service import SpacedRepService

    service = SpacedRepService(db)
    queue = await service.list_due_reviews(learner_id)
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import SkillProgress
from skilltree.enums.learning import ReviewUrgency
from skilltree.middleware.error_handling import PreconditionError
from skilltree.models.learning import (
    ReviewItem,
    ReviewPickResponse,
    ReviewQueueResponse,
)
from skilltree.services.learning.progress_store import ProgressStore
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.timeutil import Clock, utc_now

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


# ===========================================
# Scheduling
# ===========================================


def review_interval_hours(level: int, strength: float, passed: bool) -> int:
    """
    Hours until the next review.

    Args:
        level: Node level the lesson was taken at.
        strength: Stored strength before the lesson.
        passed: Whether the lesson was a net pass.

    Returns:
        Interval in whole hours.
    """
    base_hours = (2 ** level) * settings.REVIEW_BASE_INTERVAL_HOURS
    if passed:
        multiplier = 1.0 + strength * 0.5
    else:
        multiplier = settings.REVIEW_FAIL_MULTIPLIER
    return round(base_hours * multiplier)


def schedule_next_review(now: datetime, level: int, strength: float, passed: bool) -> datetime:
    return now + timedelta(hours=review_interval_hours(level, strength, passed))


def is_passing(questions_correct: int, questions_total: int) -> bool:
    """A lesson is a net pass when accuracy reaches REVIEW_PASS_ACCURACY."""
    if questions_total <= 0:
        return False
    return questions_correct / questions_total >= settings.REVIEW_PASS_ACCURACY


def strength_after_lesson(strength: float, is_perfect: bool) -> float:
    if is_perfect:
        return settings.STRENGTH_MAX
    return clamp_strength(strength + settings.STRENGTH_PRACTICE_GAIN)


def clamp_strength(strength: float) -> float:
    return max(settings.STRENGTH_MIN, min(settings.STRENGTH_MAX, strength))


# ===========================================
# Decay
# ===========================================


def whole_days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed, never negative."""
    seconds = (later - earlier).total_seconds()
    return max(0, math.floor(seconds / SECONDS_PER_DAY))


def decay_for_days(days: int) -> float:
    """Total strength lost after `days` without practice."""
    return settings.DECAY_PER_DAY * max(0, days - settings.DECAY_GRACE_DAYS)


def effective_strength(
    strength: float,
    last_practiced_at: Optional[datetime],
    now: datetime,
    decayed_at: Optional[datetime] = None,
) -> float:
    """
    Strength as of `now`.

    Args:
        strength: Stored strength.
        last_practiced_at: Last lesson completion; None means no decay.
        now: Evaluation time.
        decayed_at: Time the stored strength already reflects decay
            through. None means the stored value is undecayed.

    Returns:
        Effective strength, clamped to [STRENGTH_MIN, STRENGTH_MAX]. Never
        higher than the stored value.
    """
    if last_practiced_at is None:
        return strength

    owed = decay_for_days(whole_days_between(last_practiced_at, now))
    if decayed_at is not None:
        owed -= decay_for_days(whole_days_between(last_practiced_at, decayed_at))
    if owed <= 0:
        return strength

    return max(settings.STRENGTH_MIN, min(strength, round(strength - owed, 6)))


def is_due(next_review_at: Optional[datetime], strength: float, now: datetime) -> bool:
    overdue = next_review_at is not None and next_review_at < now
    return overdue or strength < settings.STRENGTH_DUE_THRESHOLD


def review_urgency(next_review_at: Optional[datetime], now: datetime) -> ReviewUrgency:
    if next_review_at is not None and next_review_at < now:
        return ReviewUrgency.OVERDUE
    return ReviewUrgency.WEAKENING


@dataclass
class DecayResult:
    """Outcome of realizing decay on one record."""

    original_strength: float
    strength: float

    @property
    def changed(self) -> bool:
        return self.strength != self.original_strength


def apply_decay(progress: SkillProgress, now: datetime) -> DecayResult:
    """Write effective strength back onto a record."""
    original = progress.strength
    current = effective_strength(
        original, progress.last_practiced_at, now, progress.strength_decayed_at
    )
    if current != original:
        progress.strength = current
        progress.strength_decayed_at = now
    return DecayResult(original_strength=original, strength=current)


# ===========================================
# Service
# ===========================================


class SpacedRepService:
    """
    Review queue over a learner's progress records.

    Listing the queue realizes decay on every eligible record. Only nodes
    the learner has reached level 1 on are eligible for review.
    """

    REVIEW_TIP = "Review weaker skills first to keep your strength up."

    def __init__(
        self,
        db: AsyncSession,
        graph: Optional[SkillGraph] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the spaced repetition service.

        Args:
            db: SQLAlchemy async database session.
            graph: Skill graph; defaults to the shipped curriculum.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.graph = graph or get_skill_graph()
        self.clock = clock or utc_now
        self.progress_store = ProgressStore(db, self.graph, self.clock)

    def _to_item(self, progress: SkillProgress, decay: DecayResult, now: datetime) -> ReviewItem:
        node = self.graph.get_node(progress.skill_node_id)
        days = (
            whole_days_between(progress.last_practiced_at, now)
            if progress.last_practiced_at
            else None
        )
        return ReviewItem(
            skill_node_id=progress.skill_node_id,
            name=node.name if node else progress.skill_node_id,
            unit_id=node.unit_id if node else "",
            current_level=progress.current_level,
            strength=decay.strength,
            original_strength=decay.original_strength,
            next_review_at=progress.next_review_at,
            days_since_last_practice=days,
            urgency=review_urgency(progress.next_review_at, now),
        )

    async def collect_due(self, learner_id: str) -> list[ReviewItem]:
        """
        Realize decay and return every due node, weakest first.

        Ordering: effective strength ascending, then next_review_at
        ascending (nodes without a scheduled review last).
        """
        now = self.clock()
        due: list[tuple[ReviewItem, datetime]] = []

        for progress in await self.progress_store.list_for_learner(learner_id):
            if progress.current_level <= 0:
                continue
            if self.graph.get_node(progress.skill_node_id) is None:
                # Node retired from the catalog
                continue

            decay = apply_decay(progress, now)
            if decay.changed:
                logger.debug(
                    f"Decayed {learner_id}/{progress.skill_node_id} "
                    f"{decay.original_strength:.2f} -> {decay.strength:.2f}"
                )

            if is_due(progress.next_review_at, decay.strength, now):
                due.append((self._to_item(progress, decay, now), progress.next_review_at))

        await self.db.flush()

        due.sort(key=lambda pair: (pair[0].strength, pair[1] is None, pair[1] or now))
        return [item for item, _ in due]

    async def list_due_reviews(
        self, learner_id: str, limit: Optional[int] = None
    ) -> ReviewQueueResponse:
        """
        Due-review queue, capped at `limit` (default REVIEW_QUEUE_LIMIT).

        Decay written back here is committed.
        """
        limit = limit or settings.REVIEW_QUEUE_LIMIT
        items = await self.collect_due(learner_id)
        await self.db.commit()

        return ReviewQueueResponse(
            items=items[:limit],
            total_needing_review=len(items),
            tip=self.REVIEW_TIP if items else None,
        )

    async def pick_review(
        self,
        learner_id: str,
        skill_node_id: Optional[str] = None,
        review_all: bool = False,
    ) -> ReviewPickResponse:
        """
        Choose the node for a review lesson.

        Args:
            learner_id: Learner.
            skill_node_id: Node to review. Ignored when review_all is set.
            review_all: Take the most urgent due node.

        Raises:
            PreconditionError: Nothing is due (review_all), no node named,
                or the named node has no learned progress.
            NotFoundError: Unknown node id.
        """
        if review_all:
            items = await self.collect_due(learner_id)
            await self.db.commit()
            if not items:
                raise PreconditionError("No skills need review right now")
            top = items[0]
            return ReviewPickResponse(
                skill_node_id=top.skill_node_id,
                name=top.name,
                current_level=top.current_level,
                strength=top.strength,
            )

        if not skill_node_id:
            raise PreconditionError("Provide a skill_node_id or set review_all")

        node = self.graph.require_node(skill_node_id)
        progress = await self.progress_store.get(learner_id, skill_node_id)
        if progress is None or progress.current_level <= 0:
            raise PreconditionError(
                f"Skill {skill_node_id} has nothing to review yet",
                details={"skill_node_id": skill_node_id},
            )

        decay = apply_decay(progress, self.clock())
        await self.db.commit()
        return ReviewPickResponse(
            skill_node_id=node.id,
            name=node.name,
            current_level=progress.current_level,
            strength=decay.strength,
        )
