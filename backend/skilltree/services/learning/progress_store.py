"""
Progress Store

Per-(learner, skill node) mastery records and the level derivation rule.

Responsibilities:
- Derive level from XP (pure, re-run on every award, never patched)
- Evaluate the unlock rule against a learner's stored levels
- Create progress lazily (claim on unlock, or first lesson completion)
- Aggregate lifetime totals for achievements and the client read model

Usage:
    from skilltree.services.learning.progress_store import ProgressStore, level_for_xp

    level_for_xp(120)  # 1

    store = ProgressStore(db)
    progress = await store.claim_initial_progress(learner_id, "heat-1a-1")
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import SkillProgress
from skilltree.middleware.error_handling import ConflictError, PreconditionError
from skilltree.models.curriculum import SkillNode
from skilltree.models.learning import LearnerTotals
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.timeutil import Clock, utc_now

logger = logging.getLogger(__name__)


# ===========================================
# Level Derivation
# ===========================================


def level_for_xp(xp: int, thresholds: Optional[Sequence[int]] = None) -> int:
    """
    Largest level whose XP threshold has been reached.

    Args:
        xp: XP earned on a node.
        thresholds: XP required per level (index = level). Defaults to
            settings.LEVEL_THRESHOLDS.

    Returns:
        Level between 0 and len(thresholds) - 1.
    """
    thresholds = thresholds or settings.LEVEL_THRESHOLDS
    level = 0
    for index, threshold in enumerate(thresholds):
        if xp >= threshold:
            level = index
    return level


def max_level(thresholds: Optional[Sequence[int]] = None) -> int:
    thresholds = thresholds or settings.LEVEL_THRESHOLDS
    return len(thresholds) - 1


def next_level_xp(level: int, thresholds: Optional[Sequence[int]] = None) -> Optional[int]:
    """XP threshold of the level after `level`, or None at max level."""
    thresholds = thresholds or settings.LEVEL_THRESHOLDS
    if level + 1 >= len(thresholds):
        return None
    return thresholds[level + 1]


@dataclass
class LevelChange:
    """Level before and after an XP award."""

    before: int
    after: int

    @property
    def leveled_up(self) -> bool:
        return self.after > self.before


def award_xp(progress: SkillProgress, amount: int) -> LevelChange:
    """
    Add XP to a progress record and recompute its level.

    Negative awards are rejected so xp_earned stays monotonic.
    """
    if amount < 0:
        raise ValueError("XP awards must be non-negative")
    before = progress.current_level or 0
    progress.xp_earned = (progress.xp_earned or 0) + amount
    progress.current_level = level_for_xp(progress.xp_earned)
    return LevelChange(before=before, after=progress.current_level)


# ===========================================
# Store
# ===========================================


class ProgressStore:
    """
    Reads and writes SkillProgress rows for one request.

    Methods flush but do not commit; the calling operation owns the
    transaction.
    """

    def __init__(
        self,
        db: AsyncSession,
        graph: Optional[SkillGraph] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the progress store.

        Args:
            db: SQLAlchemy async database session.
            graph: Skill graph; defaults to the shipped curriculum.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.graph = graph or get_skill_graph()
        self.clock = clock or utc_now

    async def get(self, learner_id: str, node_id: str) -> Optional[SkillProgress]:
        result = await self.db.execute(
            select(SkillProgress).where(
                SkillProgress.learner_id == learner_id,
                SkillProgress.skill_node_id == node_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_for_learner(self, learner_id: str) -> list[SkillProgress]:
        result = await self.db.execute(
            select(SkillProgress).where(SkillProgress.learner_id == learner_id)
        )
        return list(result.scalars().all())

    async def get_levels(self, learner_id: str) -> dict[str, int]:
        """Current level per node id for every node the learner has progress on."""
        result = await self.db.execute(
            select(SkillProgress.skill_node_id, SkillProgress.current_level).where(
                SkillProgress.learner_id == learner_id
            )
        )
        return {node_id: level for node_id, level in result.all()}

    async def is_unlocked(self, learner_id: str, node_id: str) -> bool:
        node = self.graph.require_node(node_id)
        if node.is_root:
            return True
        return self.graph.is_unlocked(node_id, await self.get_levels(learner_id))

    async def require_unlocked(self, learner_id: str, node_id: str) -> SkillNode:
        """
        Ensure a node exists and is unlocked for the learner.

        Raises:
            NotFoundError: Unknown node id.
            PreconditionError: One or more prerequisites below level 1.
        """
        node = self.graph.require_node(node_id)
        if node.is_root:
            return node

        missing = self.graph.unmet_prerequisites(node_id, await self.get_levels(learner_id))
        if missing:
            raise PreconditionError(
                f"Skill {node_id} is locked",
                details={"skill_node_id": node_id, "missing_prerequisites": missing},
            )
        return node

    async def get_or_create(self, learner_id: str, node_id: str) -> SkillProgress:
        """
        Fetch the learner's progress on a node, creating a level-0 record if absent.

        Creation runs in a SAVEPOINT so a concurrent insert of the same
        (learner, node) pair resolves to the row that won.
        """
        progress = await self.get(learner_id, node_id)
        if progress is not None:
            return progress

        progress = SkillProgress(
            learner_id=learner_id,
            skill_node_id=node_id,
            current_level=0,
            xp_earned=0,
            lessons_completed=0,
            perfect_lessons=0,
            strength=settings.STRENGTH_MAX,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(progress)
        except IntegrityError:
            logger.info(f"Progress for {learner_id}/{node_id} created concurrently")
            progress = await self.get(learner_id, node_id)
        return progress

    async def claim_initial_progress(self, learner_id: str, node_id: str) -> SkillProgress:
        """
        Create level-0 progress on an unlocked node.

        Args:
            learner_id: Learner claiming the node.
            node_id: Node to claim.

        Returns:
            The new SkillProgress.

        Raises:
            NotFoundError: Unknown node id.
            PreconditionError: Node is locked.
            ConflictError: Progress already exists.
        """
        await self.require_unlocked(learner_id, node_id)

        if await self.get(learner_id, node_id) is not None:
            raise ConflictError(
                f"Skill {node_id} already unlocked",
                details={"skill_node_id": node_id},
            )

        progress = await self.get_or_create(learner_id, node_id)
        await self.db.commit()
        logger.info(f"Learner {learner_id} unlocked {node_id}")
        return progress

    async def get_totals(self, learner_id: str) -> LearnerTotals:
        """Lifetime totals across all nodes."""
        rows = await self.list_for_learner(learner_id)
        top = max_level()
        return LearnerTotals(
            total_xp=sum(p.xp_earned for p in rows),
            lessons_completed=sum(p.lessons_completed for p in rows),
            perfect_lessons=sum(p.perfect_lessons for p in rows),
            nodes_started=sum(1 for p in rows if p.current_level > 0),
            nodes_mastered=sum(1 for p in rows if p.current_level >= top),
        )
