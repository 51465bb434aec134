"""
Achievement Engine

Evaluates badge criteria against a learner's lifetime aggregates and
records earned badges exactly once.

Criteria:
- xp: total XP across all nodes
- lessons: total completed lessons
- streak: the better of current and longest streak
- perfect_lessons: total perfect lessons
- unit_complete: every node in the named unit at max level

Earning is write-once: the insert runs in a SAVEPOINT and a unique
violation (a concurrent request earned it first) is treated as already
earned. XP rewards are returned to the caller, which appends them to the
progress record of the lesson that triggered them.

Usage:
    from skilltree.services.learning.achievements import AchievementEngine

    engine = AchievementEngine(db)
    newly_earned = await engine.evaluate(learner_id)
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.db.models import StreakRecord, UserAchievement
from skilltree.enums.learning import CriteriaType, RewardSource
from skilltree.models.curriculum import AchievementDefinition
from skilltree.models.gamification import AchievementListResponse, AchievementStatus
from skilltree.services.learning.progress_store import ProgressStore, max_level
from skilltree.services.learning.rewards import RewardEmitter
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.timeutil import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass
class LearnerStats:
    """Lifetime aggregates that achievement criteria read."""

    total_xp: int = 0
    lessons_completed: int = 0
    perfect_lessons: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    levels: dict[str, int] = field(default_factory=dict)


def criteria_progress(
    definition: AchievementDefinition,
    stats: LearnerStats,
    graph: SkillGraph,
) -> tuple[int, int]:
    """
    Current and target value for one achievement.

    Returns:
        (current, target). The achievement is met when current >= target.
    """
    criteria = definition.criteria_type

    if criteria == CriteriaType.UNIT_COMPLETE:
        nodes = graph.nodes_in_unit(str(definition.criteria_value))
        top = max_level()
        mastered = sum(1 for n in nodes if stats.levels.get(n.id, 0) >= top)
        # A unit with no nodes can never be completed
        return mastered, len(nodes) or 1

    target = int(definition.criteria_value)
    if criteria == CriteriaType.XP:
        return stats.total_xp, target
    if criteria == CriteriaType.LESSONS:
        return stats.lessons_completed, target
    if criteria == CriteriaType.STREAK:
        return max(stats.current_streak, stats.longest_streak), target
    return stats.perfect_lessons, target


def progress_percent(current: int, target: int) -> int:
    if target <= 0:
        return 0
    return min(100, (current * 100) // target)


class AchievementEngine:
    """
    Evaluate and list achievements for one learner.

    evaluate flushes; the lesson completion that calls it commits.
    """

    def __init__(
        self,
        db: AsyncSession,
        graph: Optional[SkillGraph] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the achievement engine.

        Args:
            db: SQLAlchemy async database session.
            graph: Skill graph; defaults to the shipped curriculum.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.graph = graph or get_skill_graph()
        self.clock = clock or utc_now
        self.progress_store = ProgressStore(db, self.graph, self.clock)
        self.rewards = RewardEmitter(db, self.clock)

    @property
    def definitions(self) -> list[AchievementDefinition]:
        return list(self.graph.curriculum.achievements)

    async def build_stats(self, learner_id: str) -> LearnerStats:
        rows = await self.progress_store.list_for_learner(learner_id)
        streak = await self.db.get(StreakRecord, learner_id)
        return LearnerStats(
            total_xp=sum(p.xp_earned for p in rows),
            lessons_completed=sum(p.lessons_completed for p in rows),
            perfect_lessons=sum(p.perfect_lessons for p in rows),
            current_streak=streak.current_streak if streak else 0,
            longest_streak=streak.longest_streak if streak else 0,
            levels={p.skill_node_id: p.current_level for p in rows},
        )

    async def earned(self, learner_id: str) -> dict[str, UserAchievement]:
        result = await self.db.execute(
            select(UserAchievement).where(UserAchievement.learner_id == learner_id)
        )
        return {row.achievement_id: row for row in result.scalars().all()}

    async def _record(self, learner_id: str, definition: AchievementDefinition) -> bool:
        """Insert the earned row. False if it already existed."""
        try:
            async with self.db.begin_nested():
                self.db.add(
                    UserAchievement(
                        learner_id=learner_id,
                        achievement_id=definition.id,
                        earned_at=self.clock(),
                    )
                )
        except IntegrityError:
            logger.info(f"Achievement {definition.id} already earned by {learner_id}")
            return False
        return True

    async def evaluate(self, learner_id: str) -> list[AchievementDefinition]:
        """
        Award every achievement whose criteria are now met.

        Args:
            learner_id: Learner.

        Returns:
            Definitions newly earned by this call. Their XP rewards are the
            caller's to apply; currency rewards are emitted here.
        """
        stats = await self.build_stats(learner_id)
        already = await self.earned(learner_id)

        newly_earned = []
        for definition in self.definitions:
            if definition.id in already:
                continue
            current, target = criteria_progress(definition, stats, self.graph)
            if current < target:
                continue
            if not await self._record(learner_id, definition):
                continue

            newly_earned.append(definition)
            logger.info(f"Learner {learner_id} earned achievement {definition.id}")

            if definition.reward_type is not None and definition.reward_amount > 0:
                await self.rewards.emit(
                    learner_id,
                    RewardSource.ACHIEVEMENT,
                    definition.id,
                    definition.reward_type,
                    definition.reward_amount,
                )

        return newly_earned

    async def list_achievements(self, learner_id: str) -> AchievementListResponse:
        """
        Every achievement with the learner's progress.

        Read-only. Achievements are only earned by lesson completions, so
        their XP always lands on the node that was practiced.
        """
        stats = await self.build_stats(learner_id)
        earned = await self.earned(learner_id)

        statuses = []
        for definition in self.definitions:
            current, target = criteria_progress(definition, stats, self.graph)
            row = earned.get(definition.id)
            statuses.append(
                AchievementStatus(
                    id=definition.id,
                    name=definition.name,
                    description=definition.description,
                    criteria_type=definition.criteria_type,
                    criteria_value=definition.criteria_value,
                    tier=definition.tier,
                    xp_reward=definition.xp_reward,
                    earned=row is not None,
                    earned_at=row.earned_at if row else None,
                    current_value=min(current, target),
                    target_value=target,
                    progress=100 if row else progress_percent(current, target),
                )
            )

        statuses.sort(key=lambda s: (not s.earned, -s.tier, s.id))
        earned_statuses = [s for s in statuses if s.earned]
        return AchievementListResponse(
            achievements=statuses,
            total=len(statuses),
            earned=len(earned_statuses),
            total_xp_from_achievements=sum(s.xp_reward for s in earned_statuses),
        )
