"""
Learner Snapshot

Read model for clients: the whole skill tree as one learner sees it,
composed from the progress store, hearts, streak, today's progress and the
review queue. It owns no state.

Node status, first match wins:
- locked: a prerequisite is below level 1
- available: unlocked, no level yet
- legendary: max level
- needs_review: effective strength below the due threshold
- in_progress: everything else
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.models import SkillProgress
from skilltree.enums.learning import NodeStatus
from skilltree.models.curriculum import SkillNode
from skilltree.models.learning import SkillNodeState, SkillTreeResponse, SkillUnitState
from skilltree.services.learning.daily_progress import DailyProgressService
from skilltree.services.learning.hearts import HeartsEconomy
from skilltree.services.learning.progress_store import ProgressStore, max_level, next_level_xp
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.spaced_rep_service import SpacedRepService, effective_strength
from skilltree.services.learning.streak_tracking import StreakTracker
from skilltree.services.learning.timeutil import Clock, utc_now

logger = logging.getLogger(__name__)


def node_status(is_unlocked: bool, level: int, strength: Optional[float]) -> NodeStatus:
    if not is_unlocked:
        return NodeStatus.LOCKED
    if level <= 0:
        return NodeStatus.AVAILABLE
    if level >= max_level():
        return NodeStatus.LEGENDARY
    if strength is not None and strength < settings.STRENGTH_DUE_THRESHOLD:
        return NodeStatus.NEEDS_REVIEW
    return NodeStatus.IN_PROGRESS


def node_state(
    node: SkillNode,
    progress: Optional[SkillProgress],
    is_unlocked: bool,
    now: datetime,
) -> SkillNodeState:
    level = progress.current_level if progress else 0
    xp = progress.xp_earned if progress else 0
    strength = None
    if progress is not None:
        strength = effective_strength(
            progress.strength, progress.last_practiced_at, now, progress.strength_decayed_at
        )

    threshold = next_level_xp(level)
    return SkillNodeState(
        id=node.id,
        unit_id=node.unit_id,
        name=node.name,
        description=node.description,
        order=node.order,
        prerequisites=list(node.prerequisites),
        is_elective=node.is_elective,
        is_unlocked=is_unlocked,
        status=node_status(is_unlocked, level, strength),
        current_level=level,
        xp_earned=xp,
        next_level_xp=threshold,
        xp_to_next_level=max(0, threshold - xp) if threshold is not None else None,
        strength=strength,
        lessons_completed=progress.lessons_completed if progress else 0,
        perfect_lessons=progress.perfect_lessons if progress else 0,
        next_review_at=progress.next_review_at if progress else None,
    )


class LearnerSnapshotService:
    """Builds the skill tree read model for one learner."""

    def __init__(
        self,
        db: AsyncSession,
        graph: Optional[SkillGraph] = None,
        clock: Optional[Clock] = None,
    ):
        self.db = db
        self.graph = graph or get_skill_graph()
        self.clock = clock or utc_now

        self.progress = ProgressStore(db, self.graph, self.clock)
        self.spaced_rep = SpacedRepService(db, self.graph, self.clock)
        self.hearts = HeartsEconomy(db, self.clock)
        self.streaks = StreakTracker(db, self.clock)
        self.daily = DailyProgressService(db, self.clock)

    async def get_skill_tree(self, learner_id: str) -> SkillTreeResponse:
        """
        Compose the snapshot.

        Reading the review queue realizes strength decay, and the first
        read creates the hearts pool; both are committed here.
        """
        now = self.clock()
        due = await self.spaced_rep.collect_due(learner_id)
        hearts = await self.hearts.current(learner_id)

        rows = {p.skill_node_id: p for p in await self.progress.list_for_learner(learner_id)}
        levels = {node_id: p.current_level for node_id, p in rows.items()}

        units = []
        for unit in self.graph.units:
            nodes = [
                node_state(node, rows.get(node.id), self.graph.is_unlocked(node.id, levels), now)
                for node in self.graph.nodes_in_unit(unit.id)
            ]
            units.append(
                SkillUnitState(
                    id=unit.id,
                    name=unit.name,
                    description=unit.description,
                    icon=unit.icon,
                    color=unit.color,
                    is_elective=unit.is_elective,
                    completed_nodes=sum(1 for n in nodes if n.status == NodeStatus.LEGENDARY),
                    total_nodes=len(nodes),
                    nodes=nodes,
                )
            )

        totals = await self.progress.get_totals(learner_id)
        streak = await self.streaks.get_streak(learner_id)
        daily = await self.daily.get_today(learner_id)
        await self.db.commit()

        return SkillTreeResponse(
            units=units,
            totals=totals,
            hearts=hearts.to_response(),
            streak=streak,
            daily=daily,
            due_reviews=due[: settings.REVIEW_QUEUE_LIMIT],
        )
