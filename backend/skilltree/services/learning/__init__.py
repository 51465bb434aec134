"""
Learning Progression Services

Modules:
- skill_graph: Static curriculum graph and the unlock rule
- progress_store: Per-node mastery records and level derivation
- lesson_session_service: Lesson start/answer/complete state machine
- grading: Deterministic graders plus the free-text grading collaborator
- question_bank: Question source for new lessons
- spaced_rep_service: Review scheduling and lazy strength decay
- hearts: Regenerating hearts pool
- streak_tracking: Consecutive-day streaks
- daily_progress: Per-day totals and activity history
- achievements: Write-once badges
- quests: Daily quests and reward claims
- learner_snapshot: Skill tree read model

Usage:
    from skilltree.services.learning import (
        LessonSessionService,
        SpacedRepService,
        HeartsEconomy,
    )
"""

from skilltree.services.learning.achievements import AchievementEngine
from skilltree.services.learning.daily_progress import DailyProgressService
from skilltree.services.learning.grading import (
    AnswerGrader,
    FreeTextGrader,
    LLMFreeTextGrader,
)
from skilltree.services.learning.hearts import HeartsEconomy
from skilltree.services.learning.learner_snapshot import LearnerSnapshotService
from skilltree.services.learning.lesson_session_service import LessonSessionService
from skilltree.services.learning.progress_store import ProgressStore, level_for_xp
from skilltree.services.learning.question_bank import (
    BankQuestion,
    InMemoryQuestionBank,
    QuestionBank,
    get_question_bank,
)
from skilltree.services.learning.quests import QuestService
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.spaced_rep_service import SpacedRepService
from skilltree.services.learning.streak_tracking import StreakTracker

__all__ = [
    # Catalog
    "SkillGraph",
    "get_skill_graph",
    # Progress
    "ProgressStore",
    "level_for_xp",
    # Lessons
    "LessonSessionService",
    "AnswerGrader",
    "FreeTextGrader",
    "LLMFreeTextGrader",
    "QuestionBank",
    "InMemoryQuestionBank",
    "BankQuestion",
    "get_question_bank",
    # Retention & engagement
    "SpacedRepService",
    "HeartsEconomy",
    "StreakTracker",
    "DailyProgressService",
    "AchievementEngine",
    "QuestService",
    # Read model
    "LearnerSnapshotService",
]
