"""
Learning API Router

Endpoints for the skill tree, lessons, reviews, hearts, streaks, daily
activity and achievements. Every endpoint is scoped to the learner
resolved by get_learner_id.

Endpoints:
- GET /api/learn/skill-tree - Skill tree snapshot for the learner
- POST /api/learn/skill-tree/unlock - Claim initial progress on an unlocked node
- POST /api/learn/lesson/start - Start a lesson
- POST /api/learn/lesson/answer - Submit one answer
- POST /api/learn/lesson/complete - Complete a lesson
- GET /api/learn/lesson/{session_id} - Read an owned lesson session
- GET /api/learn/review - Due-review queue
- POST /api/learn/review - Pick a node to review
- GET /api/learn/hearts - Current hearts
- POST /api/learn/hearts - Hearts action (use, practice, refill, unlimited)
- GET /api/learn/streak - Streak and milestones
- GET /api/learn/activity - Daily activity history
- GET /api/learn/achievements - Achievements with progress
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.base import get_db
from skilltree.dependencies import get_learner_id
from skilltree.enums import RateLimitType
from skilltree.middleware.rate_limit import limiter
from skilltree.models.gamification import AchievementListResponse
from skilltree.models.learning import (
    ActivityHistoryResponse,
    AnswerResultResponse,
    AnswerSubmitRequest,
    HeartsActionRequest,
    HeartsResponse,
    LessonCompleteRequest,
    LessonCompleteResponse,
    LessonSessionResponse,
    LessonStartRequest,
    LessonStartResponse,
    ReviewPickRequest,
    ReviewPickResponse,
    ReviewQueueResponse,
    SkillNodeState,
    SkillTreeResponse,
    SkillUnlockRequest,
    StreakResponse,
)
from skilltree.services.learning import (
    AchievementEngine,
    AnswerGrader,
    DailyProgressService,
    HeartsEconomy,
    LearnerSnapshotService,
    LessonSessionService,
    LLMFreeTextGrader,
    ProgressStore,
    QuestionBank,
    SpacedRepService,
    StreakTracker,
    get_question_bank,
)
from skilltree.services.learning.learner_snapshot import node_state
from skilltree.services.learning.timeutil import utc_now

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/learn", tags=["learn"])


# ===========================================
# Dependency Injection
# ===========================================


def get_bank() -> QuestionBank:
    """Get the shared question bank."""
    return get_question_bank()


def get_answer_grader() -> AnswerGrader:
    """Get the answer grader, with the LLM free-text grader when enabled."""
    free_text = LLMFreeTextGrader() if settings.GRADING_ENABLED else None
    return AnswerGrader(free_text)


async def get_lesson_service(
    db: AsyncSession = Depends(get_db),
    bank: QuestionBank = Depends(get_bank),
    grader: AnswerGrader = Depends(get_answer_grader),
) -> LessonSessionService:
    """Get lesson session service."""
    return LessonSessionService(db, bank, grader)


# ===========================================
# Skill Tree Endpoints
# ===========================================


@router.get("/skill-tree", response_model=SkillTreeResponse)
async def get_skill_tree(
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> SkillTreeResponse:
    """
    Skill tree as the learner sees it.

    Includes unlock state, levels, XP to next level, effective strength,
    hearts, streak, today's progress and the due reviews.
    """
    return await LearnerSnapshotService(db).get_skill_tree(learner_id)


@router.post("/skill-tree/unlock", response_model=SkillNodeState)
async def unlock_skill(
    request: SkillUnlockRequest,
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> SkillNodeState:
    """
    Claim level-0 progress on an unlocked node.

    Returns 400 if the node is locked and 409 if progress already exists.
    """
    store = ProgressStore(db)
    progress = await store.claim_initial_progress(learner_id, request.skill_node_id)
    node = store.graph.require_node(request.skill_node_id)
    return node_state(node, progress, True, utc_now())


# ===========================================
# Lesson Endpoints
# ===========================================


@router.post("/lesson/start", response_model=LessonStartResponse)
async def start_lesson(
    request: LessonStartRequest,
    learner_id: str = Depends(get_learner_id),
    service: LessonSessionService = Depends(get_lesson_service),
) -> LessonStartResponse:
    """
    Start a lesson on an unlocked node.

    Requires at least one heart (or unlimited mode). The question list is
    frozen for the life of the session.
    """
    return await service.start_lesson(learner_id, request)


@router.post("/lesson/answer", response_model=AnswerResultResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.ANSWER))
async def submit_answer(
    request: Request,
    payload: AnswerSubmitRequest,
    learner_id: str = Depends(get_learner_id),
    service: LessonSessionService = Depends(get_lesson_service),
) -> AnswerResultResponse:
    """
    Submit one answer.

    A correct answer earns XP; a wrong one costs a heart. Each question
    can be answered once.
    """
    return await service.submit_answer(learner_id, payload)


@router.post("/lesson/complete", response_model=LessonCompleteResponse)
async def complete_lesson(
    request: LessonCompleteRequest,
    learner_id: str = Depends(get_learner_id),
    service: LessonSessionService = Depends(get_lesson_service),
) -> LessonCompleteResponse:
    """
    Complete a lesson.

    Awards XP, updates level, strength and the review schedule, today's
    progress, the streak and achievements in one transaction. A second
    completion returns 409.
    """
    return await service.complete_lesson(learner_id, request)


@router.get("/lesson/{session_id}", response_model=LessonSessionResponse)
async def get_lesson(
    session_id: str,
    learner_id: str = Depends(get_learner_id),
    service: LessonSessionService = Depends(get_lesson_service),
) -> LessonSessionResponse:
    """Read a lesson session owned by the learner."""
    return await service.get_session(learner_id, session_id)


# ===========================================
# Review Endpoints
# ===========================================


@router.get("/review", response_model=ReviewQueueResponse)
async def get_review_queue(
    limit: Optional[int] = Query(None, ge=1, le=50, description="Max items to return"),
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> ReviewQueueResponse:
    """
    Nodes due for review, weakest first.

    Strength decay since the last practice is applied on read.
    """
    return await SpacedRepService(db).list_due_reviews(learner_id, limit)


@router.post("/review", response_model=ReviewPickResponse)
async def pick_review(
    request: ReviewPickRequest,
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> ReviewPickResponse:
    """Pick a node to review. Start a review lesson on it next."""
    return await SpacedRepService(db).pick_review(
        learner_id, request.skill_node_id, request.review_all
    )


# ===========================================
# Hearts, Streak & Activity Endpoints
# ===========================================


@router.get("/hearts", response_model=HeartsResponse)
async def get_hearts(
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> HeartsResponse:
    """Current hearts, including regeneration since the last change."""
    hearts = HeartsEconomy(db)
    state = await hearts.current(learner_id)
    await db.commit()
    return state.to_response()


@router.post("/hearts", response_model=HeartsResponse)
async def update_hearts(
    request: HeartsActionRequest,
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> HeartsResponse:
    """Apply a hearts action: use, practice, refill or unlimited."""
    return await HeartsEconomy(db).apply_action(learner_id, request)


@router.get("/streak", response_model=StreakResponse)
async def get_streak(
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> StreakResponse:
    """Current and longest streak with milestone progress."""
    return await StreakTracker(db).get_streak(learner_id)


@router.get("/activity", response_model=ActivityHistoryResponse)
async def get_activity(
    days: int = Query(
        settings.ACTIVITY_DEFAULT_DAYS,
        ge=1,
        le=settings.ACTIVITY_MAX_DAYS,
        description="Number of days to include",
    ),
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> ActivityHistoryResponse:
    """Daily XP and lessons for the last N days, oldest first."""
    return await DailyProgressService(db).get_activity_history(learner_id, days)


# ===========================================
# Achievement Endpoints
# ===========================================


@router.get("/achievements", response_model=AchievementListResponse)
async def get_achievements(
    learner_id: str = Depends(get_learner_id),
    db: AsyncSession = Depends(get_db),
) -> AchievementListResponse:
    """All achievements with the learner's progress, earned first."""
    return await AchievementEngine(db).list_achievements(learner_id)
