"""
Lesson Session Service

Runs one lesson attempt on a skill node through its lifecycle:

    start  → freeze a paper of questions, gate on unlock and hearts
    answer → grade one question, award per-answer XP or take a heart
    finish → the single terminal transition, committed atomically

Completion is the only place mastery advances. In one transaction it:
1. Marks the session COMPLETED (optimistic version check)
2. Adds answer + completion (+ perfect) XP to the node's progress record
   and recomputes the level
3. Updates strength and schedules the next review
4. Accumulates today's DailyProgress
5. Advances the streak
6. Evaluates achievements and appends their XP to the same progress record

If any step fails nothing is written. A second completion of the same
session, sequential or concurrent, is rejected with a conflict and changes
nothing.

Usage:
    from skilltree.services.learning.lesson_session_service import LessonSessionService

    service = LessonSessionService(db, question_bank, grader)
    started = await service.start_lesson(learner_id, LessonStartRequest(skill_node_id="heat-1a-1"))
    result = await service.submit_answer(learner_id, AnswerSubmitRequest(...))
    summary = await service.complete_lesson(learner_id, LessonCompleteRequest(session_id=...))
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from skilltree.config import settings
from skilltree.db.models import LessonAnswer, LessonSession
from skilltree.enums.learning import SessionStatus, SessionType
from skilltree.middleware.error_handling import (
    ConflictError,
    NotFoundError,
    PreconditionError,
)
from skilltree.models.learning import (
    AnswerResultResponse,
    AnswerSubmitRequest,
    EarnedAchievement,
    LessonCompleteRequest,
    LessonCompleteResponse,
    LessonSessionResponse,
    LessonStartRequest,
    LessonStartResponse,
    QuestionResponse,
    XPBreakdown,
)
from skilltree.services.learning.achievements import AchievementEngine
from skilltree.services.learning.daily_progress import DailyProgressService
from skilltree.services.learning.grading import AnswerGrader
from skilltree.services.learning.hearts import HeartsEconomy
from skilltree.services.learning.progress_store import ProgressStore, award_xp
from skilltree.services.learning.question_bank import QuestionBank
from skilltree.services.learning.skill_graph import SkillGraph, get_skill_graph
from skilltree.services.learning.spaced_rep_service import (
    is_passing,
    schedule_next_review,
    strength_after_lesson,
)
from skilltree.services.learning.streak_tracking import StreakTracker
from skilltree.services.learning.timeutil import Clock, local_date, utc_now

logger = logging.getLogger(__name__)


def target_difficulty(level: int) -> int:
    """One step above the learner's level, clamped to the difficulty range."""
    return max(settings.MIN_DIFFICULTY, min(settings.MAX_DIFFICULTY, level + 1))


def public_question(question: dict[str, Any]) -> QuestionResponse:
    """Strip the answer key from a frozen question."""
    return QuestionResponse(
        id=question["id"],
        kind=question["kind"],
        difficulty=question.get("difficulty", settings.MIN_DIFFICULTY),
        payload=question.get("payload") or {},
    )


class LessonSessionService:
    """
    Lesson lifecycle orchestration.

    Every public method is a complete API operation and commits.
    """

    def __init__(
        self,
        db: AsyncSession,
        question_bank: QuestionBank,
        grader: Optional[AnswerGrader] = None,
        graph: Optional[SkillGraph] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the lesson session service.

        Args:
            db: SQLAlchemy async database session.
            question_bank: Source of questions for new sessions.
            grader: Answer grader; defaults to one without a free-text
                collaborator.
            graph: Skill graph; defaults to the shipped curriculum.
            clock: Callable returning the current UTC time.
        """
        self.db = db
        self.question_bank = question_bank
        self.grader = grader or AnswerGrader()
        self.graph = graph or get_skill_graph()
        self.clock = clock or utc_now

        self.progress = ProgressStore(db, self.graph, self.clock)
        self.hearts = HeartsEconomy(db, self.clock)
        self.streaks = StreakTracker(db, self.clock)
        self.daily = DailyProgressService(db, self.clock)
        self.achievements = AchievementEngine(db, self.graph, self.clock)

    # =========================================================================
    # Start
    # =========================================================================

    async def start_lesson(self, learner_id: str, request: LessonStartRequest) -> LessonStartResponse:
        """
        Create a lesson session with a frozen question list.

        Args:
            learner_id: Learner starting the lesson.
            request: Node and session type.

        Returns:
            LessonStartResponse with the questions (no answer keys).

        Raises:
            NotFoundError: Unknown node.
            PreconditionError: Node locked, no hearts, nothing to review,
                or no questions available.
        """
        node = await self.progress.require_unlocked(learner_id, request.skill_node_id)

        hearts = await self.hearts.current(learner_id)
        if not hearts.can_start_lesson:
            next_refill = hearts.next_refill_at.isoformat() if hearts.next_refill_at else None
            raise PreconditionError(
                "No hearts left",
                details={"hearts": 0, "next_refill_at": next_refill},
            )

        progress = await self.progress.get(learner_id, node.id)
        level = progress.current_level if progress else 0

        if request.session_type == SessionType.REVIEW and level <= 0:
            raise PreconditionError(
                f"Skill {node.id} has nothing to review yet",
                details={"skill_node_id": node.id},
            )

        difficulty = target_difficulty(level)
        questions = await self.question_bank.fetch_questions(
            node.id,
            difficulty,
            settings.QUESTIONS_PER_LESSON,
            any_difficulty=level <= settings.BEGINNER_MAX_LEVEL,
        )
        if not questions:
            raise PreconditionError(
                f"No questions available for {node.id}",
                details={"skill_node_id": node.id},
            )

        session = LessonSession(
            learner_id=learner_id,
            skill_node_id=node.id,
            session_type=request.session_type.value,
            difficulty=difficulty,
            questions=[q.snapshot() for q in questions[: settings.QUESTIONS_PER_LESSON]],
            questions_answered=0,
            questions_correct=0,
            hearts_lost=0,
            xp_earned=0,
            xp_bonus=0,
            is_perfect=False,
            status=SessionStatus.IN_PROGRESS.value,
            created_at=self.clock(),
        )
        self.db.add(session)
        await self.db.commit()

        logger.info(
            f"Started {request.session_type.value} lesson {session.id} for {learner_id} "
            f"on {node.id} (difficulty={difficulty}, questions={session.questions_total})"
        )

        return LessonStartResponse(
            session_id=session.id,
            skill_node_id=node.id,
            session_type=request.session_type,
            difficulty=difficulty,
            questions=[public_question(q) for q in session.questions],
            hearts=hearts.to_response(),
        )

    # =========================================================================
    # Answer
    # =========================================================================

    async def get_owned_session(self, learner_id: str, session_id: str) -> LessonSession:
        """
        Fetch a session owned by the learner.

        Sessions of other learners are reported as missing.
        """
        session = await self.db.get(LessonSession, session_id)
        if session is None or session.learner_id != learner_id:
            raise NotFoundError(f"Lesson session {session_id} not found")
        return session

    async def _require_in_progress(self, learner_id: str, session_id: str) -> LessonSession:
        session = await self.get_owned_session(learner_id, session_id)
        if session.status != SessionStatus.IN_PROGRESS.value:
            raise ConflictError(
                f"Lesson session {session_id} is already completed",
                details={"session_id": session_id},
            )
        return session

    async def _answer_exists(self, session_id: str, question_id: str) -> bool:
        result = await self.db.execute(
            select(LessonAnswer.id).where(
                LessonAnswer.session_id == session_id,
                LessonAnswer.question_id == question_id,
            )
        )
        return result.first() is not None

    async def submit_answer(self, learner_id: str, request: AnswerSubmitRequest) -> AnswerResultResponse:
        """
        Grade one answer.

        A correct answer earns XP_CORRECT_ANSWER on the session. A wrong one
        takes one heart, except while unlimited mode is active or the pool
        is already empty; hearts_lost counts actual deductions only.

        Raises:
            NotFoundError: Session not owned, or question not on its paper.
            ConflictError: Session completed, question already answered, or
                a concurrent write won the race.
        """
        session = await self._require_in_progress(learner_id, request.session_id)

        question = next((q for q in session.questions if q["id"] == request.question_id), None)
        if question is None:
            raise NotFoundError(
                f"Question {request.question_id} is not part of session {session.id}",
                details={"session_id": session.id, "question_id": request.question_id},
            )

        if await self._answer_exists(session.id, request.question_id):
            raise ConflictError(
                f"Question {request.question_id} already answered",
                details={"session_id": session.id, "question_id": request.question_id},
            )

        result = await self.grader.grade(question, request.answer)

        xp_awarded = settings.XP_CORRECT_ANSWER if result.is_correct else 0

        # Hearts pool and session are both versioned; either may lose a race
        try:
            if result.is_correct:
                hearts = await self.hearts.current(learner_id)
                deducted = 0
            else:
                hearts, deducted = await self.hearts.consume(learner_id, 1)

            session.questions_answered += 1
            session.questions_correct += 1 if result.is_correct else 0
            session.hearts_lost += deducted
            session.xp_earned += xp_awarded

            self.db.add(
                LessonAnswer(
                    session_id=session.id,
                    question_id=request.question_id,
                    learner_answer={"value": request.answer},
                    is_correct=result.is_correct,
                    score=result.score,
                    max_score=result.max_score,
                    feedback=result.feedback,
                    needs_review=result.needs_review,
                    xp_awarded=xp_awarded,
                    heart_deducted=deducted > 0,
                    answered_at=self.clock(),
                )
            )
            await self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            await self.db.rollback()
            logger.info(f"Answer to {request.question_id} in {request.session_id} lost a race: {e}")
            raise ConflictError(
                "Session changed concurrently, please retry",
                details={"session_id": request.session_id, "question_id": request.question_id},
            ) from e

        return AnswerResultResponse(
            question_id=request.question_id,
            is_correct=result.is_correct,
            score=result.score,
            max_score=result.max_score,
            correct_answer=result.correct_answer,
            feedback=result.feedback,
            needs_review=result.needs_review,
            xp_awarded=xp_awarded,
            heart_deducted=deducted > 0,
            hearts=hearts.to_response(),
            out_of_hearts=not hearts.can_start_lesson,
            questions_answered=session.questions_answered,
            questions_correct=session.questions_correct,
            questions_total=session.questions_total,
        )

    # =========================================================================
    # Complete
    # =========================================================================

    async def complete_lesson(self, learner_id: str, request: LessonCompleteRequest) -> LessonCompleteResponse:
        """
        Terminal transition of a session.

        Raises:
            NotFoundError: Session not owned.
            ConflictError: Session already completed, or completed
                concurrently by another request.
        """
        session = await self._require_in_progress(learner_id, request.session_id)

        try:
            response = await self._complete(learner_id, session)
            await self.db.commit()
        except StaleDataError as e:
            await self.db.rollback()
            logger.info(f"Concurrent completion of {request.session_id} rejected")
            raise ConflictError(
                f"Lesson session {request.session_id} is already completed",
                details={"session_id": request.session_id},
            ) from e

        logger.info(
            f"Completed lesson {session.id} for {learner_id}: "
            f"{response.questions_correct}/{response.questions_total} correct, "
            f"{response.xp.total} XP, level {response.level_before} -> {response.level_after}"
        )
        return response

    async def _complete(self, learner_id: str, session: LessonSession) -> LessonCompleteResponse:
        now = self.clock()
        today = local_date(now)

        # Version check happens at this flush
        session.status = SessionStatus.COMPLETED.value
        session.completed_at = now
        await self.db.flush()

        total = session.questions_total
        is_perfect = session.hearts_lost == 0 and session.questions_correct == total
        answer_xp = session.xp_earned
        completion_xp = settings.XP_LESSON_COMPLETE
        perfect_xp = settings.XP_PERFECT_LESSON if is_perfect else 0
        lesson_xp = answer_xp + completion_xp + perfect_xp

        progress = await self.progress.get_or_create(learner_id, session.skill_node_id)
        level_before = progress.current_level
        strength_before = progress.strength

        award_xp(progress, lesson_xp)
        progress.lessons_completed += 1
        if is_perfect:
            progress.perfect_lessons += 1

        # Interval uses the level and strength the lesson was taken at
        progress.next_review_at = schedule_next_review(
            now,
            level_before,
            strength_before,
            is_passing(session.questions_correct, total),
        )
        progress.strength = strength_after_lesson(strength_before, is_perfect)
        progress.strength_decayed_at = None
        progress.last_practiced_at = now
        await self.db.flush()

        daily = await self.daily.record_lesson(learner_id, lesson_xp, is_perfect, day=today)
        streak = await self.streaks.record_activity(learner_id, today)

        earned = await self.achievements.evaluate(learner_id)
        achievement_xp = sum(a.xp_reward for a in earned)
        if achievement_xp:
            award_xp(progress, achievement_xp)

        session.is_perfect = is_perfect
        session.xp_bonus = completion_xp + perfect_xp + achievement_xp
        session.xp_earned = lesson_xp + achievement_xp
        await self.db.flush()

        return LessonCompleteResponse(
            session_id=session.id,
            skill_node_id=session.skill_node_id,
            questions_total=total,
            questions_correct=session.questions_correct,
            hearts_lost=session.hearts_lost,
            is_perfect=is_perfect,
            xp=XPBreakdown(
                answers=answer_xp,
                completion=completion_xp,
                perfect=perfect_xp,
                achievements=achievement_xp,
                total=lesson_xp + achievement_xp,
            ),
            level_before=level_before,
            level_after=progress.current_level,
            leveled_up=progress.current_level > level_before,
            node_xp_earned=progress.xp_earned,
            strength=progress.strength,
            next_review_at=progress.next_review_at,
            streak=streak,
            daily=daily,
            achievements_earned=[
                EarnedAchievement(id=a.id, name=a.name, tier=a.tier, xp_reward=a.xp_reward)
                for a in earned
            ],
        )

    # =========================================================================
    # Read
    # =========================================================================

    async def get_session(self, learner_id: str, session_id: str) -> LessonSessionResponse:
        session = await self.get_owned_session(learner_id, session_id)
        return LessonSessionResponse(
            id=session.id,
            skill_node_id=session.skill_node_id,
            session_type=session.session_type,
            difficulty=session.difficulty,
            status=session.status,
            questions=[public_question(q) for q in session.questions],
            questions_answered=session.questions_answered,
            questions_correct=session.questions_correct,
            hearts_lost=session.hearts_lost,
            xp_earned=session.xp_earned,
            xp_bonus=session.xp_bonus,
            is_perfect=session.is_perfect,
            created_at=session.created_at,
            completed_at=session.completed_at,
        )
