"""
Answer Grading

Grades one answer against the answer key frozen into a lesson session.

Policy by question kind:
- single_choice: case-insensitive exact match on the trimmed value
- fill_in: per blank, normalised exact match, listed alternatives, a
  numeric match within 0.1%, or the learner's blank containing the
  expected text. Correct only if every blank matches.
- matching: score = correct pairs; correct only if all pairs match
- ordering: score = items in the correct position; correct only if all do
- free_text: delegated to a FreeTextGrader. Answers shorter than
  FREE_TEXT_MIN_LENGTH are incorrect without a grader call. If the grader
  is unavailable the answer is accepted and flagged needs_review, so
  grading never fails a session.

Answer key shapes (question["answer_key"]):
    single_choice: {"correct": "B", "accepted": ["b) 20 N"]}
    fill_in:       {"blanks": ["20", "J"], "alternatives": [["twenty"], []]}
    matching:      {"pairs": [["conduction", "solids"], ["convection", "fluids"]]}
    ordering:      {"order": ["a", "b", "c"]}
    free_text:     {"model_answer": "...", "marking_points": ["..."]}

Usage:
    from skilltree.services.learning.grading import AnswerGrader

    grader = AnswerGrader(LLMFreeTextGrader())
    result = await grader.grade(question, learner_answer)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from skilltree.config import settings
from skilltree.enums.learning import QuestionKind
from skilltree.middleware.error_handling import CollaboratorUnavailableError
from skilltree.services.llm.client import LLMClient, build_messages, get_llm_client

logger = logging.getLogger(__name__)

NUMERIC_TOLERANCE = 0.001
_PUNCTUATION = re.compile(r"[,.;:，。、；：]")
_WHITESPACE = re.compile(r"\s+")
_LEADING_NUMBER = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")


@dataclass
class GradeResult:
    """
    Outcome of grading one answer.

    Attributes:
        is_correct: Whether the answer counts as correct.
        score: Items right, or the grader's 0-100 score for free text.
        max_score: Items available, or 100 for free text.
        correct_answer: Answer key material safe to reveal after answering.
        feedback: Optional grader feedback.
        needs_review: Grading fell back to the conservative default.
    """

    is_correct: bool
    score: float
    max_score: float
    correct_answer: Any = None
    feedback: Optional[str] = None
    needs_review: bool = False


# ===========================================
# Normalisation
# ===========================================


def normalize_answer(value: Any) -> str:
    """Trim, lower-case, collapse whitespace and strip punctuation."""
    text = "" if value is None else str(value)
    text = _WHITESPACE.sub(" ", text.strip().lower())
    return _PUNCTUATION.sub("", text)


def _leading_number(text: str) -> Optional[float]:
    match = _LEADING_NUMBER.match(text)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def is_numeric_match(learner: str, expected: str) -> bool:
    """Both parse as numbers and agree within 0.1% of the expected value."""
    learner_num = _leading_number(learner)
    expected_num = _leading_number(expected)
    if learner_num is None or expected_num is None:
        return False
    tolerance = abs(expected_num) * NUMERIC_TOLERANCE or NUMERIC_TOLERANCE
    return abs(learner_num - expected_num) <= tolerance


# ===========================================
# Deterministic Graders
# ===========================================


def grade_single_choice(answer_key: dict, answer: Any) -> GradeResult:
    correct = answer_key.get("correct")
    accepted = [correct, *answer_key.get("accepted", [])]
    given = str(answer).strip().lower() if answer is not None else ""

    is_correct = bool(given) and any(
        given == str(option).strip().lower() for option in accepted if option is not None
    )
    return GradeResult(
        is_correct=is_correct,
        score=1.0 if is_correct else 0.0,
        max_score=1.0,
        correct_answer=correct,
    )


def _blank_matches(given: Any, expected: Any, alternatives: list) -> bool:
    learner = normalize_answer(given)
    target = normalize_answer(expected)
    if not learner:
        return False
    if learner == target or learner in {normalize_answer(a) for a in alternatives}:
        return True
    if is_numeric_match(learner, target):
        return True
    # Numbers are only compared numerically
    if _leading_number(target) is not None:
        return False
    return bool(target) and target in learner


def grade_fill_in(answer_key: dict, answer: Any) -> GradeResult:
    blanks = answer_key.get("blanks", [])
    alternatives = answer_key.get("alternatives", [])
    given = answer if isinstance(answer, list) else [answer]

    correct_count = 0
    for index, expected in enumerate(blanks):
        learner = given[index] if index < len(given) else None
        options = alternatives[index] if index < len(alternatives) else []
        if _blank_matches(learner, expected, options or []):
            correct_count += 1

    return GradeResult(
        is_correct=bool(blanks) and correct_count == len(blanks),
        score=float(correct_count),
        max_score=float(len(blanks)),
        correct_answer=blanks,
    )


def _as_pairs(value: Any) -> dict[str, str]:
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    if not isinstance(value, (list, tuple)):
        return {}
    pairs = {}
    for item in value:
        if isinstance(item, (list, tuple)) and len(item) == 2:
            pairs[str(item[0])] = str(item[1])
    return pairs


def grade_matching(answer_key: dict, answer: Any) -> GradeResult:
    expected = _as_pairs(answer_key.get("pairs", []))
    given = _as_pairs(answer)

    correct_count = sum(1 for left, right in expected.items() if given.get(left) == right)
    return GradeResult(
        is_correct=bool(expected) and correct_count == len(expected),
        score=float(correct_count),
        max_score=float(len(expected)),
        correct_answer=[[left, right] for left, right in expected.items()],
    )


def grade_ordering(answer_key: dict, answer: Any) -> GradeResult:
    expected = [str(item) for item in answer_key.get("order", [])]
    given = [str(item) for item in answer] if isinstance(answer, list) else []

    correct_count = sum(1 for index, item in enumerate(expected) if index < len(given) and given[index] == item)
    return GradeResult(
        is_correct=bool(expected) and given == expected,
        score=float(correct_count),
        max_score=float(len(expected)),
        correct_answer=expected,
    )


# ===========================================
# Free-Text Grading
# ===========================================


class FreeTextGrader(ABC):
    """
    External grading collaborator for free-text answers.

    Implementations raise CollaboratorUnavailableError when they cannot
    produce a grade.
    """

    @abstractmethod
    async def grade(self, question: dict, answer: str) -> GradeResult:
        """Grade a free-text answer."""


FREE_TEXT_GRADING_PROMPT = """You are grading a student's written answer to a physics question.

QUESTION:
{question}

MODEL ANSWER:
{model_answer}

MARKING POINTS:
{marking_points}

STUDENT ANSWER:
{answer}

Scoring guide:
- Concepts correct and complete: 80-100
- Essentially correct with small errors: 60-79
- Partially correct with omissions: 40-59
- Conceptually wrong or off-topic: 0-39

Return a JSON object:
{{
    "score": <0-100>,
    "feedback": "One or two sentences of feedback for the student",
    "missed": ["marking points the answer missed"]
}}
"""


class LLMFreeTextGrader(FreeTextGrader):
    """Grades free-text answers with the configured LiteLLM model."""

    def __init__(self, llm_client: Optional[LLMClient] = None, model: Optional[str] = None):
        """
        Initialize the grader.

        Args:
            llm_client: LLM client; defaults to the shared singleton.
            model: Model override; defaults to GRADING_MODEL.
        """
        self.llm_client = llm_client or get_llm_client()
        self.model = model or settings.GRADING_MODEL

    async def grade(self, question: dict, answer: str) -> GradeResult:
        payload = question.get("payload", {})
        answer_key = question.get("answer_key", {})
        marking_points = answer_key.get("marking_points", [])

        prompt = FREE_TEXT_GRADING_PROMPT.format(
            question=payload.get("prompt", ""),
            model_answer=answer_key.get("model_answer", "") or "(none)",
            marking_points="\n".join(f"- {p}" for p in marking_points) or "- Physical accuracy",
            answer=answer,
        )

        try:
            result = await self.llm_client.complete(
                messages=build_messages(prompt),
                json_mode=True,
                model=self.model,
            )
        except Exception as e:
            raise CollaboratorUnavailableError(f"Grading model call failed: {e}") from e

        if not isinstance(result, dict) or not isinstance(result.get("score"), (int, float)):
            raise CollaboratorUnavailableError("Grading model returned no score")

        score = max(0, min(100, round(result["score"])))
        return GradeResult(
            is_correct=score >= settings.GRADING_PASS_SCORE,
            score=float(score),
            max_score=100.0,
            correct_answer=answer_key.get("model_answer"),
            feedback=result.get("feedback"),
        )


# ===========================================
# Dispatcher
# ===========================================


class AnswerGrader:
    """Routes an answer to the grader for its question kind."""

    def __init__(self, free_text_grader: Optional[FreeTextGrader] = None):
        """
        Initialize the dispatcher.

        Args:
            free_text_grader: Collaborator for free-text answers. When None,
                free-text answers take the unavailable-grader default.
        """
        self.free_text_grader = free_text_grader

    async def grade(self, question: dict, answer: Any) -> GradeResult:
        """
        Grade an answer to a frozen session question.

        Args:
            question: Snapshot dict with kind, payload and answer_key.
            answer: Learner's raw answer.

        Returns:
            GradeResult. Never raises for grading collaborator failures.
        """
        kind = QuestionKind(question["kind"])
        answer_key = question.get("answer_key") or {}

        if kind == QuestionKind.SINGLE_CHOICE:
            return grade_single_choice(answer_key, answer)
        if kind == QuestionKind.FILL_IN:
            return grade_fill_in(answer_key, answer)
        if kind == QuestionKind.MATCHING:
            return grade_matching(answer_key, answer)
        if kind == QuestionKind.ORDERING:
            return grade_ordering(answer_key, answer)
        return await self._grade_free_text(question, answer)

    async def _grade_free_text(self, question: dict, answer: Any) -> GradeResult:
        text = str(answer).strip() if answer is not None else ""
        model_answer = (question.get("answer_key") or {}).get("model_answer")

        if len(text) < settings.FREE_TEXT_MIN_LENGTH:
            return GradeResult(
                is_correct=False,
                score=0.0,
                max_score=100.0,
                correct_answer=model_answer,
                feedback="Answer too short. Please give a fuller explanation.",
            )

        if self.free_text_grader is None:
            return self._unavailable_default(model_answer)

        try:
            return await self.free_text_grader.grade(question, text)
        except CollaboratorUnavailableError as e:
            logger.warning(f"Free-text grading unavailable for {question.get('id')}: {e.message}")
            return self._unavailable_default(model_answer)

    @staticmethod
    def _unavailable_default(model_answer: Any) -> GradeResult:
        return GradeResult(
            is_correct=True,
            score=100.0,
            max_score=100.0,
            correct_answer=model_answer,
            feedback="Your answer was accepted and will be reviewed.",
            needs_review=True,
        )
