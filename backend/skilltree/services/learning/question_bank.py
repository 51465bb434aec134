"""
Question Bank

Supplies questions for a skill node at a target difficulty. The bank is an
external collaborator: lesson sessions copy what it returns into their own
snapshot, so later edits to the bank never change a session in flight.

Selection preference:
- Regular learners: questions closest to the target difficulty first
- Beginners (any_difficulty=True): every difficulty is acceptable,
  easiest first

Usage:
    from skilltree.services.learning.question_bank import get_question_bank

    bank = get_question_bank()
    questions = await bank.fetch_questions("heat-1a-1", target_difficulty=2, count=5)
"""

import logging
import random
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml

from skilltree.config import settings
from skilltree.enums.learning import QuestionKind

logger = logging.getLogger(__name__)

DEFAULT_QUESTION_BANK_PATH = Path(__file__).resolve().parents[2] / "config" / "questions.yaml"


@dataclass(frozen=True)
class BankQuestion:
    """A question as served by the bank, answer key included."""

    id: str
    kind: QuestionKind
    difficulty: int
    payload: dict[str, Any] = field(default_factory=dict)
    answer_key: dict[str, Any] = field(default_factory=dict)

    def snapshot(self) -> dict[str, Any]:
        """Plain dict frozen into a lesson session."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "difficulty": self.difficulty,
            "payload": dict(self.payload),
            "answer_key": dict(self.answer_key),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BankQuestion":
        return cls(
            id=str(data["id"]),
            kind=QuestionKind(data["kind"]),
            difficulty=int(data.get("difficulty", settings.MIN_DIFFICULTY)),
            payload=dict(data.get("payload") or {}),
            answer_key=dict(data.get("answer_key") or {}),
        )


def rank_questions(
    questions: Sequence[BankQuestion],
    target_difficulty: int,
    any_difficulty: bool = False,
) -> list[BankQuestion]:
    """
    Order candidates by preference. Stable, so callers may pre-shuffle.

    Args:
        questions: Candidate questions for one node.
        target_difficulty: Preferred difficulty (1-5).
        any_difficulty: Accept every difficulty, easiest first.

    Returns:
        Candidates in preference order.
    """
    if any_difficulty:
        return sorted(questions, key=lambda q: q.difficulty)
    return sorted(questions, key=lambda q: (abs(q.difficulty - target_difficulty), q.difficulty))


class QuestionBank(ABC):
    """Source of questions for lesson sessions."""

    @abstractmethod
    async def fetch_questions(
        self,
        skill_node_id: str,
        target_difficulty: int,
        count: int,
        any_difficulty: bool = False,
    ) -> list[BankQuestion]:
        """
        Return up to `count` questions for a node.

        May return fewer than requested, or none.
        """


class InMemoryQuestionBank(QuestionBank):
    """
    Question bank held in memory, keyed by skill node id.

    Pass an `rng` to shuffle candidates before ranking so learners see
    different questions of equal preference across lessons.
    """

    def __init__(
        self,
        questions: Optional[Mapping[str, Sequence[BankQuestion]]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._questions: dict[str, list[BankQuestion]] = {
            node_id: list(items) for node_id, items in (questions or {}).items()
        }
        self._rng = rng

    @classmethod
    def from_yaml(cls, path: Optional[str] = None, rng: Optional[random.Random] = None) -> "InMemoryQuestionBank":
        """Load a bank from YAML shaped as {questions: {node_id: [question, ...]}}."""
        bank_path = Path(path) if path else DEFAULT_QUESTION_BANK_PATH
        with open(bank_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        questions = {
            node_id: [BankQuestion.from_dict(item) for item in items or []]
            for node_id, items in (data.get("questions") or {}).items()
        }
        logger.info(
            f"Loaded {sum(len(v) for v in questions.values())} questions "
            f"for {len(questions)} skill nodes from {bank_path}"
        )
        return cls(questions, rng=rng)

    def add(self, skill_node_id: str, question: BankQuestion) -> None:
        self._questions.setdefault(skill_node_id, []).append(question)

    async def fetch_questions(
        self,
        skill_node_id: str,
        target_difficulty: int,
        count: int,
        any_difficulty: bool = False,
    ) -> list[BankQuestion]:
        candidates = list(self._questions.get(skill_node_id, []))
        if self._rng is not None:
            self._rng.shuffle(candidates)
        return rank_questions(candidates, target_difficulty, any_difficulty)[:count]


@lru_cache()
def get_question_bank() -> QuestionBank:
    """Shared question bank loaded from QUESTION_BANK_PATH."""
    return InMemoryQuestionBank.from_yaml(settings.QUESTION_BANK_PATH, rng=random.Random())
