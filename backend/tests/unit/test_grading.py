"""
Unit tests for answer grading.

Covers every question kind and the free-text collaborator fallback.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from skilltree.middleware.error_handling import CollaboratorUnavailableError
from skilltree.services.learning.grading import (
    AnswerGrader,
    FreeTextGrader,
    GradeResult,
    LLMFreeTextGrader,
    grade_fill_in,
    grade_matching,
    grade_ordering,
    grade_single_choice,
    is_numeric_match,
    normalize_answer,
)
from skilltree.services.llm import get_llm_client, reset_llm_client


def question(kind: str, answer_key: dict, prompt: str = "Q") -> dict:
    return {
        "id": f"{kind}-1",
        "kind": kind,
        "difficulty": 1,
        "payload": {"prompt": prompt},
        "answer_key": answer_key,
    }


class TestNormalisation:
    def test_normalize_answer(self):
        assert normalize_answer("  Hello,   World. ") == "hello world"
        assert normalize_answer(None) == ""

    @pytest.mark.parametrize(
        "learner,expected,match",
        [
            ("300", "300", True),
            ("300.2", "300", True),
            ("301", "300", False),
            ("300 K", "300", True),
            ("abc", "300", False),
            ("0", "0", True),
        ],
    )
    def test_numeric_match(self, learner, expected, match):
        assert is_numeric_match(learner, expected) is match


class TestSingleChoice:
    def test_case_insensitive(self):
        result = grade_single_choice({"correct": "B"}, " b ")
        assert result.is_correct
        assert result.score == 1.0
        assert result.correct_answer == "B"

    def test_accepted_alternatives(self):
        result = grade_single_choice({"correct": "B", "accepted": ["20 N"]}, "20 n")
        assert result.is_correct

    def test_wrong_and_blank(self):
        assert not grade_single_choice({"correct": "B"}, "C").is_correct
        assert not grade_single_choice({"correct": "B"}, None).is_correct


class TestFillIn:
    def test_all_blanks_right(self):
        result = grade_fill_in({"blanks": ["400", "0"]}, ["400", "0"])
        assert result.is_correct
        assert (result.score, result.max_score) == (2.0, 2.0)

    def test_partial(self):
        result = grade_fill_in({"blanks": ["400", "0"]}, ["400", "5"])
        assert not result.is_correct
        assert result.score == 1.0

    def test_substring_leniency(self):
        """A blank containing the expected text is accepted."""
        result = grade_fill_in({"blanks": ["kelvin"]}, "Kelvin scale")
        assert result.is_correct

    def test_listed_alternative(self):
        result = grade_fill_in({"blanks": ["300"], "alternatives": [["three hundred"]]}, ["Three hundred"])
        assert result.is_correct

    def test_bare_string_for_single_blank(self):
        assert grade_fill_in({"blanks": ["0"]}, "0").is_correct

    def test_missing_blank(self):
        result = grade_fill_in({"blanks": ["400", "0"]}, ["400"])
        assert not result.is_correct
        assert result.score == 1.0

    @pytest.mark.parametrize("given", ["120", "200", "1200 K"])
    def test_numeric_blank_not_matched_by_containment(self, given):
        assert not grade_fill_in({"blanks": ["20"]}, [given]).is_correct

    def test_numeric_blank_within_tolerance(self):
        assert grade_fill_in({"blanks": ["20"]}, ["20 K"]).is_correct


class TestMatchingAndOrdering:
    def test_matching_all_pairs(self):
        key = {"pairs": [["a", "1"], ["b", "2"], ["c", "3"]]}
        result = grade_matching(key, {"a": "1", "b": "2", "c": "3"})
        assert result.is_correct
        assert result.score == 3.0

    def test_matching_counts_correct_pairs(self):
        key = {"pairs": [["a", "1"], ["b", "2"], ["c", "3"]]}
        result = grade_matching(key, [["a", "1"], ["b", "3"], ["c", "2"]])
        assert not result.is_correct
        assert (result.score, result.max_score) == (1.0, 3.0)

    @pytest.mark.parametrize("answer", [5, True, 2.5, "a1", None])
    def test_matching_malformed_answer_is_wrong(self, answer):
        result = grade_matching({"pairs": [["a", "1"]]}, answer)
        assert not result.is_correct
        assert result.score == 0.0

    @pytest.mark.asyncio
    async def test_matching_scalar_through_grader(self):
        result = await AnswerGrader().grade(question("matching", {"pairs": [["a", "b"]]}), 5)
        assert not result.is_correct

    def test_ordering_positions(self):
        key = {"order": ["w", "x", "y", "z"]}
        assert grade_ordering(key, ["w", "x", "y", "z"]).is_correct

        result = grade_ordering(key, ["w", "y", "x", "z"])
        assert not result.is_correct
        assert result.score == 2.0

    def test_ordering_rejects_non_list(self):
        result = grade_ordering({"order": ["a", "b"]}, "a,b")
        assert not result.is_correct
        assert result.score == 0.0


class StubFreeTextGrader(FreeTextGrader):
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def grade(self, question, answer):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


class TestAnswerGrader:
    """Tests for routing and the free-text fallback."""

    @pytest.mark.asyncio
    async def test_routes_by_kind(self):
        grader = AnswerGrader()
        result = await grader.grade(question("ordering", {"order": ["a", "b"]}), ["a", "b"])
        assert result.is_correct

    @pytest.mark.asyncio
    async def test_free_text_too_short_skips_grader(self):
        stub = StubFreeTextGrader(result=GradeResult(True, 100.0, 100.0))
        grader = AnswerGrader(stub)

        result = await grader.grade(question("free_text", {"model_answer": "m"}), " a ")

        assert not result.is_correct
        assert stub.calls == 0

    @pytest.mark.asyncio
    async def test_free_text_delegates(self):
        stub = StubFreeTextGrader(result=GradeResult(False, 30.0, 100.0, feedback="Missing points"))
        grader = AnswerGrader(stub)

        result = await grader.grade(question("free_text", {}), "Heat flows from cold to hot")

        assert not result.is_correct
        assert result.feedback == "Missing points"
        assert stub.calls == 1

    @pytest.mark.asyncio
    async def test_grader_unavailable_accepts_and_flags(self):
        """A failing collaborator never fails the answer."""
        stub = StubFreeTextGrader(error=CollaboratorUnavailableError("model down"))
        grader = AnswerGrader(stub)

        result = await grader.grade(question("free_text", {"model_answer": "m"}), "A full answer")

        assert result.is_correct
        assert result.needs_review
        assert result.correct_answer == "m"

    @pytest.mark.asyncio
    async def test_no_grader_configured(self):
        result = await AnswerGrader().grade(question("free_text", {}), "A full answer")
        assert result.is_correct
        assert result.needs_review


class TestLLMFreeTextGrader:
    """Tests for the LiteLLM-backed grader with a mocked client."""

    @pytest.fixture
    def mock_llm(self):
        client = MagicMock()
        client.complete = AsyncMock()
        return client

    def test_defaults_to_shared_client(self):
        reset_llm_client()
        try:
            grader = LLMFreeTextGrader()
            assert grader.llm_client is get_llm_client()
            assert LLMFreeTextGrader().llm_client is grader.llm_client

            reset_llm_client()
            assert get_llm_client() is not grader.llm_client
        finally:
            reset_llm_client()

    @pytest.mark.asyncio
    async def test_score_above_pass_mark(self, mock_llm):
        mock_llm.complete.return_value = {"score": 85, "feedback": "Good"}
        grader = LLMFreeTextGrader(mock_llm, model="openai/test")

        result = await grader.grade(question("free_text", {"model_answer": "m"}), "answer")

        assert result.is_correct
        assert result.score == 85.0
        assert result.feedback == "Good"
        assert mock_llm.complete.call_args.kwargs["json_mode"] is True
        assert mock_llm.complete.call_args.kwargs["model"] == "openai/test"

    @pytest.mark.asyncio
    async def test_score_below_pass_mark(self, mock_llm):
        mock_llm.complete.return_value = {"score": 40, "feedback": "Incomplete"}
        grader = LLMFreeTextGrader(mock_llm)

        result = await grader.grade(question("free_text", {}), "answer")

        assert not result.is_correct

    @pytest.mark.asyncio
    async def test_score_clamped(self, mock_llm):
        mock_llm.complete.return_value = {"score": 140}
        result = await LLMFreeTextGrader(mock_llm).grade(question("free_text", {}), "answer")
        assert result.score == 100.0

    @pytest.mark.asyncio
    async def test_call_failure_is_unavailable(self, mock_llm):
        mock_llm.complete.side_effect = RuntimeError("timeout")
        grader = LLMFreeTextGrader(mock_llm)

        with pytest.raises(CollaboratorUnavailableError):
            await grader.grade(question("free_text", {}), "answer")

    @pytest.mark.asyncio
    async def test_missing_score_is_unavailable(self, mock_llm):
        mock_llm.complete.return_value = {"feedback": "no score"}
        grader = LLMFreeTextGrader(mock_llm)

        with pytest.raises(CollaboratorUnavailableError):
            await grader.grade(question("free_text", {}), "answer")
