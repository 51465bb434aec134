"""
Integration Tests for the Daily Quests API

Run with: pytest backend/tests/integration/test_quests_api.py -v
"""

import pytest

from tests.integration.test_learn_api import run_perfect_lesson


class TestQuestList:
    @pytest.mark.asyncio
    async def test_lists_todays_quests(self, async_test_client, learner_headers) -> None:
        response = await async_test_client.get("/api/quests", headers=learner_headers)

        assert response.status_code == 200
        data = response.json()
        assert [q["id"] for q in data["quests"]] == ["daily-xp-10", "daily-lessons-3", "daily-perfect-1"]
        assert data["completed_count"] == 0
        assert data["claimable_count"] == 0
        assert 0 < data["resets_in_seconds"] <= 24 * 3600

    @pytest.mark.asyncio
    async def test_progress_follows_lessons(self, async_test_client, learner_headers, correct_answers) -> None:
        await run_perfect_lesson(async_test_client, learner_headers, correct_answers)

        data = (await async_test_client.get("/api/quests", headers=learner_headers)).json()

        quests = {q["id"]: q for q in data["quests"]}
        assert quests["daily-xp-10"]["is_completed"]
        assert quests["daily-xp-10"]["progress"] == 100
        assert quests["daily-perfect-1"]["can_claim"]
        assert quests["daily-lessons-3"]["current_value"] == 1
        assert not quests["daily-lessons-3"]["is_completed"]
        assert data["claimable_count"] == 2


class TestQuestClaim:
    @pytest.mark.asyncio
    async def test_claim_not_completed_is_400(self, async_test_client, learner_headers) -> None:
        response = await async_test_client.post(
            "/api/quests", json={"quest_id": "daily-xp-10"}, headers=learner_headers
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "precondition_failed"
        assert data["details"]["target_value"] == 10

    @pytest.mark.asyncio
    async def test_claim_once(self, async_test_client, learner_headers, correct_answers) -> None:
        await run_perfect_lesson(async_test_client, learner_headers, correct_answers)
        body = {"quest_id": "daily-xp-10"}

        first = await async_test_client.post("/api/quests", json=body, headers=learner_headers)
        second = await async_test_client.post("/api/quests", json=body, headers=learner_headers)

        assert first.status_code == 200
        assert first.json()["reward"] == {"type": "gems", "amount": 5}
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

        listed = (await async_test_client.get("/api/quests", headers=learner_headers)).json()
        quest = next(q for q in listed["quests"] if q["id"] == "daily-xp-10")
        assert quest["is_claimed"]
        assert not quest["can_claim"]

    @pytest.mark.asyncio
    async def test_unknown_quest_is_404(self, async_test_client, learner_headers) -> None:
        response = await async_test_client.post(
            "/api/quests", json={"quest_id": "weekly-boss"}, headers=learner_headers
        )
        assert response.status_code == 404
