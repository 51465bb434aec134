"""
Integration Tests for the Learning API

Tests the full request path: identity resolution, routing, services, the
database and the error handling middleware.

Run with: pytest backend/tests/integration/test_learn_api.py -v
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from skilltree.db.models import HeartsPool
from skilltree.services.learning.hearts import HeartsEconomy


async def start_lesson(client: AsyncClient, headers: dict, node_id: str = "heat-1a-1", **extra):
    return await client.post(
        "/api/learn/lesson/start",
        json={"skill_node_id": node_id, **extra},
        headers=headers,
    )


async def submit(client: AsyncClient, headers: dict, session_id: str, question_id: str, answer):
    return await client.post(
        "/api/learn/lesson/answer",
        json={"session_id": session_id, "question_id": question_id, "answer": answer},
        headers=headers,
    )


async def run_perfect_lesson(client: AsyncClient, headers: dict, answers: dict) -> dict:
    started = (await start_lesson(client, headers)).json()
    for question in started["questions"]:
        response = await submit(client, headers, started["session_id"], question["id"], answers[question["id"]])
        assert response.json()["is_correct"], question["id"]
    response = await client.post(
        "/api/learn/lesson/complete",
        json={"session_id": started["session_id"]},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()


class TestLearnerIdentity:
    """Every learning endpoint requires a learner identity."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/api/learn/skill-tree"),
            ("get", "/api/learn/hearts"),
            ("get", "/api/learn/review"),
            ("get", "/api/learn/achievements"),
            ("get", "/api/quests"),
        ],
    )
    async def test_missing_identity_is_401(self, async_test_client, method, path) -> None:
        response = await getattr(async_test_client, method)(path)

        assert response.status_code == 401
        data = response.json()
        assert data["error"] == "unauthorized"
        assert "error_id" in data
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_bearer_identity(self, async_test_client) -> None:
        response = await async_test_client.get(
            "/api/learn/hearts", headers={"Authorization": "Bearer learner-2"}
        )
        assert response.status_code == 200
        assert response.json()["hearts"] == 5

    @pytest.mark.asyncio
    async def test_oversized_identity_is_422(self, async_test_client) -> None:
        response = await async_test_client.get("/api/learn/hearts", headers={"X-Learner-Id": "x" * 200})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"
        assert response.json()["details"]["max_length"] == 128


class TestLessonFlow:
    """Start, answer and complete a lesson over HTTP."""

    @pytest.mark.asyncio
    async def test_start_returns_questions_without_keys(self, async_test_client, learner_headers) -> None:
        response = await start_lesson(async_test_client, learner_headers)

        assert response.status_code == 200
        data = response.json()
        assert [q["id"] for q in data["questions"]] == [f"heat-1a-1-q{i}" for i in range(1, 6)]
        assert all("answer_key" not in q for q in data["questions"])
        assert data["hearts"]["hearts"] == 5

    @pytest.mark.asyncio
    async def test_perfect_lesson(self, async_test_client, learner_headers, correct_answers) -> None:
        result = await run_perfect_lesson(async_test_client, learner_headers, correct_answers)

        assert result["is_perfect"]
        assert result["xp"]["total"] == 130
        assert result["level_after"] == 1
        assert result["streak"]["current_streak"] == 1
        assert [a["id"] for a in result["achievements_earned"]] == ["first-lesson"]

        tree = (await async_test_client.get("/api/learn/skill-tree", headers=learner_headers)).json()
        nodes = {n["id"]: n for unit in tree["units"] for n in unit["nodes"]}
        assert nodes["heat-1a-1"]["current_level"] == 1
        assert nodes["heat-1a-1"]["xp_to_next_level"] == 20
        assert nodes["heat-1a-2"]["status"] == "available"
        assert nodes["heat-1a-3"]["status"] == "locked"
        assert tree["totals"]["total_xp"] == 130
        assert tree["daily"]["lessons_completed"] == 1

        achievements = (await async_test_client.get("/api/learn/achievements", headers=learner_headers)).json()
        assert achievements["earned"] == 1
        assert achievements["achievements"][0]["id"] == "first-lesson"

        streak = (await async_test_client.get("/api/learn/streak", headers=learner_headers)).json()
        assert streak["current_streak"] == 1
        assert streak["is_active_today"]

    @pytest.mark.asyncio
    async def test_complete_twice_is_409(self, async_test_client, learner_headers) -> None:
        started = (await start_lesson(async_test_client, learner_headers)).json()
        body = {"session_id": started["session_id"]}

        first = await async_test_client.post("/api/learn/lesson/complete", json=body, headers=learner_headers)
        second = await async_test_client.post("/api/learn/lesson/complete", json=body, headers=learner_headers)

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

        tree = (await async_test_client.get("/api/learn/skill-tree", headers=learner_headers)).json()
        assert tree["totals"]["lessons_completed"] == 1

    @pytest.mark.asyncio
    async def test_wrong_answer_costs_heart(self, async_test_client, learner_headers) -> None:
        started = (await start_lesson(async_test_client, learner_headers)).json()

        response = await submit(async_test_client, learner_headers, started["session_id"], "heat-1a-1-q1", "A")

        data = response.json()
        assert not data["is_correct"]
        assert data["heart_deducted"]
        assert data["correct_answer"] == "C"
        hearts = (await async_test_client.get("/api/learn/hearts", headers=learner_headers)).json()
        assert hearts["hearts"] == 4

    @pytest.mark.asyncio
    async def test_duplicate_answer_is_409(self, async_test_client, learner_headers) -> None:
        started = (await start_lesson(async_test_client, learner_headers)).json()
        await submit(async_test_client, learner_headers, started["session_id"], "heat-1a-1-q1", "C")

        response = await submit(async_test_client, learner_headers, started["session_id"], "heat-1a-1-q1", "C")

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_foreign_session_is_404(self, async_test_client, learner_headers) -> None:
        started = (await start_lesson(async_test_client, learner_headers)).json()
        other = {"X-Learner-Id": "learner-2"}

        read = await async_test_client.get(f"/api/learn/lesson/{started['session_id']}", headers=other)
        completed = await async_test_client.post(
            "/api/learn/lesson/complete", json={"session_id": started["session_id"]}, headers=other
        )

        assert read.status_code == 404
        assert completed.status_code == 404
        assert read.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_locked_node_is_400(self, async_test_client, learner_headers) -> None:
        response = await start_lesson(async_test_client, learner_headers, "heat-1a-2")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "precondition_failed"
        assert data["details"]["missing_prerequisites"] == ["heat-1a-1"]

    @pytest.mark.asyncio
    async def test_node_without_questions_is_400(self, async_test_client, learner_headers) -> None:
        response = await start_lesson(async_test_client, learner_headers, "astro-1")
        assert response.status_code == 400
        assert response.json()["details"]["skill_node_id"] == "astro-1"

    @pytest.mark.asyncio
    async def test_unknown_fields_rejected(self, async_test_client, learner_headers) -> None:
        response = await start_lesson(async_test_client, learner_headers, xp=1000)
        assert response.status_code == 422


class TestHearts:
    @pytest.mark.asyncio
    async def test_out_of_hearts_blocks_lessons(self, async_test_client, learner_headers) -> None:
        used = await async_test_client.post(
            "/api/learn/hearts", json={"action": "use", "amount": 5}, headers=learner_headers
        )
        assert used.json()["hearts"] == 0
        assert used.json()["next_refill_at"] is not None

        response = await start_lesson(async_test_client, learner_headers)
        assert response.status_code == 400
        assert response.json()["details"]["hearts"] == 0

        refilled = await async_test_client.post(
            "/api/learn/hearts", json={"action": "refill"}, headers=learner_headers
        )
        assert refilled.json()["hearts"] == 5

    @pytest.mark.asyncio
    async def test_lost_update_is_409(self, async_test_client, learner_headers, monkeypatch) -> None:
        """A pool changed by another request between read and write reports a conflict."""
        await async_test_client.get("/api/learn/hearts", headers=learner_headers)
        load_pool = HeartsEconomy.get_pool

        async def get_pool_then_race(self, learner_id):
            pool = await load_pool(self, learner_id)
            await self.db.execute(
                update(HeartsPool)
                .where(HeartsPool.learner_id == learner_id)
                .values(hearts=HeartsPool.hearts - 1, version=HeartsPool.version + 1)
                .execution_options(synchronize_session=False)
            )
            return pool

        monkeypatch.setattr(HeartsEconomy, "get_pool", get_pool_then_race)
        response = await async_test_client.post(
            "/api/learn/hearts", json={"action": "use", "amount": 1}, headers=learner_headers
        )
        monkeypatch.undo()

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"
        hearts = (await async_test_client.get("/api/learn/hearts", headers=learner_headers)).json()
        assert hearts["hearts"] == 5

    @pytest.mark.asyncio
    async def test_practice_on_full_pool_is_400(self, async_test_client, learner_headers) -> None:
        response = await async_test_client.post(
            "/api/learn/hearts", json={"action": "practice"}, headers=learner_headers
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unlimited(self, async_test_client, learner_headers) -> None:
        response = await async_test_client.post(
            "/api/learn/hearts", json={"action": "unlimited", "hours": 2}, headers=learner_headers
        )
        data = response.json()
        assert data["is_unlimited"]
        assert data["hearts"] == data["max_hearts"]


class TestSkillTreeAndReviews:
    @pytest.mark.asyncio
    async def test_unlock_claims_progress_once(self, async_test_client, learner_headers) -> None:
        body = {"skill_node_id": "heat-1a-1"}

        first = await async_test_client.post("/api/learn/skill-tree/unlock", json=body, headers=learner_headers)
        second = await async_test_client.post("/api/learn/skill-tree/unlock", json=body, headers=learner_headers)
        locked = await async_test_client.post(
            "/api/learn/skill-tree/unlock", json={"skill_node_id": "heat-1a-2"}, headers=learner_headers
        )

        assert first.status_code == 200
        assert first.json()["status"] == "available"
        assert second.status_code == 409
        assert locked.status_code == 400

    @pytest.mark.asyncio
    async def test_review_queue_empty_for_new_learner(self, async_test_client, learner_headers) -> None:
        response = await async_test_client.get("/api/learn/review", headers=learner_headers)

        assert response.status_code == 200
        assert response.json()["items"] == []

        picked = await async_test_client.post(
            "/api/learn/review", json={"review_all": True}, headers=learner_headers
        )
        assert picked.status_code == 400

    @pytest.mark.asyncio
    async def test_review_pick_after_lesson(self, async_test_client, learner_headers, correct_answers) -> None:
        await run_perfect_lesson(async_test_client, learner_headers, correct_answers)

        picked = await async_test_client.post(
            "/api/learn/review", json={"skill_node_id": "heat-1a-1"}, headers=learner_headers
        )

        assert picked.status_code == 200
        assert picked.json()["session_type"] == "review"

        review = await start_lesson(async_test_client, learner_headers, session_type="review")
        assert review.status_code == 200

    @pytest.mark.asyncio
    async def test_activity_window(self, async_test_client, learner_headers, correct_answers) -> None:
        await run_perfect_lesson(async_test_client, learner_headers, correct_answers)

        response = await async_test_client.get("/api/learn/activity?days=7", headers=learner_headers)

        data = response.json()
        assert len(data["days"]) == 7
        assert data["days"][-1]["xp_earned"] == 120
        assert data["active_days"] == 1
