"""
Shared Test Fixtures and Configuration

This module provides pytest fixtures used across unit and integration tests:
an in-memory SQLite database, a controllable clock, a small curriculum graph
and a deterministic question bank.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from dotenv import load_dotenv

# Add the backend directory to the path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env file from project root so local overrides are visible
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Forcefully set test configuration BEFORE skilltree is imported: settings
# and the engine are created at import time.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["GRADING_ENABLED"] = "false"
os.environ["LEARNER_TIMEZONE"] = "UTC"
os.environ["DEBUG"] = "false"

from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from skilltree.config import parse_curriculum  # noqa: E402
from skilltree.db.base import Base  # noqa: E402
from skilltree.enums.learning import QuestionKind  # noqa: E402
from skilltree.services.learning.question_bank import BankQuestion, InMemoryQuestionBank  # noqa: E402
from skilltree.services.learning.skill_graph import SkillGraph  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
START_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
LEARNER = "learner-1"


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """Clock pinned to START_TIME."""
    return FakeClock()


@pytest.fixture
def learner_id() -> str:
    return LEARNER


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def db_engine():
    """
    Fresh in-memory SQLite database per test.

    pysqlite's implicit transaction handling breaks SAVEPOINTs; the two
    listeners hand transaction control to SQLAlchemy instead.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Async session bound to the test database."""
    async with session_maker() as session:
        yield session


# ============================================================================
# Curriculum
# ============================================================================


@pytest.fixture
def curriculum_data() -> dict[str, Any]:
    """
    Small catalog:

        unit u1: n1 (root) -> n2
        unit u2: n3 (root); n4 requires n2 and n3
    """
    return {
        "units": [
            {"id": "u1", "name": "Unit One"},
            {"id": "u2", "name": "Unit Two"},
        ],
        "nodes": [
            {"id": "n1", "unit_id": "u1", "name": "Node 1", "order": 1},
            {"id": "n2", "unit_id": "u1", "name": "Node 2", "order": 2, "prerequisites": ["n1"]},
            {"id": "n3", "unit_id": "u2", "name": "Node 3", "order": 3},
            {"id": "n4", "unit_id": "u2", "name": "Node 4", "order": 4, "prerequisites": ["n2", "n3"]},
        ],
        "achievements": [
            {
                "id": "first-lesson",
                "name": "First Steps",
                "criteria_type": "lessons",
                "criteria_value": 1,
                "tier": 1,
                "xp_reward": 10,
            },
            {
                "id": "perfect-2",
                "name": "Sharp",
                "criteria_type": "perfect_lessons",
                "criteria_value": 2,
                "tier": 2,
                "xp_reward": 20,
            },
            {
                "id": "streak-3",
                "name": "Three Days",
                "criteria_type": "streak",
                "criteria_value": 3,
                "tier": 1,
                "xp_reward": 15,
                "reward_type": "streak_freeze",
                "reward_amount": 1,
            },
            {
                "id": "xp-1000",
                "name": "XP Hunter",
                "criteria_type": "xp",
                "criteria_value": 1000,
                "tier": 3,
                "xp_reward": 100,
            },
            {
                "id": "unit-two",
                "name": "Unit Two Master",
                "criteria_type": "unit_complete",
                "criteria_value": "u2",
                "tier": 3,
                "xp_reward": 100,
            },
        ],
        "quests": [
            {
                "id": "q-xp",
                "name": "Earn 10 XP",
                "criteria_type": "xp",
                "criteria_value": 10,
                "reward_type": "gems",
                "reward_amount": 5,
                "display_order": 1,
            },
            {
                "id": "q-lessons",
                "name": "Complete 2 Lessons",
                "criteria_type": "lessons",
                "criteria_value": 2,
                "reward_type": "hearts",
                "reward_amount": 2,
                "display_order": 2,
            },
            {
                "id": "q-perfect",
                "name": "Perfect Lesson",
                "criteria_type": "perfect_lessons",
                "criteria_value": 1,
                "reward_type": "gems",
                "reward_amount": 20,
                "display_order": 3,
            },
            {
                "id": "q-streak",
                "name": "Keep the Streak",
                "criteria_type": "streak",
                "criteria_value": 1,
                "reward_type": "gems",
                "reward_amount": 1,
                "display_order": 4,
            },
            {
                "id": "q-extra",
                "name": "Fifth Quest",
                "criteria_type": "lessons",
                "criteria_value": 1,
                "reward_type": "gems",
                "reward_amount": 1,
                "display_order": 5,
            },
            {
                "id": "q-retired",
                "name": "Retired Quest",
                "criteria_type": "lessons",
                "criteria_value": 1,
                "reward_type": "gems",
                "reward_amount": 1,
                "display_order": 0,
                "is_active": False,
            },
        ],
    }


@pytest.fixture
def graph(curriculum_data) -> SkillGraph:
    return SkillGraph(parse_curriculum(curriculum_data))


# ============================================================================
# Question Bank
# ============================================================================


def make_questions(node_id: str, count: int = 5) -> list[BankQuestion]:
    """Single-choice questions whose correct option is always "A"."""
    return [
        BankQuestion(
            id=f"{node_id}-q{i}",
            kind=QuestionKind.SINGLE_CHOICE,
            difficulty=min(5, i),
            payload={"prompt": f"Question {i}", "options": ["A", "B", "C"]},
            answer_key={"correct": "A"},
        )
        for i in range(1, count + 1)
    ]


@pytest.fixture
def question_bank() -> InMemoryQuestionBank:
    """Five questions for every node of the small catalog."""
    return InMemoryQuestionBank({node_id: make_questions(node_id) for node_id in ("n1", "n2", "n3", "n4")})
