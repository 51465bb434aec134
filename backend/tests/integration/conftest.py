"""
Integration Test Fixtures

Provides an HTTP client against the real FastAPI app, wired to the
per-test in-memory database from the parent conftest.py.

IMPORTANT: The client fixtures override get_db so requests never touch the
database configured for the running service. The lifespan (init_db) does
not run under ASGITransport; tables come from the db_engine fixture.

The question bank is the packaged sample bank without shuffling, so the
questions of a beginner lesson on heat-1a-1 are always q1..q5 in order.
"""

from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

LEARNER_HEADERS = {"X-Learner-Id": "learner-1"}

# Correct answers for the sample bank's beginner paper on heat-1a-1
HEAT_1A_1_ANSWERS = {
    "heat-1a-1-q1": "C",
    "heat-1a-1-q2": ["300"],
    "heat-1a-1-q3": {"0 °C": "273 K", "100 °C": "373 K", "-273 °C": "0 K"},
    "heat-1a-1-q4": ["250 K", "0 °C", "300 K", "50 °C"],
    "heat-1a-1-q5": "A",
}


@pytest_asyncio.fixture
async def async_test_client(session_maker) -> AsyncGenerator[httpx.AsyncClient, None]:
    """
    Create an async HTTP client configured to use the test database.

    Each request gets its own session, as in production.

    Note: As of httpx 0.28+, ASGITransport must be used instead of passing
    `app` directly to AsyncClient.
    """
    # Import here to defer until after environment is configured
    from skilltree.db.base import get_db
    from skilltree.main import app
    from skilltree.routers.learn import get_bank
    from skilltree.services.learning import InMemoryQuestionBank

    bank = InMemoryQuestionBank.from_yaml()

    async def get_test_db() -> AsyncGenerator[AsyncSession, None]:
        """Yield a test database session instead of production."""
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = get_test_db
    app.dependency_overrides[get_bank] = lambda: bank

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up dependency overrides after test
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_bank, None)


@pytest.fixture
def learner_headers() -> dict:
    return dict(LEARNER_HEADERS)


@pytest.fixture
def correct_answers() -> dict:
    return dict(HEAT_1A_1_ANSWERS)
