"""API Routers package."""

from skilltree.routers import health as health_router
from skilltree.routers import learn as learn_router
from skilltree.routers import quests as quests_router

__all__ = ["health_router", "learn_router", "quests_router"]
