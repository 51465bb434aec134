"""
Skill Tree API

FastAPI application for the mastery-learning progression engine.

Run:
    uvicorn skilltree.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from skilltree.config import settings
from skilltree.db.base import init_db
from skilltree.middleware import setup_error_handling, setup_rate_limiting
from skilltree.routers import health_router, learn_router, quests_router
from skilltree.services.learning import get_skill_graph

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure root logging for the service."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    graph = get_skill_graph()
    logger.info(f"Loaded curriculum: {len(graph.units)} units, {len(graph.nodes)} skill nodes")
    await init_db()
    yield


setup_logging(settings.DEBUG)

app = FastAPI(title=f"{settings.APP_NAME} API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handling(app, debug=settings.DEBUG)
setup_rate_limiting(app, enabled=settings.RATE_LIMIT_ENABLED)

app.include_router(health_router.router)
app.include_router(learn_router.router)
app.include_router(quests_router.router)


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} API"}
