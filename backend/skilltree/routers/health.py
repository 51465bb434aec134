"""
Health Check Endpoints

Provides health check endpoints for monitoring and orchestration.

Endpoints:
- GET /api/health - Basic health check
- GET /api/health/detailed - Detailed health with dependency checks
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.config import settings
from skilltree.db.base import get_db
from skilltree.services.learning import get_skill_graph

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check.

    Returns a simple status response indicating the API is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@router.get("/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """
    Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Curriculum catalog loaded
    """
    health = {"status": "healthy", "service": settings.APP_NAME, "dependencies": {}}

    # Check database
    try:
        await db.execute(text("SELECT 1"))
        health["dependencies"]["database"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["database"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    # Check curriculum
    try:
        graph = get_skill_graph()
        health["dependencies"]["curriculum"] = {
            "status": "healthy",
            "units": len(graph.units),
            "nodes": len(graph.nodes),
        }
    except Exception as e:
        health["dependencies"]["curriculum"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    return health
