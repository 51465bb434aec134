"""
Daily Quests API Router

Endpoints:
- GET /api/quests - Today's quests with progress and reset countdown
- POST /api/quests - Claim a completed quest's reward
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from skilltree.db.base import get_db
from skilltree.dependencies import get_learner_id
from skilltree.models.gamification import (
    QuestClaimRequest,
    QuestClaimResponse,
    QuestListResponse,
)
from skilltree.services.learning import QuestService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/quests", tags=["quests"])


async def get_quest_service(db: AsyncSession = Depends(get_db)) -> QuestService:
    """Get quest service."""
    return QuestService(db)


@router.get("", response_model=QuestListResponse)
async def list_quests(
    learner_id: str = Depends(get_learner_id),
    service: QuestService = Depends(get_quest_service),
) -> QuestListResponse:
    """Today's quests. Progress resets at local midnight."""
    return await service.list_quests(learner_id)


@router.post("", response_model=QuestClaimResponse)
async def claim_quest(
    request: QuestClaimRequest,
    learner_id: str = Depends(get_learner_id),
    service: QuestService = Depends(get_quest_service),
) -> QuestClaimResponse:
    """
    Claim a completed quest's reward.

    Returns 400 if the quest is not completed yet and 409 if it was already
    claimed today.
    """
    return await service.claim(learner_id, request.quest_id)
