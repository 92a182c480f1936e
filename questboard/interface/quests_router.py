"""Quest endpoints and the scoreboard."""

import logging
from typing import Any

from fastapi import APIRouter, Depends

from questboard.core.config import constants
from questboard.domain.create_models import QuarterSetup, QuestCreate
from questboard.domain.update_models import QuestUpdate
from questboard.interface.auth import get_current_user_id
from questboard.services import quest_service, scoreboard_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quests", tags=["quests"])
scoreboard_router = APIRouter(tags=["scoreboard"])


@router.post("", status_code=constants.HTTP_CREATED)
async def create_quest(body: QuestCreate, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    quest = await quest_service.create_quest(owner_id=user_id, title=body.title, is_main=body.is_main)
    return {"success": True, "data": quest}


@router.post("/setup", status_code=constants.HTTP_CREATED)
async def setup_quarter(body: QuarterSetup, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    """Create this quarter's main quest and side quests together."""
    quests = await quest_service.setup_quarter(
        owner_id=user_id,
        main_title=body.main_quest,
        side_titles=body.side_quests,
    )
    return {"success": True, "data": quests}


@router.get("")
async def list_quests(quarter: str | None = None, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    quests = await quest_service.list_quests(owner_id=user_id, quarter=quarter)
    return {"success": True, "data": quests}


@router.get("/{quest_id}")
async def get_quest(quest_id: str, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    quest = await quest_service.get_quest(quest_id=quest_id, owner_id=user_id)
    return {"success": True, "data": quest}


@router.put("/{quest_id}")
async def update_quest(
    quest_id: str,
    body: QuestUpdate,
    user_id: str = Depends(get_current_user_id),
) -> dict[str, Any]:
    quest = await quest_service.update_quest(
        quest_id=quest_id,
        owner_id=user_id,
        title=body.title,
        is_main=body.is_main,
    )
    return {"success": True, "data": quest}


@router.delete("/{quest_id}")
async def delete_quest(quest_id: str, user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    await quest_service.delete_quest(quest_id=quest_id, owner_id=user_id)
    return {"success": True, "data": {"id": quest_id}}


@scoreboard_router.get("/scoreboard")
async def get_scoreboard(user_id: str = Depends(get_current_user_id)) -> dict[str, Any]:
    """Score summary for the dashboard."""
    scoreboard = await scoreboard_service.get_scoreboard(owner_id=user_id)
    return {"success": True, "data": scoreboard.model_dump()}
