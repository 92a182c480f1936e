"""Scoreboard service: per-user score summary for the dashboard."""

import logging

from questboard.core import db_client
from questboard.core.config import Constants
from questboard.core.logging import span
from questboard.domain.quest import Quest, current_quarter
from questboard.domain.task import TaskStatus
from questboard.models.service_models import Scoreboard, ScoredTask
from questboard.services import quest_service, retry_service


logger = logging.getLogger(__name__)


async def get_scoreboard(*, owner_id: str) -> Scoreboard:
    """Summarize the owner's verified work, this quarter's quests and retry chances."""
    with span("scoreboard_service.get_scoreboard"):
        quarter = current_quarter()
        tasks = await db_client.list_all_records(collection="tasks", owner_id=owner_id)
        scored = [task for task in tasks if task["status"] == TaskStatus.COMPLETED and task["verified"]]

        top = sorted(scored, key=lambda task: task["points_awarded"], reverse=True)[: Constants.SCOREBOARD_TOP_TASKS]
        quests = await quest_service.list_quests(owner_id=owner_id, quarter=quarter)

        return Scoreboard(
            total_score=sum(task["points_awarded"] for task in scored),
            completed_tasks=len(scored),
            retry_chances=await retry_service.remaining_retries(owner_id=owner_id),
            current_quarter=quarter,
            quests=[Quest(**quest) for quest in quests],
            top_tasks=[
                ScoredTask(
                    id=task["id"],
                    title=task["title"],
                    quest_id=task["quest_id"],
                    points_awarded=task["points_awarded"],
                    completed_at=task.get("completed_at"),
                )
                for task in top
            ],
        )
