"""Task service for CRUD operations and status changes."""

import logging
from datetime import UTC, date, datetime
from typing import Any

from questboard.core import db_client
from questboard.core.errors import BadRequestError
from questboard.core.logging import span
from questboard.domain.task import TaskStatus, apply_status_transition
from questboard.domain.update_models import TaskUpdate
from questboard.services import quest_service


logger = logging.getLogger(__name__)


async def create_task(
    *,
    owner_id: str,
    quest_id: str,
    title: str,
    description: str = "",
    due_date: date | None = None,
) -> dict[str, Any]:
    """Create a task under one of the owner's quests.

    Returns:
        Created task record, in ``pending`` status

    Raises:
        BadRequestError: If quest id or title is missing
        NotFoundError: If the quest does not exist for this owner
    """
    with span("task_service.create_task"):
        cleaned_title = (title or "").strip()
        if not quest_id or not cleaned_title:
            raise BadRequestError("Quest ID and title are required")

        await db_client.get_record(collection="quests", record_id=quest_id, owner_id=owner_id)

        task = await db_client.create_record(
            collection="tasks",
            data={
                "owner_id": owner_id,
                "quest_id": quest_id,
                "title": cleaned_title,
                "description": description,
                "due_date": due_date.isoformat() if due_date else None,
                "status": TaskStatus.PENDING,
                "verified": False,
                "points_awarded": 0,
            },
        )
        logger.info("Created task %s under quest %s", task["id"], quest_id)

        await quest_service.refresh_after_task_change(quest_id=quest_id, owner_id=owner_id)
        return task


async def list_tasks(*, owner_id: str, quest_id: str | None = None) -> list[dict[str, Any]]:
    """List the owner's tasks, newest first, optionally for one quest."""
    with span("task_service.list_tasks"):
        filters = {"quest_id": quest_id} if quest_id else None
        return await db_client.list_all_records(collection="tasks", owner_id=owner_id, filters=filters)


async def get_task(*, task_id: str, owner_id: str) -> dict[str, Any]:
    """Fetch a task owned by the caller.

    Raises:
        NotFoundError: If the task does not exist for this owner
    """
    return await db_client.get_record(collection="tasks", record_id=task_id, owner_id=owner_id)


async def update_task(*, task_id: str, owner_id: str, changes: TaskUpdate) -> dict[str, Any]:
    """Apply a partial update, routing status changes through the transition function.

    Raises:
        BadRequestError: If nothing to update or the title is blank
        NotFoundError: If the task, or the quest it is moved to, is not owned by the caller
    """
    with span("task_service.update_task"):
        data = changes.model_dump(exclude_none=True)
        if not data:
            raise BadRequestError("No fields to update")
        if "title" in data:
            data["title"] = data["title"].strip()
            if not data["title"]:
                raise BadRequestError("Title is required")
        if "due_date" in data:
            data["due_date"] = data["due_date"].isoformat()

        current = await db_client.get_record(collection="tasks", record_id=task_id, owner_id=owner_id)

        new_quest_id = data.get("quest_id")
        if new_quest_id and new_quest_id != current["quest_id"]:
            await db_client.get_record(collection="quests", record_id=new_quest_id, owner_id=owner_id)

        if "status" in data:
            data.update(
                apply_status_transition(
                    current_status=current["status"],
                    new_status=data["status"],
                    now=datetime.now(UTC),
                )
            )

        updated = await db_client.update_record(collection="tasks", record_id=task_id, owner_id=owner_id, data=data)
        logger.info("Updated task %s (fields: %s)", task_id, ", ".join(sorted(data)))

        for quest_id in {current["quest_id"], updated["quest_id"]}:
            await quest_service.refresh_after_task_change(quest_id=quest_id, owner_id=owner_id)
        return updated


async def delete_task(*, task_id: str, owner_id: str) -> None:
    """Permanently delete a task.

    Raises:
        NotFoundError: If the task does not exist for this owner
    """
    with span("task_service.delete_task"):
        task = await db_client.get_record(collection="tasks", record_id=task_id, owner_id=owner_id)
        await db_client.delete_record(collection="tasks", record_id=task_id, owner_id=owner_id)
        logger.info("Deleted task %s", task_id)

        await quest_service.refresh_after_task_change(quest_id=task["quest_id"], owner_id=owner_id)
