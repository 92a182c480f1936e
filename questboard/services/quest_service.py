"""Quest service: CRUD, quarter setup and the progress aggregator."""

import logging
from typing import Any

from questboard.core import db_client
from questboard.core.errors import BadRequestError, NotFoundError, PersistenceFailureError
from questboard.core.logging import span
from questboard.domain.quest import compute_progress, current_quarter


logger = logging.getLogger(__name__)


def _require_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise BadRequestError("Title is required")
    return cleaned


async def _ensure_no_main_quest(*, owner_id: str, quarter: str, exclude_id: str | None = None) -> None:
    """Raise if the owner already has a main quest in the quarter."""
    existing = await db_client.list_all_records(
        collection="quests",
        owner_id=owner_id,
        filters={"quarter": quarter, "is_main": True},
    )
    if any(quest["id"] != exclude_id for quest in existing):
        raise BadRequestError(f"A main quest already exists for {quarter}")


async def _sync_progress(quest: dict[str, Any], tasks: list[dict[str, Any]]) -> dict[str, Any]:
    """Bring a quest's stored progress in line with its tasks, writing only on drift."""
    progress = compute_progress(tasks)
    completed = progress == 100
    if quest["progress"] == progress and quest["completed"] == completed:
        return quest

    return await db_client.update_record(
        collection="quests",
        record_id=quest["id"],
        owner_id=quest["owner_id"],
        data={"progress": progress, "completed": completed},
    )


async def create_quest(*, owner_id: str, title: str, is_main: bool = False) -> dict[str, Any]:
    """Create a quest in the current quarter.

    Raises:
        BadRequestError: If the title is empty or a main quest already exists this quarter
    """
    with span("quest_service.create_quest"):
        cleaned = _require_title(title)
        quarter = current_quarter()
        if is_main:
            await _ensure_no_main_quest(owner_id=owner_id, quarter=quarter)

        quest = await db_client.create_record(
            collection="quests",
            data={
                "owner_id": owner_id,
                "title": cleaned,
                "is_main": is_main,
                "quarter": quarter,
                "completed": False,
                "progress": 0,
            },
        )
        logger.info("Created quest %s (main=%s) for %s", quest["id"], is_main, quarter)
        return quest


async def setup_quarter(*, owner_id: str, main_title: str, side_titles: list[str]) -> list[dict[str, Any]]:
    """Create the quarter's main quest and its side quests in one go.

    All titles are validated before anything is written.
    """
    with span("quest_service.setup_quarter"):
        main = _require_title(main_title)
        sides = [_require_title(title) for title in side_titles]
        await _ensure_no_main_quest(owner_id=owner_id, quarter=current_quarter())

        created = [await create_quest(owner_id=owner_id, title=main, is_main=True)]
        for title in sides:
            created.append(await create_quest(owner_id=owner_id, title=title, is_main=False))
        return created


async def list_quests(*, owner_id: str, quarter: str | None = None) -> list[dict[str, Any]]:
    """List the owner's quests (newest first) with freshly derived progress."""
    with span("quest_service.list_quests"):
        filters = {"quarter": quarter} if quarter else None
        quests = await db_client.list_all_records(collection="quests", owner_id=owner_id, filters=filters)
        if not quests:
            return []

        tasks = await db_client.list_all_records(collection="tasks", owner_id=owner_id)
        tasks_by_quest: dict[str, list[dict[str, Any]]] = {}
        for task in tasks:
            tasks_by_quest.setdefault(task["quest_id"], []).append(task)

        return [await _sync_progress(quest, tasks_by_quest.get(quest["id"], [])) for quest in quests]


async def get_quest(*, quest_id: str, owner_id: str) -> dict[str, Any]:
    """Fetch one quest with freshly derived progress.

    Raises:
        NotFoundError: If the quest does not exist for this owner
    """
    with span("quest_service.get_quest"):
        quest = await db_client.get_record(collection="quests", record_id=quest_id, owner_id=owner_id)
        tasks = await db_client.list_all_records(
            collection="tasks", owner_id=owner_id, filters={"quest_id": quest_id}
        )
        return await _sync_progress(quest, tasks)


async def update_quest(
    *,
    quest_id: str,
    owner_id: str,
    title: str | None = None,
    is_main: bool | None = None,
) -> dict[str, Any]:
    """Rename a quest or change its main/side category."""
    with span("quest_service.update_quest"):
        data: dict[str, Any] = {}
        if title is not None:
            data["title"] = _require_title(title)
        if is_main is not None:
            data["is_main"] = is_main
        if not data:
            raise BadRequestError("No fields to update")

        quest = await db_client.get_record(collection="quests", record_id=quest_id, owner_id=owner_id)
        if is_main and not quest["is_main"]:
            await _ensure_no_main_quest(owner_id=owner_id, quarter=quest["quarter"], exclude_id=quest_id)

        return await db_client.update_record(collection="quests", record_id=quest_id, owner_id=owner_id, data=data)


async def delete_quest(*, quest_id: str, owner_id: str) -> None:
    """Delete a quest together with all of its tasks."""
    with span("quest_service.delete_quest"):
        await db_client.get_record(collection="quests", record_id=quest_id, owner_id=owner_id)
        removed = await db_client.delete_records(collection="tasks", owner_id=owner_id, filters={"quest_id": quest_id})
        await db_client.delete_record(collection="quests", record_id=quest_id, owner_id=owner_id)
        logger.info("Deleted quest %s and %d task(s)", quest_id, removed)


async def recompute_progress(*, quest_id: str, owner_id: str) -> int:
    """Re-derive a quest's progress from its tasks and persist it.

    progress = floor(100 * verified completed tasks / max(all tasks, 1)), and the
    quest is completed exactly when progress reaches 100. Idempotent.

    Raises:
        NotFoundError: If the quest does not exist for this owner
    """
    with span("quest_service.recompute_progress"):
        quest = await db_client.get_record(collection="quests", record_id=quest_id, owner_id=owner_id)
        tasks = await db_client.list_all_records(
            collection="tasks", owner_id=owner_id, filters={"quest_id": quest_id}
        )
        synced = await _sync_progress(quest, tasks)
        return synced["progress"]


async def refresh_after_task_change(*, quest_id: str, owner_id: str) -> None:
    """Recompute progress after a committed task change.

    The task write has already landed, so a failure here is logged rather than
    surfaced; quest reads re-derive progress anyway.
    """
    try:
        await recompute_progress(quest_id=quest_id, owner_id=owner_id)
    except (NotFoundError, PersistenceFailureError):
        logger.exception("Failed to refresh progress for quest %s", quest_id)
