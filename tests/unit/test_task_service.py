"""Unit tests for task_service module and the status transition function."""

from datetime import UTC, date, datetime

import pytest
from pydantic import ValidationError

from questboard.core.errors import BadRequestError, NotFoundError
from questboard.domain.task import TaskStatus, apply_status_transition
from questboard.domain.update_models import TaskUpdate
from questboard.services import task_service
from tests.unit.conftest import OTHER_OWNER_ID, OWNER_ID


NOW = datetime(2025, 8, 14, 9, 30, tzinfo=UTC)


@pytest.mark.unit
class TestApplyStatusTransition:
    @pytest.mark.parametrize("current", ["pending", "not_started", "in_progress"])
    def test_entering_completed_stamps_and_clears_verification(self, current):
        changes = apply_status_transition(current_status=current, new_status=TaskStatus.COMPLETED, now=NOW)

        assert changes == {"status": TaskStatus.COMPLETED, "completed_at": NOW.isoformat(), "verified": False}

    def test_recompleting_clears_verification_but_keeps_timestamp(self):
        changes = apply_status_transition(current_status="completed", new_status=TaskStatus.COMPLETED, now=NOW)

        assert changes == {"status": TaskStatus.COMPLETED, "verified": False}

    def test_leaving_completed_keeps_other_fields(self):
        changes = apply_status_transition(current_status="completed", new_status=TaskStatus.IN_PROGRESS, now=NOW)

        assert changes == {"status": TaskStatus.IN_PROGRESS}


@pytest.mark.unit
class TestTaskUpdateModel:
    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            TaskUpdate(status="done")

    def test_points_not_writable(self):
        with pytest.raises(ValidationError):
            TaskUpdate(points_awarded=100)


@pytest.mark.asyncio
class TestCreateTask:
    async def test_starts_pending(self, patched_db, main_quest):
        task = await task_service.create_task(
            owner_id=OWNER_ID,
            quest_id=main_quest["id"],
            title="Draft wireframes",
            due_date=date(2025, 9, 1),
        )

        assert task["status"] == "pending"
        assert task["verified"] is False
        assert task["points_awarded"] == 0
        assert task["due_date"] == "2025-09-01"

    async def test_requires_title_and_quest(self, patched_db, main_quest):
        with pytest.raises(BadRequestError):
            await task_service.create_task(owner_id=OWNER_ID, quest_id=main_quest["id"], title=" ")
        with pytest.raises(BadRequestError):
            await task_service.create_task(owner_id=OWNER_ID, quest_id="", title="Something")

    async def test_foreign_quest_not_found(self, patched_db, main_quest):
        with pytest.raises(NotFoundError):
            await task_service.create_task(owner_id=OTHER_OWNER_ID, quest_id=main_quest["id"], title="Sneaky")

    async def test_new_task_lowers_progress(self, patched_db, side_quest, make_completed_task):
        await make_completed_task(side_quest, verified=True, points_awarded=2)

        await task_service.create_task(owner_id=OWNER_ID, quest_id=side_quest["id"], title="One more")

        assert patched_db.snapshot("quests", side_quest["id"])["progress"] == 50


@pytest.mark.asyncio
class TestUpdateTask:
    async def test_completing_resets_verification(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest, status="in_progress", verified=True, completed_at=None)

        updated = await task_service.update_task(
            task_id=task["id"], owner_id=OWNER_ID, changes=TaskUpdate(status=TaskStatus.COMPLETED)
        )

        assert updated["status"] == "completed"
        assert updated["verified"] is False
        assert updated["completed_at"] is not None

    async def test_recompleting_resets_verification(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest, verified=True, points_awarded=5)

        updated = await task_service.update_task(
            task_id=task["id"], owner_id=OWNER_ID, changes=TaskUpdate(status=TaskStatus.COMPLETED)
        )

        assert updated["verified"] is False
        assert updated["completed_at"] == task["completed_at"]
        assert patched_db.snapshot("quests", main_quest["id"])["progress"] == 0

    async def test_single_task_write(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest, status="pending", completed_at=None)

        await task_service.update_task(
            task_id=task["id"],
            owner_id=OWNER_ID,
            changes=TaskUpdate(title="Renamed", status=TaskStatus.COMPLETED),
        )

        assert len([call for call in patched_db.update_calls if call[0] == "tasks"]) == 1

    async def test_empty_update_rejected(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest)

        with pytest.raises(BadRequestError):
            await task_service.update_task(task_id=task["id"], owner_id=OWNER_ID, changes=TaskUpdate())

    async def test_foreign_task_not_found(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest)

        with pytest.raises(NotFoundError):
            await task_service.update_task(
                task_id=task["id"], owner_id=OTHER_OWNER_ID, changes=TaskUpdate(title="Hijacked")
            )

        assert patched_db.snapshot("tasks", task["id"])["title"] == "Finish landing page"

    async def test_move_between_quests_updates_both(self, patched_db, main_quest, side_quest, make_completed_task):
        task = await make_completed_task(main_quest, verified=True, points_awarded=5)

        await task_service.update_task(
            task_id=task["id"], owner_id=OWNER_ID, changes=TaskUpdate(quest_id=side_quest["id"])
        )

        assert patched_db.snapshot("quests", main_quest["id"])["progress"] == 0
        assert patched_db.snapshot("quests", side_quest["id"])["progress"] == 100

    async def test_move_to_foreign_quest_not_found(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest)
        foreign = await patched_db.create_record(
            "quests",
            {
                "owner_id": OTHER_OWNER_ID,
                "title": "Bob's quest",
                "is_main": False,
                "quarter": "Q1 2025",
                "completed": False,
                "progress": 0,
            },
        )

        with pytest.raises(NotFoundError):
            await task_service.update_task(
                task_id=task["id"], owner_id=OWNER_ID, changes=TaskUpdate(quest_id=foreign["id"])
            )


@pytest.mark.asyncio
class TestListAndDelete:
    async def test_list_is_owner_scoped(self, patched_db, main_quest, side_quest, make_completed_task):
        await make_completed_task(main_quest)
        await make_completed_task(side_quest)

        assert len(await task_service.list_tasks(owner_id=OWNER_ID)) == 2
        assert len(await task_service.list_tasks(owner_id=OWNER_ID, quest_id=side_quest["id"])) == 1
        assert await task_service.list_tasks(owner_id=OTHER_OWNER_ID) == []

    async def test_delete(self, patched_db, main_quest, make_completed_task):
        task = await make_completed_task(main_quest)

        await task_service.delete_task(task_id=task["id"], owner_id=OWNER_ID)

        with pytest.raises(NotFoundError):
            await task_service.get_task(task_id=task["id"], owner_id=OWNER_ID)

    async def test_delete_missing_not_found(self, patched_db):
        with pytest.raises(NotFoundError):
            await task_service.delete_task(task_id="nope", owner_id=OWNER_ID)
