"""Tests for the SQLite persistence gateway against a temporary database file."""

import asyncio

import pytest

from questboard.core import db_client
from questboard.core.db_client import RecordNotFoundError
from questboard.services import quest_service, scoreboard_service


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch):
    """Fresh schema in a temporary SQLite file, closed after the test."""
    monkeypatch.setattr("questboard.core.db_client.settings.sqlite_db_path", str(tmp_path / "questboard.db"))
    await db_client.init_db()
    yield
    await db_client.close_connection()


async def _quest(owner_id: str = "alice", **overrides) -> dict:
    data = {
        "owner_id": owner_id,
        "title": "Main",
        "is_main": True,
        "quarter": "Q3 2025",
        "completed": False,
        "progress": 0,
    }
    data.update(overrides)
    return await db_client.create_record(collection="quests", data=data)


@pytest.mark.integration
@pytest.mark.asyncio
class TestOwnerScopedCrud:
    async def test_create_and_get_restores_booleans(self, sqlite_db):
        quest = await _quest()

        fetched = await db_client.get_record(collection="quests", record_id=quest["id"], owner_id="alice")

        assert fetched["is_main"] is True
        assert fetched["completed"] is False
        assert fetched["created_at"] == fetched["updated_at"]

    async def test_foreign_owner_sees_not_found(self, sqlite_db):
        quest = await _quest()

        with pytest.raises(RecordNotFoundError, match="Quest not found"):
            await db_client.get_record(collection="quests", record_id=quest["id"], owner_id="bob")

    async def test_update_is_keyed_on_owner(self, sqlite_db):
        quest = await _quest()

        with pytest.raises(RecordNotFoundError):
            await db_client.update_record(
                collection="quests", record_id=quest["id"], owner_id="bob", data={"title": "x"}
            )

        updated = await db_client.update_record(
            collection="quests", record_id=quest["id"], owner_id="alice", data={"title": "Renamed"}
        )
        assert updated["title"] == "Renamed"

    async def test_list_filters_and_scopes(self, sqlite_db):
        await _quest()
        await _quest(title="Side", is_main=False)
        await _quest(owner_id="bob")

        mine = await db_client.list_records(collection="quests", owner_id="alice")
        side = await db_client.list_records(collection="quests", owner_id="alice", filters={"is_main": False})

        assert len(mine) == 2
        assert [q["title"] for q in side] == ["Side"]

    async def test_delete_records_by_filter(self, sqlite_db):
        quest = await _quest()
        for title in ("a", "b"):
            await db_client.create_record(
                collection="tasks",
                data={"owner_id": "alice", "quest_id": quest["id"], "title": title, "status": "pending"},
            )

        removed = await db_client.delete_records(
            collection="tasks", owner_id="alice", filters={"quest_id": quest["id"]}
        )

        assert removed == 2
        assert await db_client.list_records(collection="tasks", owner_id="alice") == []

    async def test_rejects_unknown_collection(self, sqlite_db):
        with pytest.raises(ValueError, match="Invalid collection name"):
            await db_client.get_record(collection="users; DROP TABLE quests", record_id="1", owner_id="alice")


@pytest.mark.integration
@pytest.mark.asyncio
class TestRetryAllowance:
    async def test_lazily_created_at_initial(self, sqlite_db):
        assert await db_client.get_allowance(owner_id="alice", period="Q3 2025", initial=3) == 3

    async def test_consume_stops_at_zero(self, sqlite_db):
        results = [await db_client.consume_allowance(owner_id="alice", period="Q3 2025", initial=3) for _ in range(4)]

        assert results == [2, 1, 0, None]
        assert await db_client.get_allowance(owner_id="alice", period="Q3 2025", initial=3) == 0

    async def test_concurrent_consumers_never_overspend(self, sqlite_db):
        results = await asyncio.gather(
            *(db_client.consume_allowance(owner_id="alice", period="Q3 2025", initial=3) for _ in range(8))
        )

        assert sorted(r for r in results if r is not None) == [0, 1, 2]
        assert results.count(None) == 5

    async def test_refund_caps_at_initial(self, sqlite_db):
        await db_client.consume_allowance(owner_id="alice", period="Q3 2025", initial=3)

        assert await db_client.refund_allowance(owner_id="alice", period="Q3 2025", initial=3) == 3
        assert await db_client.refund_allowance(owner_id="alice", period="Q3 2025", initial=3) == 3

    async def test_periods_are_independent(self, sqlite_db):
        await db_client.consume_allowance(owner_id="alice", period="Q3 2025", initial=3)

        assert await db_client.get_allowance(owner_id="alice", period="Q4 2025", initial=3) == 3


@pytest.mark.integration
@pytest.mark.asyncio
class TestLargeOwnerHistories:
    """Aggregates cover every task, however many pages the owner's history spans."""

    @pytest.fixture
    async def crowded_quest(self, sqlite_db) -> dict:
        """A quest with 600 tasks whose 100 oldest are verified and completed."""
        quest = await _quest()
        for i in range(600):
            verified = i < 100
            await db_client.create_record(
                collection="tasks",
                data={
                    "owner_id": "alice",
                    "quest_id": quest["id"],
                    "title": f"Task {i}",
                    "status": "completed" if verified else "pending",
                    "verified": verified,
                    "points_awarded": 5 if verified else 0,
                    "created_at": f"2025-01-01T00:{i // 60:02d}:{i % 60:02d}+00:00",
                },
            )
        return quest

    async def test_list_all_walks_every_page(self, crowded_quest):
        tasks = await db_client.list_all_records(collection="tasks", owner_id="alice")

        assert len(tasks) == 600
        assert len({task["id"] for task in tasks}) == 600

    async def test_progress_counts_the_oldest_tasks(self, crowded_quest):
        progress = await quest_service.recompute_progress(quest_id=crowded_quest["id"], owner_id="alice")

        assert progress == 16
        stored = await db_client.get_record(collection="quests", record_id=crowded_quest["id"], owner_id="alice")
        assert stored["progress"] == 16

    async def test_scoreboard_totals_the_oldest_tasks(self, crowded_quest):
        scoreboard = await scoreboard_service.get_scoreboard(owner_id="alice")

        assert scoreboard.total_score == 500
        assert scoreboard.completed_tasks == 100
