"""Pytest configuration and fixtures for unit tests."""

from typing import Any

import pytest

from questboard.services import quest_service
from tests.unit.mocks import InMemoryDBClient


OWNER_ID = "user-alice"
OTHER_OWNER_ID = "user-bob"


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches questboard.core.db_client functions to use InMemoryDBClient."""
    for name in (
        "create_record",
        "get_record",
        "list_records",
        "list_all_records",
        "update_record",
        "delete_record",
        "delete_records",
        "get_allowance",
        "consume_allowance",
        "refund_allowance",
    ):
        monkeypatch.setattr(f"questboard.core.db_client.{name}", getattr(in_memory_db, name))
    return in_memory_db


@pytest.fixture
def owner_id() -> str:
    return OWNER_ID


@pytest.fixture
def other_owner_id() -> str:
    return OTHER_OWNER_ID


@pytest.fixture
async def main_quest(patched_db: InMemoryDBClient) -> dict[str, Any]:
    """Main quest for the current quarter."""
    return await quest_service.create_quest(owner_id=OWNER_ID, title="Ship the portfolio site", is_main=True)


@pytest.fixture
async def side_quest(patched_db: InMemoryDBClient) -> dict[str, Any]:
    """Side quest for the current quarter."""
    return await quest_service.create_quest(owner_id=OWNER_ID, title="Practice algorithms", is_main=False)


@pytest.fixture
def make_completed_task(patched_db: InMemoryDBClient):
    """Factory for a completed, unverified task under a quest."""

    async def _make(quest: dict[str, Any], **overrides: Any) -> dict[str, Any]:
        data = {
            "owner_id": quest["owner_id"],
            "quest_id": quest["id"],
            "title": "Finish landing page",
            "description": "Hero section and footer",
            "status": "completed",
            "completed_at": "2025-07-01T10:00:00+00:00",
            "verified": False,
            "points_awarded": 0,
            "due_date": None,
            "proof_url": None,
            "verification_notes": None,
            "retry_notes": None,
        }
        data.update(overrides)
        return await patched_db.create_record("tasks", data)

    return _make
