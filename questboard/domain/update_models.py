"""Update models for API request bodies."""

from datetime import date

from pydantic import BaseModel, ConfigDict

from questboard.domain.task import TaskStatus


class QuestUpdate(BaseModel):
    """Update payload for a quest. Progress and completion are derived, never written."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    is_main: bool | None = None


class TaskUpdate(BaseModel):
    """Update payload for a task."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    description: str | None = None
    due_date: date | None = None
    status: TaskStatus | None = None
    quest_id: str | None = None
