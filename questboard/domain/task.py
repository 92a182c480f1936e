"""Task domain models, enums and the status transition function."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    """Task lifecycle status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    COMPLETED = "completed"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID")
    owner_id: str = Field(..., description="ID of the user who owns the task")
    quest_id: str = Field(..., description="Parent quest ID (owned by the same user)")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Current lifecycle status")
    due_date: str | None = Field(default=None, description="Due date (ISO format)")
    completed_at: str | None = Field(default=None, description="When the task last entered 'completed'")
    verified: bool = Field(default=False, description="True once proof has been accepted")
    proof_url: str | None = Field(default=None, description="Stored proof image as a data URI")
    points_awarded: int = Field(default=0, description="Points granted by the last accepted proof")
    verification_notes: str | None = Field(default=None, description="Raw classifier output, kept for audit")
    retry_notes: str | None = Field(default=None, description="Note the user attached to a retry")
    created_at: str
    updated_at: str


def apply_status_transition(
    *,
    current_status: TaskStatus | str,
    new_status: TaskStatus,
    now: datetime,
) -> dict[str, Any]:
    """Compute the field changes for a status update.

    Every update to ``completed`` clears ``verified``, so a re-completed task
    always needs fresh proof. ``completed_at`` is stamped only when the task
    enters ``completed`` from another status.
    """
    changes: dict[str, Any] = {"status": new_status}
    if new_status == TaskStatus.COMPLETED:
        changes["verified"] = False
        if current_status != TaskStatus.COMPLETED:
            changes["completed_at"] = now.isoformat()
    return changes
