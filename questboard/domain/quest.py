"""Quest domain models and progress arithmetic."""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from questboard.core.config import Constants
from questboard.domain.task import TaskStatus


class Quest(BaseModel):
    """Quest data transfer object."""

    id: str = Field(..., description="Unique quest ID")
    owner_id: str = Field(..., description="ID of the user who owns the quest")
    title: str = Field(..., description="Quest title (e.g., 'Ship the portfolio site')")
    is_main: bool = Field(default=False, description="True for the quarter's primary quest")
    quarter: str = Field(..., description="Quarter label, e.g. 'Q3 2025'")
    completed: bool = Field(default=False, description="True iff progress is 100")
    progress: int = Field(default=0, ge=0, le=100, description="Derived completion percentage")
    created_at: str
    updated_at: str


def current_quarter(now: datetime | None = None) -> str:
    """Return the quarter label ('Q<n> <year>') for a moment in time."""
    if now is None:
        now = datetime.now(UTC)
    quarter = (now.month - 1) // 3 + 1
    return f"Q{quarter} {now.year}"


def compute_progress(tasks: Iterable[dict[str, Any]]) -> int:
    """Percentage of tasks that are both completed and verified, floored and clamped."""
    total = 0
    done = 0
    for task in tasks:
        total += 1
        if task.get("status") == TaskStatus.COMPLETED and task.get("verified"):
            done += 1
    progress = (100 * done) // max(total, 1)
    return max(Constants.PROGRESS_MIN, min(Constants.PROGRESS_MAX, progress))
