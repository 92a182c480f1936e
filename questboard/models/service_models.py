"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from pydantic import BaseModel

from questboard.domain.quest import Quest
from questboard.domain.task import Task


class Verdict(BaseModel):
    """Decision extracted from a classifier answer."""

    accepted: bool
    raw: str


class VerificationOutcome(BaseModel):
    """Result of an accepted proof submission."""

    verified: bool
    points: int
    analysis: str
    task: Task
    retries_remaining: int | None = None


class ScoredTask(BaseModel):
    """Verified task entry on the scoreboard."""

    id: str
    title: str
    quest_id: str
    points_awarded: int
    completed_at: str | None = None


class Scoreboard(BaseModel):
    """Per-user score summary."""

    total_score: int
    completed_tasks: int
    retry_chances: int
    current_quarter: str
    quests: list[Quest]
    top_tasks: list[ScoredTask]
