"""Create models for API request bodies."""

from datetime import date

from pydantic import BaseModel, Field


class QuestCreate(BaseModel):
    """Payload for creating a single quest."""

    title: str = ""
    is_main: bool = False


class QuarterSetup(BaseModel):
    """Payload for setting up a quarter: one main quest plus side quests."""

    main_quest: str
    side_quests: list[str] = Field(default_factory=list)


class TaskCreate(BaseModel):
    """Payload for creating a task under a quest."""

    quest_id: str = ""
    title: str = ""
    description: str = ""
    due_date: date | None = None
