"""Domain models and DTOs."""

from questboard.domain.create_models import QuarterSetup, QuestCreate, TaskCreate
from questboard.domain.quest import Quest, compute_progress, current_quarter
from questboard.domain.task import Task, TaskStatus, apply_status_transition
from questboard.domain.update_models import QuestUpdate, TaskUpdate


__all__ = [
    "QuarterSetup",
    "Quest",
    "QuestCreate",
    "QuestUpdate",
    "Task",
    "TaskCreate",
    "TaskStatus",
    "TaskUpdate",
    "apply_status_transition",
    "compute_progress",
    "current_quarter",
]
