from taskboard.db.models.board import Board
from taskboard.db.models.column import TaskColumn
from taskboard.db.models.task import Task, TaskPriority, TaskStatus
from taskboard.db.models.assignment import TaskAssignment

__all__ = [
    "Board",
    "TaskColumn",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TaskAssignment",
]
