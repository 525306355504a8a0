from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from taskboard.db.models.task import TaskPriority, TaskStatus

class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_user_ids: List[str] = Field(default_factory=list)

class TaskUpdate(BaseModel):
    """Every field is optional; only the ones present in the request are applied."""
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assigned_user_ids: Optional[List[str]] = None

    def changes(self) -> dict:
        return {field: getattr(self, field) for field in self.model_fields_set}

class TaskMove(BaseModel):
    target_column_id: int
    new_order: int = Field(..., ge=0)

class TaskRead(BaseModel):
    id: int
    column_id: int
    title: str
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    priority: TaskPriority
    status: TaskStatus
    creator_id: str
    position: int
    assigned_user_ids: List[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
