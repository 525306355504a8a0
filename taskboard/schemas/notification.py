from datetime import datetime
from typing import Optional
from pydantic import BaseModel

class NotificationRead(BaseModel):
    id: str
    user_id: str
    task_id: int
    type: str
    message: str
    read: bool
    created_at: Optional[datetime] = None
