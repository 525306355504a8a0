from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel

class ColumnCreate(BaseModel):
    title: str

class ColumnRead(BaseModel):
    id: int
    board_id: int
    title: str
    position: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BoardRead(BaseModel):
    id: int
    channel_id: str
    columns: List[ColumnRead]
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
