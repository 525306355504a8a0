from sqlalchemy import Column, Integer, String, DateTime, func
from sqlalchemy.orm import relationship
from taskboard.db.base import Base

class Board(Base):
    __tablename__ = "boards"

    id = Column(Integer, primary_key=True, index=True)
    channel_id = Column(String(64), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    columns = relationship(
        "TaskColumn",
        back_populates="board",
        order_by="TaskColumn.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
