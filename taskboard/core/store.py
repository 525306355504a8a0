"""
Persistence operations for boards, columns, tasks and assignments.

A ``BoardStore`` wraps one ``AsyncSession``; the caller owns the transaction
and decides when to commit. Reads always repopulate already-loaded objects so
that a unit of work that waited on a lock sees the positions as committed by
whoever held it before.
"""
import logging
from datetime import datetime

from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taskboard.core.errors import ConflictRetry
from taskboard.db.models import Board, TaskColumn, Task, TaskAssignment

logger = logging.getLogger(__name__)


class BoardStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _one(self, stmt):
        await self.db.flush()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _all(self, stmt):
        await self.db.flush()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def commit(self):
        await self.db.commit()

    async def rollback(self):
        await self.db.rollback()

    # --- Boards --- #

    async def find_board_by_channel(self, channel_id: str) -> Board | None:
        return await self._one(
            select(Board)
            .where(Board.channel_id == channel_id)
            .options(selectinload(Board.columns))
        )

    async def add_board(self, channel_id: str) -> Board:
        """Insert a board bound to ``channel_id``; a unique-binding clash raises ConflictRetry."""
        board = Board(channel_id=channel_id)
        self.db.add(board)
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictRetry(f"board for channel {channel_id} already exists") from e
        return board

    # --- Columns --- #

    async def get_column(self, column_id: int) -> TaskColumn | None:
        return await self._one(select(TaskColumn).where(TaskColumn.id == column_id))

    async def list_columns(self, board_id: int) -> list[TaskColumn]:
        return await self._all(
            select(TaskColumn)
            .where(TaskColumn.board_id == board_id)
            .order_by(TaskColumn.position, TaskColumn.id)
        )

    async def add_column(self, board_id: int, title: str, position: int) -> TaskColumn:
        column = TaskColumn(board_id=board_id, title=title, position=position)
        self.db.add(column)
        await self.db.flush()
        return column

    async def delete_column(self, column_id: int) -> None:
        """Delete a column with its tasks and their assignments, children first."""
        task_ids = select(Task.id).where(Task.column_id == column_id).scalar_subquery()
        await self.db.execute(
            delete(TaskAssignment)
            .where(TaskAssignment.task_id.in_(task_ids))
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Task)
            .where(Task.column_id == column_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(TaskColumn)
            .where(TaskColumn.id == column_id)
            .execution_options(synchronize_session=False)
        )

    # --- Tasks --- #

    async def get_task(self, task_id: int) -> Task | None:
        return await self._one(
            select(Task).where(Task.id == task_id).options(selectinload(Task.assignments))
        )

    async def list_tasks(self, column_id: int) -> list[Task]:
        return await self._all(
            select(Task)
            .where(Task.column_id == column_id)
            .options(selectinload(Task.assignments))
            .order_by(Task.position, Task.id)
        )

    async def add_task(self, **fields) -> Task:
        task = Task(**fields)
        self.db.add(task)
        await self.db.flush()
        return task

    async def delete_task(self, task_id: int) -> None:
        await self.db.execute(
            delete(TaskAssignment)
            .where(TaskAssignment.task_id == task_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            delete(Task)
            .where(Task.id == task_id)
            .execution_options(synchronize_session=False)
        )

    async def tasks_in_date_range(self, start: datetime, end: datetime) -> list[Task]:
        return await self._all(
            select(Task)
            .where(Task.due_date.isnot(None), Task.due_date.between(start, end))
            .options(selectinload(Task.assignments))
            .order_by(Task.due_date, Task.id)
        )

    async def tasks_by_assignee(self, user_id: str) -> list[Task]:
        return await self._all(
            select(Task)
            .join(TaskAssignment, TaskAssignment.task_id == Task.id)
            .where(TaskAssignment.user_id == user_id)
            .options(selectinload(Task.assignments))
            .order_by(Task.id)
        )

    # --- Assignments --- #

    async def add_assignments(self, task_id: int, user_ids: list[str]) -> list[str]:
        """
        Assign each user to the task once.

        Pairs that already exist are skipped, so the return value lists only
        the users that gained a new assignment row.
        """
        existing = set(
            (
                await self.db.execute(
                    select(TaskAssignment.user_id).where(TaskAssignment.task_id == task_id)
                )
            ).scalars().all()
        )
        created = []
        for user_id in user_ids:
            if user_id in existing:
                continue
            self.db.add(TaskAssignment(task_id=task_id, user_id=user_id))
            existing.add(user_id)
            created.append(user_id)
        await self.db.flush()
        return created

    async def clear_assignments(self, task_id: int) -> None:
        # ORM deletes so reused row ids never collide with stale identities
        for assignment in await self._all(select(TaskAssignment).where(TaskAssignment.task_id == task_id)):
            await self.db.delete(assignment)
        await self.db.flush()

    async def count_assignments(self, task_id: int, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(TaskAssignment.id)).where(
                TaskAssignment.task_id == task_id, TaskAssignment.user_id == user_id
            )
        )
        return result.scalar_one()
