"""
Task lifecycle: creation, partial update, moves between and within columns,
deletion and read queries.

Every mutation that changes ``{column_id, position}`` runs inside the
column's serialized section (see ``KeyedLock``) and commits as a single
transaction. Assignment notifications are only dispatched after that commit.
"""
import logging
from datetime import datetime, timezone

from taskboard.core import config, ordering
from taskboard.core.board_service import require_text
from taskboard.core.errors import ConflictRetry, NotFound, ValidationFailed
from taskboard.core.locks import registry, column_key, task_key
from taskboard.core.notifications import NotificationDispatcher, NotificationKind, PendingNotification
from taskboard.core.store import BoardStore
from taskboard.db.models import Task, TaskPriority, TaskStatus
from taskboard.db.session import async_session

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"title", "description", "due_date", "priority", "status", "assigned_user_ids"}
CLEARABLE_FIELDS = {"description", "due_date"}


def _as_enum(enum_cls, field: str, value):
    if value is None:
        raise ValidationFailed(field, "must not be null")
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationFailed(field, f"must be one of {allowed}")


def _naive_utc(value: datetime | None) -> datetime | None:
    """Due dates are stored as naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _user_ids(value) -> list[str]:
    """Strip, validate and de-duplicate user ids, keeping first-seen order."""
    if value is None:
        raise ValidationFailed("assigned_user_ids", "must be a list, use [] to clear")
    ids = []
    for user_id in value:
        ids.append(require_text("assigned_user_ids", user_id))
    return list(dict.fromkeys(ids))


class TaskService:
    def __init__(
        self,
        session_factory=async_session,
        dispatcher: NotificationDispatcher | None = None,
        locks=registry,
        max_retries: int = config.CONFLICT_MAX_RETRIES,
        compact_on_delete: bool = config.COMPACT_ON_DELETE,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or NotificationDispatcher()
        self.locks = locks
        self.max_retries = max_retries
        self.compact_on_delete = compact_on_delete

    async def _require_task(self, task_id: int) -> Task:
        async with self.session_factory() as db:
            task = await BoardStore(db).get_task(task_id)
        if not task:
            raise NotFound("Task", task_id)
        return task

    async def _require_column(self, column_id: int):
        async with self.session_factory() as db:
            column = await BoardStore(db).get_column(column_id)
        if not column:
            raise NotFound("Column", column_id)
        return column

    # --- Creation --- #

    async def create_task(
        self,
        column_id: int,
        creator_id: str,
        title: str,
        description: str | None = None,
        due_date: datetime | None = None,
        priority=None,
        assigned_user_ids=None,
    ) -> Task:
        """Append a new TODO task to the column and notify its initial assignees."""
        title = require_text("title", title)
        creator_id = require_text("creator_id", creator_id)
        priority = _as_enum(TaskPriority, "priority", priority) if priority is not None else TaskPriority.MEDIUM
        user_ids = _user_ids(assigned_user_ids or [])
        due_date = _naive_utc(due_date)
        await self._require_column(column_id)

        async def work():
            async with self.session_factory() as db:
                store = BoardStore(db)
                if not await store.get_column(column_id):
                    raise NotFound("Column", column_id)
                siblings = await store.list_tasks(column_id)
                task = await store.add_task(
                    column_id=column_id,
                    title=title,
                    description=description,
                    due_date=due_date,
                    priority=priority,
                    status=TaskStatus.TODO,
                    creator_id=creator_id,
                    position=ordering.append(siblings),
                )
                await store.add_assignments(task.id, user_ids)
                task = await store.get_task(task.id)
                await store.commit()
                return task

        task = await self.locks.serialized([column_key(column_id)], work)
        logger.info(f"Created task {task.id} in column {column_id} at position {task.position}")

        await self.dispatcher.dispatch_all(
            [PendingNotification(user_id, task.id, NotificationKind.TASK_ASSIGNED) for user_id in user_ids]
        )
        return task

    # --- Reads --- #

    async def get_task(self, task_id: int) -> Task:
        return await self._require_task(task_id)

    async def get_tasks(self, column_id: int) -> list[Task]:
        """Tasks in ascending position; an unknown column simply has none."""
        async with self.session_factory() as db:
            return await BoardStore(db).list_tasks(column_id)

    async def get_tasks_by_date_range(self, start: datetime, end: datetime) -> list[Task]:
        start, end = _naive_utc(start), _naive_utc(end)
        async with self.session_factory() as db:
            return await BoardStore(db).tasks_in_date_range(start, end)

    async def get_tasks_by_assignee(self, user_id: str) -> list[Task]:
        user_id = require_text("user_id", user_id)
        async with self.session_factory() as db:
            return await BoardStore(db).tasks_by_assignee(user_id)

    # --- Partial update --- #

    async def update_task(self, task_id: int, changes: dict) -> Task:
        """
        Apply only the supplied fields.

        ``changes`` must contain just the keys the caller sent. An explicit
        ``None`` clears ``description`` or ``due_date``; on any other field it
        is rejected. ``assigned_user_ids`` replaces the whole assignment set
        and never notifies anyone.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationFailed(sorted(unknown)[0], "is not an updatable field")

        values = {}
        for field, value in changes.items():
            if field == "title":
                values[field] = require_text("title", value)
            elif field == "priority":
                values[field] = _as_enum(TaskPriority, field, value)
            elif field == "status":
                values[field] = _as_enum(TaskStatus, field, value)
            elif field == "assigned_user_ids":
                values[field] = _user_ids(value)
            elif field in CLEARABLE_FIELDS:
                values[field] = _naive_utc(value) if field == "due_date" else value

        for attempt in range(1, self.max_retries + 1):
            task = await self._require_task(task_id)
            column_id = task.column_id
            try:
                task = await self.locks.serialized(
                    [column_key(column_id), task_key(task_id)],
                    lambda: self._update_locked(task_id, column_id, values),
                )
            except ConflictRetry:
                logger.warning(
                    f"Task {task_id} moved while waiting to be updated (attempt {attempt}/{self.max_retries})"
                )
                continue
            logger.info(f"Updated task {task_id}: {', '.join(sorted(values)) or 'no fields'}")
            return task

        raise ConflictRetry(f"task {task_id} kept moving; gave up after {self.max_retries} attempts")

    async def _update_locked(self, task_id: int, column_id: int, values: dict) -> Task:
        async with self.session_factory() as db:
            store = BoardStore(db)
            task = await store.get_task(task_id)
            if not task:
                raise NotFound("Task", task_id)
            if task.column_id != column_id:
                raise ConflictRetry(f"task {task_id} left column {column_id}")
            for field, value in values.items():
                if field != "assigned_user_ids":
                    setattr(task, field, value)
            if "assigned_user_ids" in values:
                await store.clear_assignments(task_id)
                await store.add_assignments(task_id, values["assigned_user_ids"])
            task = await store.get_task(task_id)
            await store.commit()
            return task

    # --- Moves --- #

    async def move_task(self, task_id: int, target_column_id: int, new_order: int) -> Task:
        """
        Move a task to ``new_order`` within ``target_column_id``.

        The source column (when different) is compacted and the target column
        renumbered, all in one transaction while both columns are locked.
        """
        if new_order is None or new_order < 0:
            raise ValidationFailed("new_order", "must be a non-negative integer")

        for attempt in range(1, self.max_retries + 1):
            task = await self._require_task(task_id)
            await self._require_column(target_column_id)
            source_column_id = task.column_id

            async def work():
                return await self._move_locked(task_id, source_column_id, target_column_id, new_order)

            try:
                task = await self.locks.serialized(
                    [column_key(source_column_id), column_key(target_column_id)], work
                )
            except ConflictRetry:
                logger.warning(
                    f"Task {task_id} changed column while waiting to move (attempt {attempt}/{self.max_retries})"
                )
                continue

            logger.info(f"Moved task {task_id} to column {target_column_id} at position {task.position}")
            return task

        raise ConflictRetry(f"task {task_id} kept moving; gave up after {self.max_retries} attempts")

    async def _move_locked(self, task_id, source_column_id, target_column_id, new_order) -> Task:
        async with self.session_factory() as db:
            store = BoardStore(db)
            task = await store.get_task(task_id)
            if not task:
                raise NotFound("Task", task_id)
            if task.column_id != source_column_id:
                raise ConflictRetry(f"task {task_id} left column {source_column_id}")
            if not await store.get_column(target_column_id):
                raise NotFound("Column", target_column_id)

            if source_column_id != target_column_id:
                source_tasks = await store.list_tasks(source_column_id)
                remaining = ordering.remove_and_compact([t.id for t in source_tasks], task_id)
                ordering.apply([t for t in source_tasks if t.id != task_id], remaining)
                task.column_id = target_column_id

            target_tasks = await store.list_tasks(target_column_id)
            order = ordering.remove_and_compact([t.id for t in target_tasks], task_id)
            order = ordering.insert_at(order, task_id, new_order)
            ordering.apply([t for t in target_tasks if t.id != task_id] + [task], order)

            task = await store.get_task(task_id)
            await store.commit()
            return task

    # --- Deletion --- #

    async def delete_task(self, task_id: int) -> None:
        for attempt in range(1, self.max_retries + 1):
            task = await self._require_task(task_id)
            try:
                await self.locks.serialized(
                    [column_key(task.column_id), task_key(task_id)],
                    lambda: self._delete_locked(task_id, task.column_id),
                )
            except ConflictRetry:
                logger.warning(
                    f"Task {task_id} moved while waiting to be deleted (attempt {attempt}/{self.max_retries})"
                )
                continue
            logger.info(f"Deleted task {task_id} from column {task.column_id}")
            return

        raise ConflictRetry(f"task {task_id} kept moving; gave up after {self.max_retries} attempts")

    async def _delete_locked(self, task_id: int, column_id: int) -> None:
        async with self.session_factory() as db:
            store = BoardStore(db)
            current = await store.get_task(task_id)
            if not current:
                raise NotFound("Task", task_id)
            if current.column_id != column_id:
                raise ConflictRetry(f"task {task_id} left column {column_id}")
            await store.delete_task(task_id)
            if self.compact_on_delete:
                siblings = await store.list_tasks(column_id)
                ordering.apply(siblings, [t.id for t in siblings])
            await store.commit()
