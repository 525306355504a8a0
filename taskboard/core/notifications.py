import enum
import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from taskboard.core import config
from taskboard.core.errors import NotFound, NotificationDispatchFailed

logger = logging.getLogger(__name__)

DELIVER_JOB = "deliver_notification"
INBOX_KEY_PREFIX = "notifications:"


class NotificationKind(str, enum.Enum):
    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_DUE_SOON = "TASK_DUE_SOON"


MESSAGES = {
    NotificationKind.TASK_ASSIGNED: "You have been assigned to a new task",
    NotificationKind.TASK_UPDATED: "A task you're assigned to has been updated",
    NotificationKind.TASK_DUE_SOON: "A task deadline is approaching",
}


def build_message(kind: str) -> str:
    try:
        return MESSAGES[NotificationKind(kind)]
    except ValueError:
        return "New notification"


@dataclass(frozen=True)
class PendingNotification:
    user_id: str
    task_id: int
    kind: NotificationKind


class NotificationDispatcher:
    """
    Best-effort bridge to the notification queue.

    ``redis`` is an arq pool (``app.state.redis``). When it is missing or the
    enqueue fails, the failure is logged and swallowed: the caller's mutation
    has already committed and is never rolled back.
    """

    def __init__(self, redis=None):
        self.redis = redis

    async def dispatch(self, user_id: str, task_id: int, kind: NotificationKind) -> bool:
        try:
            if self.redis is None:
                raise NotificationDispatchFailed("notification channel unavailable")
            try:
                await self.redis.enqueue_job(DELIVER_JOB, user_id, task_id, kind.value)
            except Exception as e:
                raise NotificationDispatchFailed(str(e)) from e
        except NotificationDispatchFailed as e:
            logger.error(
                f"Failed to send {kind.value} notification to {user_id} for task {task_id}: {e}",
                exc_info=True,
            )
            return False

        logger.info(f"Queued {kind.value} notification for user {user_id} on task {task_id}")
        return True

    async def dispatch_all(self, pending: list[PendingNotification]) -> int:
        """Dispatch each pending notification once; returns how many were queued."""
        sent = 0
        for item in pending:
            if await self.dispatch(item.user_id, item.task_id, item.kind):
                sent += 1
        return sent


class NotificationInbox:
    """
    Per-user notification history kept as a Redis list, newest first.

    The worker pushes delivered notifications; the API reads them back and
    flips their ``read`` flag. Records are JSON objects carrying an ``id``.
    """

    def __init__(self, redis):
        self.redis = redis

    @staticmethod
    def key(user_id: str) -> str:
        return f"{INBOX_KEY_PREFIX}{user_id}"

    async def push(self, user_id: str, task_id: int, kind: str) -> dict:
        record = {
            "id": uuid.uuid4().hex,
            "user_id": user_id,
            "task_id": task_id,
            "type": kind,
            "message": build_message(kind),
            "read": False,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        key = self.key(user_id)
        await self.redis.lpush(key, json.dumps(record))
        await self.redis.ltrim(key, 0, config.NOTIFICATION_HISTORY_LIMIT - 1)
        await self.redis.expire(key, int(timedelta(days=config.NOTIFICATION_TTL_DAYS).total_seconds()))
        return record

    async def recent(self, user_id: str, limit: int) -> list[dict]:
        raw = await self.redis.lrange(self.key(user_id), 0, limit - 1)
        return [json.loads(item) for item in raw or []]

    async def mark_read(self, user_id: str, notification_id: str) -> dict:
        key = self.key(user_id)
        for index, item in enumerate(await self.redis.lrange(key, 0, -1) or []):
            record = json.loads(item)
            if record.get("id") != notification_id:
                continue
            if not record["read"]:
                record["read"] = True
                await self.redis.lset(key, index, json.dumps(record))
                logger.info(f"Marked notification {notification_id} read for user {user_id}")
            return record
        raise NotFound("Notification", notification_id)
