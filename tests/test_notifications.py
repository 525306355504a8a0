import json
import logging
from datetime import datetime, timedelta

import pytest

from taskboard.core import arq_worker
from taskboard.core.errors import NotFound
from taskboard.core.notifications import (
    DELIVER_JOB,
    NotificationDispatcher,
    NotificationInbox,
    NotificationKind,
    PendingNotification,
    build_message,
)
from taskboard.db.models import TaskStatus
from tests.conftest import FakeArqPool, FakeRedis

pytestmark = pytest.mark.anyio


class QueueingRedis(FakeRedis):
    """An ArqRedis stand-in: plain redis commands plus enqueue_job."""

    def __init__(self):
        super().__init__()
        self.jobs = []

    async def enqueue_job(self, function, *args, **kwargs):
        self.jobs.append((function, *args))
        return object()


def test_messages_per_kind():
    assert build_message("TASK_ASSIGNED") == "You have been assigned to a new task"
    assert build_message(NotificationKind.TASK_UPDATED) == "A task you're assigned to has been updated"
    assert build_message("TASK_DUE_SOON") == "A task deadline is approaching"
    assert build_message("SOMETHING_ELSE") == "New notification"


# --- Dispatcher --- #


async def test_dispatch_enqueues_delivery_job():
    pool = FakeArqPool()
    dispatcher = NotificationDispatcher(pool)

    assert await dispatcher.dispatch("u1", 7, NotificationKind.TASK_ASSIGNED) is True
    assert pool.jobs == [(DELIVER_JOB, "u1", 7, "TASK_ASSIGNED")]


async def test_dispatch_failure_is_logged_and_swallowed(caplog):
    dispatcher = NotificationDispatcher(FakeArqPool(fail=True))

    with caplog.at_level(logging.ERROR, logger="taskboard.core.notifications"):
        assert await dispatcher.dispatch("u1", 7, NotificationKind.TASK_ASSIGNED) is False

    assert "redis is down" in caplog.text


async def test_dispatch_without_a_queue():
    assert await NotificationDispatcher().dispatch("u1", 7, NotificationKind.TASK_ASSIGNED) is False


async def test_dispatch_all_counts_successes():
    pool = FakeArqPool()
    pending = [PendingNotification(user, 3, NotificationKind.TASK_ASSIGNED) for user in ("a", "b", "c")]

    assert await NotificationDispatcher(pool).dispatch_all(pending) == 3
    assert [job[1] for job in pool.jobs] == ["a", "b", "c"]
    assert await NotificationDispatcher(FakeArqPool(fail=True)).dispatch_all(pending) == 0


# --- Worker jobs --- #


async def test_deliver_notification_writes_the_inbox():
    redis = FakeRedis()

    await arq_worker.deliver_notification({"redis": redis}, "u1", 42, "TASK_ASSIGNED")

    key = "notifications:u1"
    record = json.loads(redis.lists[key][0])
    assert record["id"]
    assert record["user_id"] == "u1"
    assert record["task_id"] == 42
    assert record["type"] == "TASK_ASSIGNED"
    assert record["message"] == "You have been assigned to a new task"
    assert record["read"] is False
    assert redis.ttls[key] == 30 * 24 * 3600


async def test_deliver_notification_keeps_newest_first():
    redis = FakeRedis()
    for task_id in (1, 2, 3):
        await arq_worker.deliver_notification({"redis": redis}, "u1", task_id, "TASK_ASSIGNED")

    assert [json.loads(raw)["task_id"] for raw in redis.lists["notifications:u1"]] == [3, 2, 1]


async def test_due_soon_notifies_each_assignee_at_most_once(task_service, columns, session_factory):
    todo, _ = columns
    now = datetime(2026, 10, 19, 8, 0)
    soon = await task_service.create_task(
        todo.id, "creator", "Soon", due_date=now + timedelta(hours=3), assigned_user_ids=["u1", "u2"]
    )
    await task_service.create_task(
        todo.id, "creator", "Later", due_date=now + timedelta(days=5), assigned_user_ids=["u1"]
    )
    finished = await task_service.create_task(
        todo.id, "creator", "Finished", due_date=now + timedelta(hours=1), assigned_user_ids=["u3"]
    )
    await task_service.update_task(finished.id, {"status": TaskStatus.DONE})

    redis = QueueingRedis()
    ctx = {"redis": redis, "session_factory": session_factory}

    assert await arq_worker.notify_due_soon(ctx, now=now) == 2
    assert await arq_worker.notify_due_soon(ctx, now=now + timedelta(minutes=30)) == 0
    assert redis.jobs == [
        (DELIVER_JOB, "u1", soon.id, "TASK_DUE_SOON"),
        (DELIVER_JOB, "u2", soon.id, "TASK_DUE_SOON"),
    ]


# --- Inbox --- #


async def test_inbox_lists_newest_first_up_to_limit():
    inbox = NotificationInbox(FakeRedis())
    for task_id in (1, 2, 3):
        await inbox.push("u1", task_id, "TASK_ASSIGNED")

    recent = await inbox.recent("u1", 2)

    assert [n["task_id"] for n in recent] == [3, 2]
    assert len({n["id"] for n in await inbox.recent("u1", 10)}) == 3
    assert await inbox.recent("nobody", 10) == []


async def test_inbox_mark_read_updates_only_that_notification():
    inbox = NotificationInbox(FakeRedis())
    first = await inbox.push("u1", 1, "TASK_ASSIGNED")
    second = await inbox.push("u1", 2, "TASK_DUE_SOON")

    marked = await inbox.mark_read("u1", first["id"])

    assert marked["id"] == first["id"]
    assert marked["read"] is True
    by_id = {n["id"]: n["read"] for n in await inbox.recent("u1", 10)}
    assert by_id == {first["id"]: True, second["id"]: False}


async def test_inbox_mark_read_unknown_notification():
    inbox = NotificationInbox(FakeRedis())
    await inbox.push("u1", 1, "TASK_ASSIGNED")

    with pytest.raises(NotFound):
        await inbox.mark_read("u1", "missing")
    with pytest.raises(NotFound):
        await inbox.mark_read("u2", "missing")
