import asyncio
import logging
import sys
import time
from datetime import datetime, timedelta, timezone

from arq import cron, Worker
from arq.connections import RedisSettings

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from taskboard.core import config
from taskboard.core.notifications import NotificationDispatcher, NotificationInbox, NotificationKind
from taskboard.db.models import Task, TaskStatus
from taskboard.db.session import async_session

# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

DUE_SOON_MARKER_PREFIX = "due_soon_sent:"


async def deliver_notification(ctx, user_id: str, task_id: int, kind: str):
    """Background job: store a notification in the user's inbox list."""
    record = await NotificationInbox(ctx["redis"]).push(user_id, task_id, kind)
    logger.info(f"📬 Delivered {kind} for task {task_id} to user {user_id} ({record['id']})")


async def notify_due_soon(ctx, now: datetime | None = None):
    """Cron job: warn assignees about open tasks due inside the window, once each."""
    redis = ctx["redis"]
    dispatcher = NotificationDispatcher(redis)
    session_factory = ctx.get("session_factory", async_session)

    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    horizon = now + timedelta(hours=config.DUE_SOON_WINDOW_HOURS)

    async with session_factory() as db:
        result = await db.execute(
            select(Task)
            .where(
                Task.due_date.isnot(None),
                Task.due_date.between(now, horizon),
                Task.status != TaskStatus.DONE,
            )
            .options(selectinload(Task.assignments))
            .order_by(Task.due_date, Task.id)
        )
        tasks = result.scalars().all()

    sent = 0
    for task in tasks:
        for user_id in task.assigned_user_ids:
            marker = f"{DUE_SOON_MARKER_PREFIX}{task.id}:{user_id}"
            # SET NX keeps the warning at-most-once per task and assignee
            marker_ttl = config.DUE_SOON_WINDOW_HOURS * 2 * 3600
            if not await redis.set(marker, "1", nx=True, ex=marker_ttl):
                continue
            if await dispatcher.dispatch(user_id, task.id, NotificationKind.TASK_DUE_SOON):
                sent += 1

    logger.info(f"⏰ Due-soon scan found {len(tasks)} tasks, queued {sent} notifications")
    return sent


async def worker_heartbeat(ctx):
    redis = ctx["redis"]
    await redis.set(
        "arq:heartbeat", str(time.time()), ex=60
    )  # expire in 60 seconds


async def run_worker_forever():
    """
    Resilient loop that keeps the ARQ worker running.
    Restarts worker on failure with exponential backoff.
    """
    backoff = 1
    while True:
        try:
            worker = Worker(
                functions=[
                    deliver_notification,
                ],
                redis_settings=RedisSettings.from_dsn(config.REDIS_URL),
                cron_jobs=[
                    cron(worker_heartbeat, second=0),
                    cron(notify_due_soon, minute=0, second=0),
                ],
                keep_result=0,
                max_jobs=10,
            )
            logger.info("🚀 Starting ARQ worker...")
            await worker.async_run()
        except asyncio.CancelledError:
            logger.warning("🌀 Worker shutdown triggered by CancelledError, safe to ignore.")
        except Exception as e:
            logger.error(f"❌ Worker crashed: {e}", exc_info=True)
            logger.info(f"🔁 Restarting worker in {backoff} seconds...")
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 60)  # Max backoff 1 minute
        else:
            backoff = 1  # Reset backoff on clean exit


if __name__ == "__main__":
    try:
        asyncio.run(run_worker_forever())
    except KeyboardInterrupt:
        logger.info("🛑 Worker manually stopped.")
