"""Shared fixtures: a throwaway SQLite database per test and a fake arq pool."""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taskboard.core.board_service import BoardService
from taskboard.core.locks import KeyedLock
from taskboard.core.notifications import NotificationDispatcher
from taskboard.core.task_service import TaskService
from taskboard.db import models  # noqa: F401
from taskboard.db.base import Base
from taskboard.db.session import build_engine


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeArqPool:
    """Records enqueue_job calls the way an ArqRedis pool would receive them."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.jobs = []

    async def enqueue_job(self, function, *args, **kwargs):
        if self.fail:
            raise ConnectionError("redis is down")
        self.jobs.append((function, *args))
        return object()


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the worker jobs and the inbox."""

    def __init__(self):
        self.lists = {}
        self.values = {}
        self.ttls = {}

    async def lpush(self, key, value):
        self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def ltrim(self, key, start, end):
        self.lists[key] = self.lists.get(key, [])[start : end + 1]

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        stop = len(items) if end == -1 else end + 1
        return items[start:stop]

    async def lset(self, key, index, value):
        self.lists[key][index] = value
        return True

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.values:
            return None
        self.values[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'taskboard.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def queue():
    return FakeArqPool()


@pytest.fixture
def board_service(session_factory, locks):
    return BoardService(session_factory, locks=locks, max_retries=3, compact_on_delete=False)


@pytest.fixture
def task_service(session_factory, locks, queue):
    return TaskService(
        session_factory,
        NotificationDispatcher(queue),
        locks=locks,
        max_retries=3,
        compact_on_delete=False,
    )


@pytest.fixture
async def board(board_service):
    return await board_service.get_or_create_board("channel-1")


@pytest.fixture
async def columns(board_service, board):
    todo = await board_service.create_column("channel-1", "To do")
    doing = await board_service.create_column("channel-1", "Doing")
    return todo, doing
