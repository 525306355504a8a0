import asyncio

import pytest

from taskboard.core.locks import KeyedLock, column_key

pytestmark = pytest.mark.anyio


async def test_same_key_is_serialized():
    locks = KeyedLock()
    events = []

    async def critical(name):
        async with locks.hold(column_key(1)):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(critical("a"), critical("b"))

    assert events in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])


async def test_disjoint_keys_run_in_parallel():
    locks = KeyedLock()
    inside = asyncio.Event()
    release = asyncio.Event()

    async def first():
        async with locks.hold(column_key(1)):
            inside.set()
            await release.wait()

    async def second():
        await inside.wait()
        async with locks.hold(column_key(2)):
            release.set()

    await asyncio.wait_for(asyncio.gather(first(), second()), timeout=1)


async def test_overlapping_key_sets_do_not_deadlock():
    locks = KeyedLock()

    async def worker(keys):
        for _ in range(20):
            async with locks.hold(*keys):
                await asyncio.sleep(0)

    await asyncio.wait_for(
        asyncio.gather(
            worker([column_key(1), column_key(2)]),
            worker([column_key(2), column_key(1)]),
        ),
        timeout=2,
    )


async def test_registry_is_emptied_after_release():
    locks = KeyedLock()
    async with locks.hold(column_key(1), column_key(2)):
        assert locks.locked(column_key(1))
    assert not locks.locked(column_key(1))
    assert locks._locks == {}


async def test_serialized_work_finishes_when_caller_is_cancelled():
    locks = KeyedLock()
    finished = asyncio.Event()

    async def work():
        await asyncio.sleep(0.02)
        finished.set()
        return "done"

    caller = asyncio.ensure_future(locks.serialized([column_key(1)], work))
    await asyncio.sleep(0.005)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    await asyncio.wait_for(finished.wait(), timeout=1)


async def test_caller_cancelled_while_queued_never_runs_its_work():
    locks = KeyedLock()
    ran = []

    async with locks.hold(column_key(1)):

        async def work():
            ran.append("queued")

        waiter = asyncio.ensure_future(locks.serialized([column_key(1)], work))
        await asyncio.sleep(0.005)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

    await asyncio.sleep(0.01)
    assert ran == []
    assert locks._locks == {}
