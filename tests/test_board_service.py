import asyncio

import pytest
from sqlalchemy import func, select

from taskboard.core.board_service import BoardService
from taskboard.core.errors import NotFound, ValidationFailed
from taskboard.core.locks import KeyedLock
from taskboard.db.models import Board, Task, TaskAssignment, TaskColumn

pytestmark = pytest.mark.anyio


async def _count(session_factory, model):
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def test_get_or_create_board_is_idempotent(board_service, session_factory):
    first = await board_service.get_or_create_board("general")
    second = await board_service.get_or_create_board("general")

    assert first.id == second.id
    assert first.channel_id == "general"
    assert first.columns == []
    assert await _count(session_factory, Board) == 1


async def test_concurrent_board_creation_converges(board_service, session_factory):
    boards = await asyncio.gather(*[board_service.get_or_create_board("race") for _ in range(8)])

    assert len({b.id for b in boards}) == 1
    assert await _count(session_factory, Board) == 1


async def test_board_creation_race_across_services_converges(session_factory):
    # Separate lock registries stand in for separate processes
    services = [BoardService(session_factory, locks=KeyedLock()) for _ in range(4)]

    boards = await asyncio.gather(*[s.get_or_create_board("shared") for s in services])

    assert len({b.id for b in boards}) == 1
    assert await _count(session_factory, Board) == 1


async def test_blank_channel_is_rejected(board_service):
    with pytest.raises(ValidationFailed):
        await board_service.get_or_create_board("  ")


async def test_columns_are_appended_in_order(board_service, board):
    titles = ["Backlog", "Doing", "Review", "Done"]
    created = [await board_service.create_column("channel-1", t) for t in titles]

    assert [c.position for c in created] == [0, 1, 2, 3]
    listed = await board_service.get_columns("channel-1")
    assert [c.title for c in listed] == titles
    assert [c.position for c in listed] == [0, 1, 2, 3]

    refreshed = await board_service.get_or_create_board("channel-1")
    assert [c.title for c in refreshed.columns] == titles


async def test_concurrent_column_creation_stays_dense(board_service, board):
    await asyncio.gather(*[board_service.create_column("channel-1", f"col {i}") for i in range(6)])

    columns = await board_service.get_columns("channel-1")
    assert sorted(c.position for c in columns) == list(range(6))


async def test_create_column_requires_title(board_service, board):
    with pytest.raises(ValidationFailed) as exc:
        await board_service.create_column("channel-1", "   ")
    assert exc.value.field == "title"
    assert await board_service.get_columns("channel-1") == []


async def test_create_column_on_unknown_channel(board_service):
    with pytest.raises(NotFound) as exc:
        await board_service.create_column("nowhere", "Backlog")
    assert exc.value.entity_type == "Board"


async def test_get_columns_on_unknown_channel(board_service):
    with pytest.raises(NotFound):
        await board_service.get_columns("nowhere")


async def test_delete_column_cascades_tasks_and_assignments(board_service, task_service, columns, session_factory):
    todo, doing = columns
    await task_service.create_task(todo.id, "creator", "Write docs", assigned_user_ids=["u1", "u2"])
    await task_service.create_task(todo.id, "creator", "Ship it")
    kept = await task_service.create_task(doing.id, "creator", "Review", assigned_user_ids=["u3"])

    await board_service.delete_column(todo.id)

    assert [c.id for c in await board_service.get_columns("channel-1")] == [doing.id]
    assert await _count(session_factory, Task) == 1
    assert await _count(session_factory, TaskAssignment) == 1
    assert (await task_service.get_task(kept.id)).assigned_user_ids == ["u3"]


async def test_delete_column_leaves_sibling_positions_untouched(board_service, board):
    a = await board_service.create_column("channel-1", "A")
    b = await board_service.create_column("channel-1", "B")
    c = await board_service.create_column("channel-1", "C")

    await board_service.delete_column(b.id)

    listed = await board_service.get_columns("channel-1")
    assert [(col.id, col.position) for col in listed] == [(a.id, 0), (c.id, 2)]


async def test_delete_column_compacts_when_enabled(session_factory, locks, board):
    service = BoardService(session_factory, locks=locks, compact_on_delete=True)
    a = await service.create_column("channel-1", "A")
    b = await service.create_column("channel-1", "B")
    c = await service.create_column("channel-1", "C")

    await service.delete_column(a.id)

    listed = await service.get_columns("channel-1")
    assert [(col.id, col.position) for col in listed] == [(b.id, 0), (c.id, 1)]


async def test_delete_unknown_column(board_service, session_factory):
    with pytest.raises(NotFound):
        await board_service.delete_column(404)
    assert await _count(session_factory, TaskColumn) == 0
