# tests/test_ordering.py — Dense position engine and per-board write locks
import asyncio

import pytest
from sqlalchemy import select, update

from activity_log import RequestContext
from database import unit_of_work
from models import Task, BoardColumn
from ordering import (
    ScopeLocks, column_scope, task_scope, insert_at_position, normalize, next_position,
)
import moves


async def _task_order(db, column_id):
    result = await db.execute(
        select(Task.id, Task.position).where(Task.column_id == column_id).order_by(Task.position, Task.id)
    )
    return [tuple(row) for row in result.all()]


async def _three_tasks(db, user, column):
    ctx = RequestContext.empty()
    return [
        (await moves.create_task(db, user.id, column.id, title, None, ctx)).id
        for title in ("first", "second", "third")
    ]


@pytest.mark.asyncio
async def test_next_position_counts_siblings(db_session, alice, columns):
    """Appends land after the last sibling"""
    assert await next_position(db_session, column_scope(columns[0].board_id)) == 3
    assert await next_position(db_session, task_scope(columns[0].id)) == 0

    ids = await _three_tasks(db_session, alice, columns[0])
    order = await _task_order(db_session, columns[0].id)
    assert order == [(ids[0], 0), (ids[1], 1), (ids[2], 2)]


@pytest.mark.asyncio
async def test_insert_past_end_clamps_to_last_slot(db_session, alice, columns):
    ids = await _three_tasks(db_session, alice, columns[0])

    async with unit_of_work(db_session):
        result = await insert_at_position(db_session, task_scope(columns[0].id), ids[0], 99)

    assert result == [ids[1], ids[2], ids[0]]
    assert await _task_order(db_session, columns[0].id) == [(ids[1], 0), (ids[2], 1), (ids[0], 2)]


@pytest.mark.asyncio
async def test_insert_negative_clamps_to_first_slot(db_session, alice, columns):
    ids = await _three_tasks(db_session, alice, columns[0])

    async with unit_of_work(db_session):
        await insert_at_position(db_session, task_scope(columns[0].id), ids[2], -5)

    assert await _task_order(db_session, columns[0].id) == [(ids[2], 0), (ids[0], 1), (ids[1], 2)]


@pytest.mark.asyncio
async def test_insert_rejects_target_outside_scope(db_session, alice, columns):
    ids = await _three_tasks(db_session, alice, columns[0])
    with pytest.raises(ValueError):
        await insert_at_position(db_session, task_scope(columns[1].id), ids[0], 0)
    await db_session.rollback()


@pytest.mark.asyncio
async def test_normalize_closes_gaps_and_breaks_ties_by_id(db_session, alice, columns):
    ids = await _three_tasks(db_session, alice, columns[0])
    await db_session.execute(update(Task).where(Task.id == ids[0]).values(position=7))
    await db_session.execute(update(Task).where(Task.id == ids[1]).values(position=7))
    await db_session.execute(update(Task).where(Task.id == ids[2]).values(position=2))
    await db_session.commit()

    async with unit_of_work(db_session):
        await normalize(db_session, task_scope(columns[0].id))

    assert await _task_order(db_session, columns[0].id) == [(ids[2], 0), (ids[0], 1), (ids[1], 2)]


@pytest.mark.asyncio
async def test_normalize_is_idempotent(db_session, alice, columns):
    ids = await _three_tasks(db_session, alice, columns[0])
    await db_session.execute(update(Task).where(Task.id == ids[1]).values(position=10))
    await db_session.commit()

    async with unit_of_work(db_session):
        first = await normalize(db_session, task_scope(columns[0].id))
    after_first = await _task_order(db_session, columns[0].id)

    async with unit_of_work(db_session):
        second = await normalize(db_session, task_scope(columns[0].id))
    after_second = await _task_order(db_session, columns[0].id)

    assert first == second
    assert after_first == after_second == [(ids[0], 0), (ids[2], 1), (ids[1], 2)]


@pytest.mark.asyncio
async def test_normalize_empty_scope_is_noop(db_session, columns):
    async with unit_of_work(db_session):
        assert await normalize(db_session, task_scope(columns[2].id)) == []


@pytest.mark.asyncio
async def test_column_scope_orders_columns(db_session, board, columns):
    assert [c.name for c in columns] == ["To Do", "Doing", "Done"]
    result = await db_session.execute(
        select(BoardColumn.position).where(BoardColumn.board_id == board.id).order_by(BoardColumn.position)
    )
    assert [row[0] for row in result.all()] == [0, 1, 2]


# ============================================================
# SCOPE LOCKS
# ============================================================

@pytest.mark.asyncio
async def test_scope_locks_serialise_same_key():
    locks = ScopeLocks()
    events = []

    async def worker(name):
        async with locks.hold(1):
            events.append(f"{name}-in")
            await asyncio.sleep(0.01)
            events.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert events in (
        ["a-in", "a-out", "b-in", "b-out"],
        ["b-in", "b-out", "a-in", "a-out"],
    )
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_scope_locks_different_keys_do_not_contend():
    locks = ScopeLocks()

    async def enter(key):
        async with locks.hold(key):
            return key

    async with locks.hold(1):
        assert locks.locked(1)
        assert await asyncio.wait_for(enter(2), timeout=1) == 2
    assert not locks.locked(1)


@pytest.mark.asyncio
async def test_scope_locks_multi_key_released_on_error():
    locks = ScopeLocks()
    with pytest.raises(RuntimeError):
        async with locks.hold(3, 1, 2):
            assert locks.locked(1) and locks.locked(2) and locks.locked(3)
            raise RuntimeError("boom")
    assert len(locks) == 0
