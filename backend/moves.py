# moves.py — Column and task mutations that touch sibling positions
"""
Every function here is one unit of work: permission checks first, then the
row changes, the renumbering of every affected sibling scope and the activity
entry, all committed together or rolled back together.

Writers on the same board are serialised by `board_locks` inside this
process and by a FOR UPDATE lock on the board row across processes; both are
held from the first read of the sibling set until commit. Boards never
contend with each other.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

import activity_log
from activity_log import (
    RequestContext, BoardMeta, ColumnMeta, ColumnMovedMeta, ColumnDeletedMeta,
    RenamedMeta, TaskMeta, TaskUpdatedMeta, TaskMovedMeta,
)
from database import unit_of_work
from errors import NotFoundError, ValidationError, CrossScopeError
from models import (
    Board, BoardMember, BoardColumn, Task, TaskAssignee, TaskComment,
    MemberRole, EntityType, ActivityAction, utcnow, as_utc,
)
from ordering import board_locks, column_scope, task_scope, insert_at_position, normalize, next_position
from permissions import (
    require_board_exists, require_board_member, require_board_owner,
    resolve_board_id_for_column, resolve_board_id_for_task,
)

logger = logging.getLogger("taskboard.moves")

DEFAULT_COLUMNS = ("To Do", "Doing", "Done")
TASK_FIELDS = ("title", "description", "due_date", "done")


def board_row_lock(board_id: int):
    """SELECT ... FOR UPDATE on the board row.

    Every writer of a board takes this first, so writers in other processes
    queue on the database while `board_locks` orders those in this one.
    """
    return select(Board.id).where(Board.id == board_id).with_for_update()


@asynccontextmanager
async def board_transaction(db: AsyncSession, board_id: int):
    """Hold the board's write lock around one unit of work."""
    # finish the read that resolved board_id before queueing on the lock
    if db.in_transaction():
        await db.commit()
    async with board_locks.hold(board_id):
        async with unit_of_work(db):
            await db.execute(board_row_lock(board_id))
            yield db


async def _board_of_column(db: AsyncSession, column_id: int) -> int:
    board_id = await resolve_board_id_for_column(db, column_id)
    if board_id is None:
        raise NotFoundError(code="TB-BOARD-002")
    return board_id


async def _board_of_task(db: AsyncSession, task_id: int) -> int:
    board_id = await resolve_board_id_for_task(db, task_id)
    if board_id is None:
        raise NotFoundError(code="TB-BOARD-003")
    return board_id


async def _load_column(db: AsyncSession, column_id: int) -> BoardColumn:
    column = await db.get(BoardColumn, column_id, populate_existing=True)
    if column is None:
        raise NotFoundError(code="TB-BOARD-002")
    return column


async def _load_task(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id, populate_existing=True)
    if task is None:
        raise NotFoundError(code="TB-BOARD-003")
    return task


async def discard_rows(db: AsyncSession, model, *criteria, cascade: bool = False) -> int:
    """Remove the rows of `model` matching `criteria`.

    Models declaring `supports_soft_delete` get a `deleted_at` tombstone and
    already-tombstoned rows are left alone. Every other model, and any row
    removed because its parent goes (`cascade=True`), is deleted outright.
    """
    if model.supports_soft_delete and not cascade:
        stmt = update(model).where(*criteria, model.deleted_at.is_(None)).values(deleted_at=utcnow())
    else:
        stmt = delete(model).where(*criteria)
    result = await db.execute(stmt)
    return result.rowcount


async def _purge_tasks(db: AsyncSession, task_ids) -> None:
    """Delete tasks together with their comments and assignees"""
    await discard_rows(db, TaskComment, TaskComment.task_id.in_(task_ids), cascade=True)
    await discard_rows(db, TaskAssignee, TaskAssignee.task_id.in_(task_ids))
    await discard_rows(db, Task, Task.id.in_(task_ids))


# ============================================================
# BOARDS
# ============================================================

async def create_board(db: AsyncSession, actor_id: int, name: str, ctx: RequestContext) -> Tuple[Board, list]:
    """New board with its owner membership and the default columns"""
    async with unit_of_work(db):
        board = Board(name=name, owner_id=actor_id)
        db.add(board)
        await db.flush()

        db.add(BoardMember(board_id=board.id, user_id=actor_id, role=MemberRole.OWNER))
        columns = [
            BoardColumn(board_id=board.id, name=column_name, position=position)
            for position, column_name in enumerate(DEFAULT_COLUMNS)
        ]
        db.add_all(columns)
        await db.flush()

        await activity_log.record(
            db, actor_id, board.id, EntityType.BOARD, board.id,
            ActivityAction.BOARD_CREATED, BoardMeta(name=board.name), ctx,
        )

    logger.info(f"Board {board.id} created by user {actor_id}")
    return board, columns


async def delete_board(db: AsyncSession, actor_id: int, board_id: int, ctx: RequestContext) -> None:
    async with board_transaction(db, board_id):
        board = await require_board_exists(db, board_id)
        await require_board_owner(db, board_id, actor_id)

        column_ids = select(BoardColumn.id).where(BoardColumn.board_id == board_id)
        task_ids = select(Task.id).where(Task.column_id.in_(column_ids))
        meta = BoardMeta(name=board.name)
        await _purge_tasks(db, task_ids)
        await discard_rows(db, BoardColumn, BoardColumn.board_id == board_id)
        await discard_rows(db, BoardMember, BoardMember.board_id == board_id)
        await discard_rows(db, Board, Board.id == board_id)

        await activity_log.record(
            db, actor_id, board_id, EntityType.BOARD, board_id,
            ActivityAction.BOARD_DELETED, meta, ctx,
        )

    logger.info(f"Board {board_id} deleted by user {actor_id}")


# ============================================================
# COLUMNS
# ============================================================

async def create_column(
    db: AsyncSession, actor_id: int, board_id: int, name: str, ctx: RequestContext
) -> BoardColumn:
    async with board_transaction(db, board_id):
        await require_board_exists(db, board_id)
        await require_board_member(db, board_id, actor_id)

        position = await next_position(db, column_scope(board_id))
        column = BoardColumn(board_id=board_id, name=name, position=position)
        db.add(column)
        await db.flush()

        await activity_log.record(
            db, actor_id, board_id, EntityType.COLUMN, column.id,
            ActivityAction.COLUMN_CREATED, ColumnMeta(name=column.name, position=column.position), ctx,
        )
    return column


async def rename_column(
    db: AsyncSession, actor_id: int, column_id: int, name: str, ctx: RequestContext
) -> BoardColumn:
    board_id = await _board_of_column(db, column_id)
    async with board_transaction(db, board_id):
        column = await _load_column(db, column_id)
        await require_board_member(db, column.board_id, actor_id)

        old_name = column.name
        column.name = name
        await db.flush()

        await activity_log.record(
            db, actor_id, column.board_id, EntityType.COLUMN, column.id,
            ActivityAction.COLUMN_RENAMED, RenamedMeta(old_name=old_name, new_name=name), ctx,
        )
    return column


async def move_column(
    db: AsyncSession, actor_id: int, column_id: int, requested_position: int, ctx: RequestContext
) -> BoardColumn:
    board_id = await _board_of_column(db, column_id)
    async with board_transaction(db, board_id):
        column = await _load_column(db, column_id)
        await require_board_member(db, column.board_id, actor_id)

        scope = column_scope(column.board_id)
        old_position = column.position
        await insert_at_position(db, scope, column.id, requested_position)
        await normalize(db, scope)

        await activity_log.record(
            db, actor_id, column.board_id, EntityType.COLUMN, column.id,
            ActivityAction.COLUMN_MOVED,
            ColumnMovedMeta(name=column.name, from_position=old_position, to_position=column.position),
            ctx,
        )

    logger.info(f"Column {column_id} moved {old_position} -> {column.position} on board {board_id}")
    return column


async def delete_column(db: AsyncSession, actor_id: int, column_id: int, ctx: RequestContext) -> None:
    """Owner only; the column's tasks go with it."""
    board_id = await _board_of_column(db, column_id)
    async with board_transaction(db, board_id):
        column = await _load_column(db, column_id)
        await require_board_owner(db, column.board_id, actor_id)

        task_count = (await db.execute(
            select(func.count(Task.id)).where(Task.column_id == column.id)
        )).scalar() or 0
        task_ids = select(Task.id).where(Task.column_id == column.id)
        await _purge_tasks(db, task_ids)

        meta = ColumnDeletedMeta(name=column.name, position=column.position, task_count=task_count)
        await discard_rows(db, BoardColumn, BoardColumn.id == column.id)
        await normalize(db, column_scope(board_id))

        await activity_log.record(
            db, actor_id, board_id, EntityType.COLUMN, column_id,
            ActivityAction.COLUMN_DELETED, meta, ctx,
        )

    logger.info(f"Column {column_id} deleted from board {board_id} ({task_count} tasks)")


# ============================================================
# TASKS
# ============================================================

async def create_task(
    db: AsyncSession,
    actor_id: int,
    column_id: int,
    title: str,
    description: Optional[str],
    ctx: RequestContext,
) -> Task:
    board_id = await _board_of_column(db, column_id)
    async with board_transaction(db, board_id):
        column = await _load_column(db, column_id)
        await require_board_member(db, column.board_id, actor_id)

        position = await next_position(db, task_scope(column.id))
        task = Task(
            column_id=column.id,
            title=title,
            description=description,
            done=False,
            position=position,
            created_by_user_id=actor_id,
        )
        db.add(task)
        await db.flush()

        await activity_log.record(
            db, actor_id, column.board_id, EntityType.TASK, task.id,
            ActivityAction.TASK_CREATED,
            TaskMeta(task_id=task.id, title=task.title, column_id=column.id, column_name=column.name),
            ctx,
        )
    return task


def _task_snapshot(task: Task) -> Dict[str, Any]:
    snapshot = {field: getattr(task, field) for field in TASK_FIELDS}
    snapshot["due_date"] = as_utc(snapshot["due_date"])
    return snapshot


async def update_task(
    db: AsyncSession, actor_id: int, task_id: int, changes: Dict[str, Any], ctx: RequestContext
) -> Task:
    """Apply a partial update of title, description, due_date and done."""
    unknown = sorted(set(changes) - set(TASK_FIELDS))
    if unknown:
        raise ValidationError(
            "Invalid update data",
            issues=[{"loc": [field], "msg": "Unknown field"} for field in unknown],
        )
    if "title" in changes and not (changes["title"] or "").strip():
        raise ValidationError("Invalid update data", issues=[{"loc": ["title"], "msg": "Title is required"}])
    if "done" in changes and changes["done"] is None:
        raise ValidationError("Invalid update data", issues=[{"loc": ["done"], "msg": "Must be a boolean"}])

    board_id = await _board_of_task(db, task_id)
    async with board_transaction(db, board_id):
        task = await _load_task(db, task_id)
        column = await _load_column(db, task.column_id)
        await require_board_member(db, column.board_id, actor_id)

        before = _task_snapshot(task)
        for field, value in changes.items():
            setattr(task, field, value)
        await db.flush()
        after = _task_snapshot(task)
        fields = [field for field in TASK_FIELDS if before[field] != after[field]]

        await activity_log.record(
            db, actor_id, column.board_id, EntityType.TASK, task.id,
            ActivityAction.TASK_UPDATED,
            TaskUpdatedMeta(
                task_id=task.id, title=task.title, column_id=column.id, column_name=column.name,
                fields=fields, before=before, after=after,
            ),
            ctx,
        )
    return task


async def move_task(
    db: AsyncSession,
    actor_id: int,
    task_id: int,
    to_column_id: int,
    requested_position: int,
    ctx: RequestContext,
) -> Task:
    """Relocate a task to `to_column_id` at `requested_position` (clamped).

    Moving a task onto its own column and position is not special-cased: it
    still renumbers both scopes and records a task.moved entry.
    """
    board_id = await _board_of_task(db, task_id)
    async with board_transaction(db, board_id):
        task = await _load_task(db, task_id)
        from_column = await _load_column(db, task.column_id)
        to_column = await _load_column(db, to_column_id)

        if to_column.board_id != from_column.board_id:
            raise CrossScopeError(
                issues=[{"loc": ["to_column_id"], "msg": "Column belongs to another board"}],
            )
        await require_board_member(db, from_column.board_id, actor_id)

        from_position = task.position
        task.column_id = to_column.id
        await insert_at_position(db, task_scope(to_column.id), task.id, requested_position)
        await normalize(db, task_scope(from_column.id))
        await normalize(db, task_scope(to_column.id))

        await activity_log.record(
            db, actor_id, to_column.board_id, EntityType.TASK, task.id,
            ActivityAction.TASK_MOVED,
            TaskMovedMeta(
                task_id=task.id,
                title=task.title,
                from_column_id=from_column.id,
                from_column_name=from_column.name,
                to_column_id=to_column.id,
                to_column_name=to_column.name,
                from_position=from_position,
                new_position=task.position,
            ),
            ctx,
        )

    logger.info(
        f"Task {task_id} moved column {from_column.id}:{from_position} -> "
        f"{to_column.id}:{task.position} on board {board_id}"
    )
    return task


async def delete_task(db: AsyncSession, actor_id: int, task_id: int, ctx: RequestContext) -> None:
    board_id = await _board_of_task(db, task_id)
    async with board_transaction(db, board_id):
        task = await _load_task(db, task_id)
        column = await _load_column(db, task.column_id)
        await require_board_member(db, column.board_id, actor_id)

        meta = TaskMeta(task_id=task.id, title=task.title, column_id=column.id, column_name=column.name)
        await _purge_tasks(db, [task.id])
        await normalize(db, task_scope(column.id))

        await activity_log.record(
            db, actor_id, column.board_id, EntityType.TASK, task_id,
            ActivityAction.TASK_DELETED, meta, ctx,
        )
