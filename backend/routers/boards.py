# routers/boards.py — Boards, and the column/task shapes shared by the board routers
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import activity_log
import moves
from activity_log import RequestContext, RenamedMeta, get_request_context
from auth import get_current_user, CurrentUser
from database import get_db_session, unit_of_work
from models import (
    Board, BoardMember, BoardColumn, Task, TaskAssignee, TaskComment,
    MemberRole, EntityType, ActivityAction,
)
from permissions import require_board_exists, require_board_member, require_board_owner

router = APIRouter(prefix="/api/v1/boards", tags=["Boards"])


# ============================================================
# SCHEMAS
# ============================================================

class BoardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)


class BoardRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)


class BoardOut(BaseModel):
    id: int
    name: str
    owner_id: int
    role: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ColumnOut(BaseModel):
    id: int
    board_id: int
    name: str
    position: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class TaskOut(BaseModel):
    id: int
    column_id: int
    title: str
    description: Optional[str] = None
    due_date: Optional[str] = None
    done: bool
    position: int
    created_by_user_id: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class AssigneeOut(BaseModel):
    task_id: int
    user_id: int


class CommentOut(BaseModel):
    id: int
    task_id: int
    user_id: int
    body: str
    created_at: Optional[str] = None


class BoardWithColumnsOut(BaseModel):
    board: BoardOut
    columns: List[ColumnOut]


class BoardFullOut(BoardWithColumnsOut):
    tasks: List[TaskOut]
    assignees: List[AssigneeOut]
    comments: List[CommentOut]


# ============================================================
# HELPERS
# ============================================================

def _ts(dt) -> Optional[str]:
    if dt is None:
        return None
    return dt.isoformat() if isinstance(dt, datetime) else str(dt)


def board_out(board: Board, role=None) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        owner_id=board.owner_id,
        role=role.value if isinstance(role, MemberRole) else role,
        created_at=_ts(board.created_at),
        updated_at=_ts(board.updated_at),
    )


def column_out(column: BoardColumn) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        board_id=column.board_id,
        name=column.name,
        position=column.position,
        created_at=_ts(column.created_at),
        updated_at=_ts(column.updated_at),
    )


def task_out(task: Task) -> TaskOut:
    return TaskOut(
        id=task.id,
        column_id=task.column_id,
        title=task.title,
        description=task.description,
        due_date=_ts(task.due_date),
        done=bool(task.done),
        position=task.position,
        created_by_user_id=task.created_by_user_id,
        created_at=_ts(task.created_at),
        updated_at=_ts(task.updated_at),
    )


def comment_out(comment: TaskComment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        task_id=comment.task_id,
        user_id=comment.user_id,
        body=comment.body,
        created_at=_ts(comment.created_at),
    )


async def _columns_of(db: AsyncSession, board_id: int) -> List[BoardColumn]:
    stmt = (
        select(BoardColumn)
        .where(BoardColumn.board_id == board_id)
        .order_by(BoardColumn.position.asc(), BoardColumn.id.asc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


# ============================================================
# BOARD ENDPOINTS
# ============================================================

@router.get("", response_model=List[BoardOut])
async def list_boards(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Boards the current user owns or is a member of"""
    stmt = (
        select(Board, BoardMember.role)
        .join(BoardMember, BoardMember.board_id == Board.id)
        .where(BoardMember.user_id == user.id)
        .order_by(Board.created_at.desc(), Board.id.desc())
    )
    result = await db.execute(stmt)
    return [board_out(board, role) for board, role in result.all()]


@router.post("", response_model=BoardWithColumnsOut, status_code=201)
async def create_board(
    data: BoardCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Create a board with the default To Do / Doing / Done columns"""
    board, columns = await moves.create_board(db, user.id, data.name, ctx)
    return BoardWithColumnsOut(
        board=board_out(board, MemberRole.OWNER),
        columns=[column_out(c) for c in columns],
    )


@router.get("/{board_id}", response_model=BoardWithColumnsOut)
async def get_board(
    board_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    board = await require_board_exists(db, board_id)
    await require_board_member(db, board_id, user.id)
    columns = await _columns_of(db, board_id)
    return BoardWithColumnsOut(board=board_out(board), columns=[column_out(c) for c in columns])


@router.get("/{board_id}/full", response_model=BoardFullOut)
async def get_board_full(
    board_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Board with columns, tasks, assignees and live comments in one payload"""
    board = await require_board_exists(db, board_id)
    await require_board_member(db, board_id, user.id)

    columns = await _columns_of(db, board_id)
    column_ids = [c.id for c in columns]
    column_rank = {c.id: c.position for c in columns}

    tasks = []
    if column_ids:
        result = await db.execute(
            select(Task).where(Task.column_id.in_(column_ids)).order_by(Task.position.asc(), Task.id.asc())
        )
        tasks = sorted(result.scalars().all(), key=lambda t: (column_rank[t.column_id], t.position, t.id))
    task_ids = [t.id for t in tasks]

    assignees, comments = [], []
    if task_ids:
        result = await db.execute(
            select(TaskAssignee).where(TaskAssignee.task_id.in_(task_ids)).order_by(TaskAssignee.id.asc())
        )
        assignees = result.scalars().all()
        result = await db.execute(
            select(TaskComment)
            .where(TaskComment.task_id.in_(task_ids), TaskComment.deleted_at.is_(None))
            .order_by(TaskComment.created_at.asc(), TaskComment.id.asc())
        )
        comments = result.scalars().all()

    return BoardFullOut(
        board=board_out(board),
        columns=[column_out(c) for c in columns],
        tasks=[task_out(t) for t in tasks],
        assignees=[AssigneeOut(task_id=a.task_id, user_id=a.user_id) for a in assignees],
        comments=[comment_out(c) for c in comments],
    )


@router.patch("/{board_id}", response_model=BoardOut)
async def rename_board(
    board_id: int,
    data: BoardRename,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Rename a board (owner only)"""
    board = await require_board_exists(db, board_id)
    await require_board_owner(db, board_id, user.id)

    async with unit_of_work(db):
        old_name = board.name
        board.name = data.name
        await db.flush()
        await activity_log.record(
            db, user.id, board.id, EntityType.BOARD, board.id,
            ActivityAction.BOARD_RENAMED, RenamedMeta(old_name=old_name, new_name=board.name), ctx,
        )
    return board_out(board, MemberRole.OWNER)


@router.delete("/{board_id}")
async def delete_board(
    board_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Delete a board with all of its columns, tasks and memberships (owner only)"""
    await moves.delete_board(db, user.id, board_id, ctx)
    return {"status": "deleted", "board_id": board_id}
