# routers/tasks.py — Task CRUD, moves, assignees and comments
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import activity_log
import moves
from activity_log import RequestContext, AssigneeMeta, CommentMeta, body_preview, get_request_context
from auth import get_current_user, CurrentUser
from database import get_db_session, unit_of_work
from errors import NotFoundError, ForbiddenError
from models import (
    BoardColumn, BoardMember, Task, TaskAssignee, TaskComment, User,
    EntityType, ActivityAction,
)
from permissions import require_board_member, is_board_owner, actor_identity
from routers.boards import TaskOut, CommentOut, task_out, comment_out

logger = logging.getLogger("taskboard.tasks")

router = APIRouter(prefix="/api/v1/tasks", tags=["Tasks"])


# ============================================================
# SCHEMAS
# ============================================================

class TaskCreate(BaseModel):
    column_id: int = Field(..., gt=0)
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=20000)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=20000)
    due_date: Optional[datetime] = None
    done: Optional[bool] = None


class TaskMove(BaseModel):
    to_column_id: int = Field(..., gt=0)
    new_position: int = Field(0, ge=0)


class AssigneesIn(BaseModel):
    user_ids: List[int] = Field(default_factory=list)


class AssigneesOut(BaseModel):
    task_id: int
    user_ids: List[int]


class CommentCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)


class CommentWithAuthorOut(CommentOut):
    author: Optional[Dict[str, Any]] = None


# ============================================================
# HELPERS
# ============================================================

async def _task_for_member(db: AsyncSession, task_id: int, user_id: int) -> Tuple[Task, BoardColumn]:
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError(code="TB-BOARD-003")
    column = await db.get(BoardColumn, task.column_id)
    if column is None:
        raise NotFoundError(code="TB-BOARD-002")
    await require_board_member(db, column.board_id, user_id)
    return task, column


async def _assignee_ids(db: AsyncSession, task_id: int) -> List[int]:
    result = await db.execute(
        select(TaskAssignee.user_id).where(TaskAssignee.task_id == task_id).order_by(TaskAssignee.id.asc())
    )
    return [row[0] for row in result.all()]


# ============================================================
# TASK ENDPOINTS
# ============================================================

@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
    data: TaskCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Create a task at the bottom of a column"""
    task = await moves.create_task(db, user.id, data.column_id, data.title.strip(), data.description, ctx)
    return task_out(task)


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: int,
    data: TaskUpdate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    task = await moves.update_task(db, user.id, task_id, data.model_dump(exclude_unset=True), ctx)
    return task_out(task)


@router.patch("/{task_id}/move", response_model=TaskOut)
async def move_task(
    task_id: int,
    data: TaskMove,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Move a task to a column on the same board; the position is clamped"""
    task = await moves.move_task(db, user.id, task_id, data.to_column_id, data.new_position, ctx)
    return task_out(task)


@router.delete("/{task_id}")
async def delete_task(
    task_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    await moves.delete_task(db, user.id, task_id, ctx)
    return {"status": "deleted", "task_id": task_id}


# ============================================================
# ASSIGNEES
# ============================================================

@router.get("/{task_id}/assignees", response_model=AssigneesOut)
async def get_assignees(
    task_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await _task_for_member(db, task_id, user.id)
    return AssigneesOut(task_id=task_id, user_ids=await _assignee_ids(db, task_id))


@router.put("/{task_id}/assignees", response_model=AssigneesOut)
async def set_assignees(
    task_id: int,
    data: AssigneesIn,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Replace the assignee set. Users who are not board members are dropped."""
    task, column = await _task_for_member(db, task_id, user.id)

    requested = list(dict.fromkeys(uid for uid in data.user_ids if uid > 0))
    members = set()
    if requested:
        result = await db.execute(
            select(BoardMember.user_id).where(
                BoardMember.board_id == column.board_id,
                BoardMember.user_id.in_(requested),
            )
        )
        members = {row[0] for row in result.all()}
    next_ids = [uid for uid in requested if uid in members]

    previous = await _assignee_ids(db, task_id)
    added = [uid for uid in next_ids if uid not in previous]
    removed = [uid for uid in previous if uid not in next_ids]

    users = {}
    if added or removed:
        result = await db.execute(select(User).where(User.id.in_(added + removed)))
        users = {u.id: u for u in result.scalars().all()}

    async with unit_of_work(db):
        await moves.discard_rows(db, TaskAssignee, TaskAssignee.task_id == task_id)
        db.add_all([TaskAssignee(task_id=task_id, user_id=uid) for uid in next_ids])
        await db.flush()

        for action, user_ids in (
            (ActivityAction.TASK_ASSIGNEE_ADDED, added),
            (ActivityAction.TASK_ASSIGNEE_REMOVED, removed),
        ):
            for uid in user_ids:
                assignee = users.get(uid)
                await activity_log.record(
                    db, user.id, column.board_id, EntityType.TASK, task.id, action,
                    AssigneeMeta(
                        task_id=task.id, title=task.title, column_id=column.id, column_name=column.name,
                        assignee_user_id=uid,
                        assignee_email=assignee.email if assignee else None,
                        assignee_name=assignee.display_name if assignee else None,
                    ),
                    ctx,
                )

    logger.info(f"Task {task_id} assignees: +{added} -{removed}")
    return AssigneesOut(task_id=task_id, user_ids=next_ids)


# ============================================================
# COMMENTS
# ============================================================

@router.get("/{task_id}/comments", response_model=List[CommentWithAuthorOut])
async def list_comments(
    task_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Live comments, oldest first"""
    await _task_for_member(db, task_id, user.id)
    stmt = (
        select(TaskComment, User)
        .outerjoin(User, User.id == TaskComment.user_id)
        .where(TaskComment.task_id == task_id, TaskComment.deleted_at.is_(None))
        .order_by(TaskComment.created_at.asc(), TaskComment.id.asc())
    )
    result = await db.execute(stmt)
    return [
        CommentWithAuthorOut(**comment_out(comment).model_dump(), author=actor_identity(author))
        for comment, author in result.all()
    ]


@router.post("/{task_id}/comments", response_model=CommentOut, status_code=201)
async def add_comment(
    task_id: int,
    data: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    task, column = await _task_for_member(db, task_id, user.id)
    body = data.body.strip()

    async with unit_of_work(db):
        comment = TaskComment(task_id=task.id, user_id=user.id, body=body)
        db.add(comment)
        await db.flush()
        await activity_log.record(
            db, user.id, column.board_id, EntityType.COMMENT, comment.id,
            ActivityAction.COMMENT_ADDED,
            CommentMeta(
                task_id=task.id, title=task.title, column_id=column.id, column_name=column.name,
                comment_id=comment.id, body_preview=body_preview(body),
            ),
            ctx,
        )
    return comment_out(comment)


@router.delete("/{task_id}/comments/{comment_id}")
async def delete_comment(
    task_id: int,
    comment_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Tombstone a comment. Allowed for its author and the board owner."""
    task, column = await _task_for_member(db, task_id, user.id)
    comment = await db.get(TaskComment, comment_id)
    if comment is None or comment.task_id != task.id or comment.deleted_at is not None:
        raise NotFoundError("Comment not found")

    if comment.user_id != user.id and not await is_board_owner(db, column.board_id, user.id):
        raise ForbiddenError("Only the author or the board owner can delete a comment")

    async with unit_of_work(db):
        await moves.discard_rows(db, TaskComment, TaskComment.id == comment.id)
        await activity_log.record(
            db, user.id, column.board_id, EntityType.COMMENT, comment.id,
            ActivityAction.COMMENT_DELETED,
            CommentMeta(
                task_id=task.id, title=task.title, column_id=column.id, column_name=column.name,
                comment_id=comment.id, body_preview=body_preview(comment.body),
            ),
            ctx,
        )
    return {"status": "deleted", "comment_id": comment_id}
