# routers/activity.py — Activity feeds for boards and tasks
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import activity_log
from activity_log import ActivityPage, DEFAULT_LIMIT
from auth import get_current_user, CurrentUser
from database import get_db_session
from errors import NotFoundError
from permissions import require_board_exists, require_board_member, resolve_board_id_for_task

router = APIRouter(prefix="/api/v1/activity", tags=["Activity"])


@router.get("/boards/{board_id}", response_model=ActivityPage)
async def board_activity(
    board_id: int,
    limit: Optional[int] = Query(DEFAULT_LIMIT),
    offset: Optional[int] = Query(0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Newest first. `limit` is capped and a negative `offset` reads from the start."""
    await require_board_exists(db, board_id)
    await require_board_member(db, board_id, user.id)
    return await activity_log.list_for_board(db, board_id, limit, offset)


@router.get("/tasks/{task_id}", response_model=ActivityPage)
async def task_activity(
    task_id: int,
    limit: Optional[int] = Query(DEFAULT_LIMIT),
    offset: Optional[int] = Query(0),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    board_id = await resolve_board_id_for_task(db, task_id)
    if board_id is None:
        raise NotFoundError(code="TB-BOARD-003")
    await require_board_member(db, board_id, user.id)
    return await activity_log.list_for_task(db, task_id, limit, offset)
