# routers/columns.py — Column create, rename, reorder and delete
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

import moves
from activity_log import RequestContext, get_request_context
from auth import get_current_user, CurrentUser
from database import get_db_session
from routers.boards import ColumnOut, column_out

router = APIRouter(prefix="/api/v1/columns", tags=["Columns"])


class ColumnCreate(BaseModel):
    board_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=120)


class ColumnRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)


class ColumnMove(BaseModel):
    new_position: int = Field(..., ge=0)


@router.post("", response_model=ColumnOut, status_code=201)
async def create_column(
    data: ColumnCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Append a column to the end of a board"""
    column = await moves.create_column(db, user.id, data.board_id, data.name, ctx)
    return column_out(column)


@router.patch("/{column_id}", response_model=ColumnOut)
async def rename_column(
    column_id: int,
    data: ColumnRename,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    column = await moves.rename_column(db, user.id, column_id, data.name, ctx)
    return column_out(column)


@router.patch("/{column_id}/move", response_model=ColumnOut)
async def move_column(
    column_id: int,
    data: ColumnMove,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Move a column; positions past the end are clamped to the last slot"""
    column = await moves.move_column(db, user.id, column_id, data.new_position, ctx)
    return column_out(column)


@router.delete("/{column_id}")
async def delete_column(
    column_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Delete a column and its tasks (owner only)"""
    await moves.delete_column(db, user.id, column_id, ctx)
    return {"status": "deleted", "column_id": column_id}
