# routers/members.py — Board membership management
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import activity_log
from activity_log import RequestContext, MemberMeta, get_request_context
from auth import get_current_user, CurrentUser
from database import get_db_session, unit_of_work
from errors import NotFoundError, ConflictError, ValidationError
from models import BoardMember, User, MemberRole, EntityType, ActivityAction
from moves import discard_rows
from permissions import (
    require_board_exists, require_board_member, require_board_owner, require_accepted_friendship,
)

router = APIRouter(prefix="/api/v1/boards", tags=["Board Members"])


class MemberAdd(BaseModel):
    user_id: int = Field(..., gt=0)


class MemberOut(BaseModel):
    user_id: int
    role: str
    email: str
    display_name: str
    avatar_url: Optional[str] = None


def _member_out(member: BoardMember, user: User) -> MemberOut:
    return MemberOut(
        user_id=member.user_id,
        role=member.role.value if isinstance(member.role, MemberRole) else member.role,
        email=user.email,
        display_name=user.display_name or "",
        avatar_url=user.avatar_url,
    )


@router.get("/{board_id}/members", response_model=List[MemberOut])
async def list_members(
    board_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    await require_board_exists(db, board_id)
    await require_board_member(db, board_id, user.id)

    stmt = (
        select(BoardMember, User)
        .join(User, User.id == BoardMember.user_id)
        .where(BoardMember.board_id == board_id)
        .order_by(BoardMember.id.asc())
    )
    result = await db.execute(stmt)
    return [_member_out(member, member_user) for member, member_user in result.all()]


@router.post("/{board_id}/members", response_model=MemberOut, status_code=201)
async def add_member(
    board_id: int,
    data: MemberAdd,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Add an accepted friend to the board (owner only)"""
    await require_board_exists(db, board_id)
    await require_board_owner(db, board_id, user.id)

    new_user = await db.get(User, data.user_id)
    if new_user is None:
        raise NotFoundError("User not found")
    await require_accepted_friendship(db, user.id, new_user.id)

    existing = await db.execute(
        select(BoardMember.id).where(BoardMember.board_id == board_id, BoardMember.user_id == new_user.id)
    )
    if existing.first() is not None:
        raise ConflictError("User is already a member")

    async with unit_of_work(db):
        member = BoardMember(board_id=board_id, user_id=new_user.id, role=MemberRole.MEMBER)
        db.add(member)
        await db.flush()
        await activity_log.record(
            db, user.id, board_id, EntityType.MEMBER, new_user.id,
            ActivityAction.MEMBER_ADDED,
            MemberMeta(user_id=new_user.id, email=new_user.email, display_name=new_user.display_name),
            ctx,
        )
    return _member_out(member, new_user)


@router.delete("/{board_id}/members/{user_id}")
async def remove_member(
    board_id: int,
    user_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Remove a member (owner only). The owner cannot remove themselves."""
    await require_board_exists(db, board_id)
    await require_board_owner(db, board_id, user.id)

    if user_id == user.id:
        raise ValidationError("Owner cannot remove self", issues=[{"loc": ["user_id"], "msg": "Owner cannot remove self"}])

    result = await db.execute(
        select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id)
    )
    member = result.scalar_one_or_none()
    if member is None:
        raise NotFoundError("Member not found")
    removed_user = await db.get(User, user_id)

    async with unit_of_work(db):
        await discard_rows(db, BoardMember, BoardMember.id == member.id)
        await activity_log.record(
            db, user.id, board_id, EntityType.MEMBER, user_id,
            ActivityAction.MEMBER_REMOVED,
            MemberMeta(
                user_id=user_id,
                email=removed_user.email if removed_user else None,
                display_name=removed_user.display_name if removed_user else None,
            ),
            ctx,
        )
    return {"status": "removed", "user_id": user_id}
