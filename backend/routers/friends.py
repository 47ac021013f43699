# routers/friends.py — Friend requests and the friends list
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr
from sqlalchemy import select, or_, and_
from sqlalchemy.ext.asyncio import AsyncSession

import activity_log
from activity_log import RequestContext, FriendMeta, get_request_context
from auth import get_current_user, CurrentUser
from database import get_db_session, unit_of_work
from errors import NotFoundError, ForbiddenError, ConflictError, ValidationError
from models import Friend, FriendStatus, User, EntityType, ActivityAction
from moves import discard_rows
from permissions import actor_identity
from routers.boards import _ts

router = APIRouter(prefix="/api/v1/friends", tags=["Friends"])


class FriendRequestIn(BaseModel):
    email: EmailStr


class FriendshipOut(BaseModel):
    id: int
    requester_id: int
    addressee_id: int
    status: str
    friend: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class FriendRequestsOut(BaseModel):
    incoming: List[FriendshipOut]
    outgoing: List[FriendshipOut]


def _friendship_out(friendship: Friend, other: Optional[User] = None) -> FriendshipOut:
    return FriendshipOut(
        id=friendship.id,
        requester_id=friendship.requester_id,
        addressee_id=friendship.addressee_id,
        status=friendship.status.value if isinstance(friendship.status, FriendStatus) else friendship.status,
        friend=actor_identity(other),
        created_at=_ts(friendship.created_at),
        updated_at=_ts(friendship.updated_at),
    )


async def _with_other_party(db: AsyncSession, me: int, criteria) -> List[FriendshipOut]:
    """Friendships matching `criteria`, each paired with the user on the other side"""
    stmt = (
        select(Friend, User)
        .join(User, or_(
            and_(Friend.requester_id == me, User.id == Friend.addressee_id),
            and_(Friend.addressee_id == me, User.id == Friend.requester_id),
        ))
        .where(criteria)
        .order_by(Friend.created_at.desc(), Friend.id.desc())
    )
    result = await db.execute(stmt)
    return [_friendship_out(friendship, other) for friendship, other in result.all()]


async def _get_friendship(db: AsyncSession, friendship_id: int) -> Friend:
    friendship = await db.get(Friend, friendship_id)
    if friendship is None:
        raise NotFoundError("Friendship not found")
    return friendship


def _meta(friendship: Friend) -> FriendMeta:
    return FriendMeta(requester_id=friendship.requester_id, addressee_id=friendship.addressee_id)


@router.get("", response_model=List[FriendshipOut])
async def list_friends(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Accepted friendships in either direction"""
    return await _with_other_party(db, user.id, and_(
        Friend.status == FriendStatus.ACCEPTED,
        or_(Friend.requester_id == user.id, Friend.addressee_id == user.id),
    ))


@router.get("/requests", response_model=FriendRequestsOut)
async def list_requests(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    """Pending requests, split into received and sent"""
    incoming = await _with_other_party(db, user.id, and_(
        Friend.status == FriendStatus.PENDING, Friend.addressee_id == user.id,
    ))
    outgoing = await _with_other_party(db, user.id, and_(
        Friend.status == FriendStatus.PENDING, Friend.requester_id == user.id,
    ))
    return FriendRequestsOut(incoming=incoming, outgoing=outgoing)


@router.post("/request", response_model=FriendshipOut, status_code=201)
async def send_request(
    data: FriendRequestIn,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    result = await db.execute(select(User).where(User.email == data.email))
    other = result.scalar_one_or_none()
    if other is None:
        raise NotFoundError("User not found")
    if other.id == user.id:
        raise ValidationError("Cannot friend yourself", issues=[{"loc": ["email"], "msg": "Cannot friend yourself"}])

    result = await db.execute(select(Friend).where(or_(
        and_(Friend.requester_id == user.id, Friend.addressee_id == other.id),
        and_(Friend.requester_id == other.id, Friend.addressee_id == user.id),
    )))
    existing = result.scalar_one_or_none()
    if existing is not None and existing.status == FriendStatus.ACCEPTED:
        raise ConflictError("Already friends")
    if existing is not None and existing.status == FriendStatus.PENDING:
        raise ConflictError("Request already pending")

    async with unit_of_work(db):
        if existing is not None:
            # a rejected pair is reopened in the new direction
            friendship = existing
            friendship.requester_id = user.id
            friendship.addressee_id = other.id
            friendship.status = FriendStatus.PENDING
        else:
            friendship = Friend(requester_id=user.id, addressee_id=other.id, status=FriendStatus.PENDING)
            db.add(friendship)
        await db.flush()
        await activity_log.record(
            db, user.id, None, EntityType.FRIEND, friendship.id,
            ActivityAction.FRIEND_REQUEST_SENT, _meta(friendship), ctx,
        )
    return _friendship_out(friendship, other)


async def _answer(
    db: AsyncSession, user: CurrentUser, friendship_id: int, status: FriendStatus,
    action: ActivityAction, ctx: RequestContext,
) -> FriendshipOut:
    friendship = await _get_friendship(db, friendship_id)
    if friendship.addressee_id != user.id:
        raise ForbiddenError("Not allowed")
    if friendship.status != FriendStatus.PENDING:
        raise ValidationError("Request is not pending")

    async with unit_of_work(db):
        friendship.status = status
        await db.flush()
        await activity_log.record(
            db, user.id, None, EntityType.FRIEND, friendship.id, action, _meta(friendship), ctx,
        )
    requester = await db.get(User, friendship.requester_id)
    return _friendship_out(friendship, requester)


@router.post("/{friendship_id}/accept", response_model=FriendshipOut)
async def accept_request(
    friendship_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    return await _answer(db, user, friendship_id, FriendStatus.ACCEPTED, ActivityAction.FRIEND_REQUEST_ACCEPTED, ctx)


@router.post("/{friendship_id}/reject", response_model=FriendshipOut)
async def reject_request(
    friendship_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    return await _answer(db, user, friendship_id, FriendStatus.REJECTED, ActivityAction.FRIEND_REQUEST_REJECTED, ctx)


@router.delete("/{friendship_id}")
async def remove_friend(
    friendship_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    ctx: RequestContext = Depends(get_request_context),
):
    """Either side may end a friendship or withdraw a request"""
    friendship = await _get_friendship(db, friendship_id)
    if user.id not in (friendship.requester_id, friendship.addressee_id):
        raise ForbiddenError("Not allowed")

    meta = _meta(friendship)
    async with unit_of_work(db):
        await discard_rows(db, Friend, Friend.id == friendship_id)
        await activity_log.record(
            db, user.id, None, EntityType.FRIEND, friendship_id,
            ActivityAction.FRIEND_REMOVED, meta, ctx,
        )
    return {"status": "removed", "friendship_id": friendship_id}
