# permissions.py — Board membership, ownership and friendship checks
"""
Read-then-decide authorization checks. None of these functions mutate state;
every column/task mutation path calls one of them before touching any row.

Also home to the small resolvers the core uses to find the board a column or
task belongs to, and the public identity of an activity actor.
"""
from typing import Optional, Dict, Any

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ForbiddenError, NotFoundError
from models import Board, BoardMember, BoardColumn, Task, Friend, FriendStatus, MemberRole, User


async def _membership(db: AsyncSession, board_id: int, user_id: int) -> Optional[BoardMember]:
    stmt = select(BoardMember).where(
        BoardMember.board_id == board_id,
        BoardMember.user_id == user_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def is_board_member(db: AsyncSession, board_id: int, user_id: int) -> bool:
    return await _membership(db, board_id, user_id) is not None


async def require_board_member(db: AsyncSession, board_id: int, user_id: int) -> None:
    if not await is_board_member(db, board_id, user_id):
        raise ForbiddenError()


async def is_board_owner(db: AsyncSession, board_id: int, user_id: int) -> bool:
    member = await _membership(db, board_id, user_id)
    return member is not None and member.role == MemberRole.OWNER


async def require_board_owner(db: AsyncSession, board_id: int, user_id: int) -> None:
    if not await is_board_owner(db, board_id, user_id):
        raise ForbiddenError("Only owner can perform this action")


async def require_accepted_friendship(db: AsyncSession, user_a: int, user_b: int) -> None:
    """Accepted friendship in either direction"""
    stmt = select(Friend.id).where(
        Friend.status == FriendStatus.ACCEPTED,
        or_(
            and_(Friend.requester_id == user_a, Friend.addressee_id == user_b),
            and_(Friend.requester_id == user_b, Friend.addressee_id == user_a),
        ),
    )
    result = await db.execute(stmt)
    if result.first() is None:
        raise ForbiddenError("You can only add accepted friends")


async def require_board_exists(db: AsyncSession, board_id: int) -> Board:
    board = await db.get(Board, board_id)
    if board is None:
        raise NotFoundError(code="TB-BOARD-001")
    return board


async def resolve_board_id_for_column(db: AsyncSession, column_id: int) -> Optional[int]:
    result = await db.execute(select(BoardColumn.board_id).where(BoardColumn.id == column_id))
    return result.scalar_one_or_none()


async def resolve_board_id_for_task(db: AsyncSession, task_id: int) -> Optional[int]:
    stmt = (
        select(BoardColumn.board_id)
        .join(Task, Task.column_id == BoardColumn.id)
        .where(Task.id == task_id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def actor_identity(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "display_name": user.display_name or "",
        "email": user.email,
        "avatar_url": user.avatar_url,
    }


async def resolve_actor_identity(db: AsyncSession, user_id: int) -> Optional[Dict[str, Any]]:
    return actor_identity(await db.get(User, user_id))
