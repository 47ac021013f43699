# tests/test_permissions.py — Membership, ownership and friendship checks
import pytest

from errors import ForbiddenError, NotFoundError
from models import BoardMember, FriendStatus, MemberRole
from permissions import (
    is_board_member, is_board_owner, require_board_member, require_board_owner,
    require_accepted_friendship, require_board_exists,
    resolve_board_id_for_column, resolve_board_id_for_task, resolve_actor_identity,
)
from tests.conftest import make_friends
import moves


@pytest.mark.asyncio
async def test_owner_is_member_and_owner(db_session, alice, board):
    assert await is_board_member(db_session, board.id, alice.id)
    assert await is_board_owner(db_session, board.id, alice.id)
    await require_board_member(db_session, board.id, alice.id)
    await require_board_owner(db_session, board.id, alice.id)


@pytest.mark.asyncio
async def test_plain_member_is_not_owner(db_session, bob, board):
    db_session.add(BoardMember(board_id=board.id, user_id=bob.id, role=MemberRole.MEMBER))
    await db_session.commit()

    assert await is_board_member(db_session, board.id, bob.id)
    assert not await is_board_owner(db_session, board.id, bob.id)
    with pytest.raises(ForbiddenError):
        await require_board_owner(db_session, board.id, bob.id)


@pytest.mark.asyncio
async def test_outsider_is_forbidden(db_session, carol, board):
    assert not await is_board_member(db_session, board.id, carol.id)
    with pytest.raises(ForbiddenError) as exc_info:
        await require_board_member(db_session, board.id, carol.id)
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_friendship_is_direction_agnostic(db_session, alice, bob):
    await make_friends(db_session, bob, alice)

    await require_accepted_friendship(db_session, alice.id, bob.id)
    await require_accepted_friendship(db_session, bob.id, alice.id)


@pytest.mark.asyncio
async def test_pending_friendship_does_not_count(db_session, alice, bob, carol):
    await make_friends(db_session, alice, bob, FriendStatus.PENDING)

    with pytest.raises(ForbiddenError):
        await require_accepted_friendship(db_session, alice.id, bob.id)
    with pytest.raises(ForbiddenError):
        await require_accepted_friendship(db_session, alice.id, carol.id)


@pytest.mark.asyncio
async def test_require_board_exists(db_session, board):
    assert (await require_board_exists(db_session, board.id)).name == "Sprint"
    with pytest.raises(NotFoundError) as exc_info:
        await require_board_exists(db_session, 9999)
    assert exc_info.value.code == "TB-BOARD-001"


@pytest.mark.asyncio
async def test_board_resolvers(db_session, alice, board, columns, ctx):
    task = await moves.create_task(db_session, alice.id, columns[1].id, "t", None, ctx)

    assert await resolve_board_id_for_column(db_session, columns[1].id) == board.id
    assert await resolve_board_id_for_task(db_session, task.id) == board.id
    assert await resolve_board_id_for_column(db_session, 9999) is None
    assert await resolve_board_id_for_task(db_session, 9999) is None


@pytest.mark.asyncio
async def test_resolve_actor_identity(db_session, alice):
    identity = await resolve_actor_identity(db_session, alice.id)
    assert identity == {
        "id": alice.id,
        "display_name": "Alice",
        "email": "alice@taskboard.dev",
        "avatar_url": None,
    }
    assert await resolve_actor_identity(db_session, 9999) is None
