# tests/test_members.py — Board membership router tests
import pytest
from httpx import AsyncClient

from models import FriendStatus
from tests.conftest import get_auth_headers, make_friends


@pytest.mark.asyncio
async def test_owner_adds_accepted_friend(client: AsyncClient, db_session, alice, bob, board):
    await make_friends(db_session, bob, alice)

    resp = await client.post(
        f"/api/v1/boards/{board.id}/members", json={"user_id": bob.id}, headers=get_auth_headers(alice),
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "member"

    resp = await client.get(f"/api/v1/boards/{board.id}/members", headers=get_auth_headers(bob))
    assert resp.status_code == 200
    assert [(m["user_id"], m["role"]) for m in resp.json()] == [(alice.id, "owner"), (bob.id, "member")]

    feed = (await client.get(f"/api/v1/activity/boards/{board.id}", headers=get_auth_headers(bob))).json()
    assert feed["items"][0]["summary"] == "added Bob to the board"


@pytest.mark.asyncio
async def test_non_friend_cannot_be_added(client: AsyncClient, db_session, alice, bob, carol, board):
    await make_friends(db_session, alice, bob, FriendStatus.PENDING)
    headers = get_auth_headers(alice)

    resp = await client.post(f"/api/v1/boards/{board.id}/members", json={"user_id": bob.id}, headers=headers)
    assert resp.status_code == 403
    resp = await client.post(f"/api/v1/boards/{board.id}/members", json={"user_id": carol.id}, headers=headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_unknown_user_is_not_found(client: AsyncClient, alice, board):
    resp = await client.post(
        f"/api/v1/boards/{board.id}/members", json={"user_id": 9999}, headers=get_auth_headers(alice),
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_duplicate_member_conflicts(client: AsyncClient, db_session, alice, bob, board):
    await make_friends(db_session, alice, bob)
    headers = get_auth_headers(alice)

    await client.post(f"/api/v1/boards/{board.id}/members", json={"user_id": bob.id}, headers=headers)
    resp = await client.post(f"/api/v1/boards/{board.id}/members", json={"user_id": bob.id}, headers=headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_only_owner_manages_members(client: AsyncClient, db_session, alice, bob, carol, board):
    await make_friends(db_session, alice, bob)
    await make_friends(db_session, bob, carol)
    await client.post(f"/api/v1/boards/{board.id}/members", json={"user_id": bob.id}, headers=get_auth_headers(alice))

    resp = await client.post(
        f"/api/v1/boards/{board.id}/members", json={"user_id": carol.id}, headers=get_auth_headers(bob),
    )
    assert resp.status_code == 403
    resp = await client.delete(f"/api/v1/boards/{board.id}/members/{alice.id}", headers=get_auth_headers(bob))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_remove_member(client: AsyncClient, db_session, alice, bob, board):
    await make_friends(db_session, alice, bob)
    headers = get_auth_headers(alice)
    await client.post(f"/api/v1/boards/{board.id}/members", json={"user_id": bob.id}, headers=headers)

    resp = await client.delete(f"/api/v1/boards/{board.id}/members/{bob.id}", headers=headers)
    assert resp.status_code == 200

    resp = await client.get(f"/api/v1/boards/{board.id}", headers=get_auth_headers(bob))
    assert resp.status_code == 403
    resp = await client.delete(f"/api/v1/boards/{board.id}/members/{bob.id}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_owner_cannot_remove_self(client: AsyncClient, alice, board):
    resp = await client.delete(f"/api/v1/boards/{board.id}/members/{alice.id}", headers=get_auth_headers(alice))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_members_of_missing_board(client: AsyncClient, alice):
    resp = await client.get("/api/v1/boards/9999/members", headers=get_auth_headers(alice))
    assert resp.status_code == 404
