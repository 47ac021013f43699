# tests/test_tasks.py — Task, assignee and comment router tests
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from models import BoardMember, MemberRole, TaskComment
from tests.conftest import get_auth_headers


async def _create_task(client, user, column_id, title="Implement login"):
    resp = await client.post(
        "/api/v1/tasks",
        json={"column_id": column_id, "title": title, "description": "Add JWT authentication"},
        headers=get_auth_headers(user),
    )
    assert resp.status_code == 201
    return resp.json()


async def _add_member(db_session, board, user):
    db_session.add(BoardMember(board_id=board.id, user_id=user.id, role=MemberRole.MEMBER))
    await db_session.commit()


@pytest.mark.asyncio
async def test_create_task_appends(client: AsyncClient, alice, columns):
    first = await _create_task(client, alice, columns[0].id, "one")
    second = await _create_task(client, alice, columns[0].id, "two")
    assert (first["position"], second["position"]) == (0, 1)
    assert first["done"] is False
    assert first["created_by_user_id"] == alice.id


@pytest.mark.asyncio
async def test_create_task_requires_membership(client: AsyncClient, carol, columns):
    resp = await client.post(
        "/api/v1/tasks", json={"column_id": columns[0].id, "title": "x"}, headers=get_auth_headers(carol),
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_update_task_partial(client: AsyncClient, alice, columns):
    task = await _create_task(client, alice, columns[0].id)

    resp = await client.patch(
        f"/api/v1/tasks/{task['id']}", json={"done": True}, headers=get_auth_headers(alice),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["done"] is True
    assert data["title"] == "Implement login"
    assert data["description"] == "Add JWT authentication"


@pytest.mark.asyncio
async def test_update_task_rejects_null_done(client: AsyncClient, alice, columns):
    task = await _create_task(client, alice, columns[0].id)
    resp = await client.patch(
        f"/api/v1/tasks/{task['id']}", json={"done": None}, headers=get_auth_headers(alice),
    )
    assert resp.status_code == 400
    assert resp.json()["kind"] == "validation"


@pytest.mark.asyncio
async def test_move_task_between_columns(client: AsyncClient, alice, columns):
    headers = get_auth_headers(alice)
    t1 = await _create_task(client, alice, columns[2].id, "T1")
    t2 = await _create_task(client, alice, columns[2].id, "T2")
    existing = await _create_task(client, alice, columns[1].id, "X")

    resp = await client.patch(
        f"/api/v1/tasks/{t1['id']}/move",
        json={"to_column_id": columns[1].id, "new_position": 0},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["column_id"] == columns[1].id
    assert resp.json()["position"] == 0

    full = (await client.get(f"/api/v1/boards/{columns[0].board_id}/full", headers=headers)).json()
    placement = {t["id"]: (t["column_id"], t["position"]) for t in full["tasks"]}
    assert placement[t2["id"]] == (columns[2].id, 0)
    assert placement[existing["id"]] == (columns[1].id, 1)


@pytest.mark.asyncio
async def test_move_task_to_other_board_is_rejected(client: AsyncClient, alice, columns):
    headers = get_auth_headers(alice)
    task = await _create_task(client, alice, columns[0].id)
    other = (await client.post("/api/v1/boards", json={"name": "Other"}, headers=headers)).json()

    resp = await client.patch(
        f"/api/v1/tasks/{task['id']}/move",
        json={"to_column_id": other["columns"][0]["id"], "new_position": 0},
        headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "TB-ORD-001"


@pytest.mark.asyncio
async def test_delete_task(client: AsyncClient, alice, columns):
    headers = get_auth_headers(alice)
    task = await _create_task(client, alice, columns[0].id)

    resp = await client.delete(f"/api/v1/tasks/{task['id']}", headers=headers)
    assert resp.status_code == 200

    resp = await client.delete(f"/api/v1/tasks/{task['id']}", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "TB-BOARD-003"


# ============================================================
# ASSIGNEES
# ============================================================

@pytest.mark.asyncio
async def test_assignees_are_filtered_to_members(client: AsyncClient, db_session, alice, bob, carol, board, columns):
    await _add_member(db_session, board, bob)
    headers = get_auth_headers(alice)
    task = await _create_task(client, alice, columns[0].id)

    resp = await client.put(
        f"/api/v1/tasks/{task['id']}/assignees",
        json={"user_ids": [bob.id, carol.id, bob.id]},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["user_ids"] == [bob.id]

    resp = await client.get(f"/api/v1/tasks/{task['id']}/assignees", headers=headers)
    assert resp.json()["user_ids"] == [bob.id]


@pytest.mark.asyncio
async def test_assignee_changes_are_logged(client: AsyncClient, db_session, alice, bob, board, columns):
    await _add_member(db_session, board, bob)
    headers = get_auth_headers(alice)
    task = await _create_task(client, alice, columns[0].id, "Pair up")

    await client.put(f"/api/v1/tasks/{task['id']}/assignees", json={"user_ids": [bob.id]}, headers=headers)
    await client.put(f"/api/v1/tasks/{task['id']}/assignees", json={"user_ids": [alice.id]}, headers=headers)

    feed = (await client.get(f"/api/v1/activity/tasks/{task['id']}", headers=headers)).json()
    summaries = [item["summary"] for item in feed["items"]]
    assert 'assigned Bob to "Pair up"' in summaries
    assert 'unassigned Bob from "Pair up"' in summaries
    assert 'assigned Alice to "Pair up"' in summaries


# ============================================================
# COMMENTS
# ============================================================

@pytest.mark.asyncio
async def test_comments_lifecycle(client: AsyncClient, alice, columns):
    headers = get_auth_headers(alice)
    task = await _create_task(client, alice, columns[0].id)

    resp = await client.post(f"/api/v1/tasks/{task['id']}/comments", json={"body": "  LGTM  "}, headers=headers)
    assert resp.status_code == 201
    comment = resp.json()
    assert comment["body"] == "LGTM"

    listed = (await client.get(f"/api/v1/tasks/{task['id']}/comments", headers=headers)).json()
    assert [c["body"] for c in listed] == ["LGTM"]
    assert listed[0]["author"]["display_name"] == "Alice"

    resp = await client.delete(f"/api/v1/tasks/{task['id']}/comments/{comment['id']}", headers=headers)
    assert resp.status_code == 200

    listed = (await client.get(f"/api/v1/tasks/{task['id']}/comments", headers=headers)).json()
    assert listed == []

    feed = (await client.get(f"/api/v1/activity/tasks/{task['id']}", headers=headers)).json()
    assert [item["action"] for item in feed["items"][:2]] == ["comment.deleted", "comment.added"]


@pytest.mark.asyncio
async def test_deleted_comment_keeps_its_row(client: AsyncClient, db_session, alice, columns):
    headers = get_auth_headers(alice)
    task = await _create_task(client, alice, columns[0].id)
    comment = (await client.post(
        f"/api/v1/tasks/{task['id']}/comments", json={"body": "on record"}, headers=headers,
    )).json()

    await client.delete(f"/api/v1/tasks/{task['id']}/comments/{comment['id']}", headers=headers)
    resp = await client.delete(f"/api/v1/tasks/{task['id']}/comments/{comment['id']}", headers=headers)
    assert resp.status_code == 404

    stored = (await db_session.execute(select(TaskComment).where(TaskComment.id == comment["id"]))).scalar_one()
    assert stored.body == "on record"
    assert stored.deleted_at is not None


@pytest.mark.asyncio
async def test_only_author_or_owner_deletes_comment(client: AsyncClient, db_session, alice, bob, carol, board, columns):
    await _add_member(db_session, board, bob)
    await _add_member(db_session, board, carol)
    task = await _create_task(client, alice, columns[0].id)

    resp = await client.post(
        f"/api/v1/tasks/{task['id']}/comments", json={"body": "mine"}, headers=get_auth_headers(bob),
    )
    comment_id = resp.json()["id"]

    resp = await client.delete(
        f"/api/v1/tasks/{task['id']}/comments/{comment_id}", headers=get_auth_headers(carol),
    )
    assert resp.status_code == 403

    resp = await client.delete(
        f"/api/v1/tasks/{task['id']}/comments/{comment_id}", headers=get_auth_headers(alice),
    )
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_comment_requires_membership(client: AsyncClient, alice, carol, columns):
    task = await _create_task(client, alice, columns[0].id)
    resp = await client.post(
        f"/api/v1/tasks/{task['id']}/comments", json={"body": "hi"}, headers=get_auth_headers(carol),
    )
    assert resp.status_code == 403
