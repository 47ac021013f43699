# activity_log.py — Append-only activity trail for boards, tasks and friendships
"""
Every mutation records one ActivityLog row through `record()`.

The insert runs inside a SAVEPOINT of the caller's transaction, so a failed
write rolls back only the log row: the mutation it describes still commits.
Failures are logged and traced, never raised.

Each action carries a typed payload (see ACTION_META); payloads are stored as
JSON and rendered back into a one-line summary by `describe()`.
"""
import os
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, List, Dict, Any, Type

from fastapi import Request
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from models import ActivityLog, ActivityAction, EntityType, User
from permissions import actor_identity
from telemetry import record_exception

logger = logging.getLogger("taskboard.activity")

DEFAULT_LIMIT = 50
MAX_LIMIT = int(os.getenv("ACTIVITY_MAX_LIMIT", "200"))
PREVIEW_LENGTH = 70


# ============================================================
# REQUEST CONTEXT
# ============================================================

@dataclass(frozen=True)
class RequestContext:
    """Origin of a mutation, as seen by the HTTP layer"""
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    request_id: Optional[str] = None

    @staticmethod
    def empty() -> "RequestContext":
        return RequestContext()


def get_request_context(request: Request) -> RequestContext:
    """FastAPI dependency"""
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else None
    if not ip and request.client:
        ip = request.client.host
    return RequestContext(
        ip=ip,
        user_agent=request.headers.get("user-agent"),
        request_id=getattr(request.state, "request_id", None),
    )


# ============================================================
# META PAYLOADS
# ============================================================

class ActivityMeta(BaseModel):
    model_config = ConfigDict(extra="forbid")


class BoardMeta(ActivityMeta):
    name: str


class RenamedMeta(ActivityMeta):
    old_name: str
    new_name: str


class ColumnMeta(ActivityMeta):
    name: str
    position: int


class ColumnMovedMeta(ActivityMeta):
    name: str
    from_position: int
    to_position: int


class ColumnDeletedMeta(ActivityMeta):
    name: str
    position: int
    task_count: int = 0


class TaskMeta(ActivityMeta):
    task_id: int
    title: str
    column_id: int
    column_name: Optional[str] = None


class TaskUpdatedMeta(TaskMeta):
    fields: List[str]
    before: Dict[str, Any]
    after: Dict[str, Any]


class TaskMovedMeta(ActivityMeta):
    task_id: int
    title: str
    from_column_id: int
    from_column_name: Optional[str] = None
    to_column_id: int
    to_column_name: Optional[str] = None
    from_position: int
    new_position: int


class AssigneeMeta(TaskMeta):
    assignee_user_id: int
    assignee_email: Optional[str] = None
    assignee_name: Optional[str] = None


class CommentMeta(TaskMeta):
    comment_id: int
    body_preview: str = ""


class MemberMeta(ActivityMeta):
    user_id: int
    email: Optional[str] = None
    display_name: Optional[str] = None


class FriendMeta(ActivityMeta):
    requester_id: int
    addressee_id: int


ACTION_META: Dict[ActivityAction, Type[ActivityMeta]] = {
    ActivityAction.BOARD_CREATED: BoardMeta,
    ActivityAction.BOARD_RENAMED: RenamedMeta,
    ActivityAction.BOARD_DELETED: BoardMeta,
    ActivityAction.COLUMN_CREATED: ColumnMeta,
    ActivityAction.COLUMN_RENAMED: RenamedMeta,
    ActivityAction.COLUMN_MOVED: ColumnMovedMeta,
    ActivityAction.COLUMN_DELETED: ColumnDeletedMeta,
    ActivityAction.TASK_CREATED: TaskMeta,
    ActivityAction.TASK_UPDATED: TaskUpdatedMeta,
    ActivityAction.TASK_MOVED: TaskMovedMeta,
    ActivityAction.TASK_DELETED: TaskMeta,
    ActivityAction.TASK_ASSIGNEE_ADDED: AssigneeMeta,
    ActivityAction.TASK_ASSIGNEE_REMOVED: AssigneeMeta,
    ActivityAction.COMMENT_ADDED: CommentMeta,
    ActivityAction.COMMENT_DELETED: CommentMeta,
    ActivityAction.MEMBER_ADDED: MemberMeta,
    ActivityAction.MEMBER_REMOVED: MemberMeta,
    ActivityAction.FRIEND_REQUEST_SENT: FriendMeta,
    ActivityAction.FRIEND_REQUEST_ACCEPTED: FriendMeta,
    ActivityAction.FRIEND_REQUEST_REJECTED: FriendMeta,
    ActivityAction.FRIEND_REMOVED: FriendMeta,
}


def body_preview(text: Optional[str], max_length: int = PREVIEW_LENGTH) -> str:
    collapsed = " ".join((text or "").split())
    if len(collapsed) > max_length:
        return collapsed[:max_length] + "…"
    return collapsed


# ============================================================
# WRITE
# ============================================================

def _build_entry(
    actor_id: int,
    board_id: Optional[int],
    entity_type: EntityType,
    entity_id: int,
    action: ActivityAction,
    meta: ActivityMeta,
    ctx: RequestContext,
) -> ActivityLog:
    expected = ACTION_META[action]
    if not isinstance(meta, expected):
        raise TypeError(f"{action.value} expects {expected.__name__}, got {type(meta).__name__}")
    return ActivityLog(
        actor_user_id=actor_id,
        board_id=board_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        meta=meta.model_dump(mode="json"),
        ip=ctx.ip[:60] if ctx.ip else None,
        user_agent=ctx.user_agent[:300] if ctx.user_agent else None,
    )


async def record(
    db: AsyncSession,
    actor_id: int,
    board_id: Optional[int],
    entity_type: EntityType,
    entity_id: int,
    action: ActivityAction,
    meta: ActivityMeta,
    ctx: RequestContext,
) -> Optional[ActivityLog]:
    """Append one entry to the caller's transaction. Never raises."""
    try:
        entry = _build_entry(actor_id, board_id, entity_type, entity_id, action, meta, ctx)
        async with db.begin_nested():
            db.add(entry)
            await db.flush()
        return entry
    except Exception as exc:
        logger.exception(
            f"Activity log write failed: action={getattr(action, 'value', action)} "
            f"board={board_id} entity={entity_id} request_id={ctx.request_id}"
        )
        record_exception(exc)
        return None


# ============================================================
# READ
# ============================================================

class ActorOut(BaseModel):
    id: int
    display_name: str
    email: str
    avatar_url: Optional[str] = None


class ActivityOut(BaseModel):
    id: int
    board_id: Optional[int] = None
    entity_type: str
    entity_id: int
    action: str
    meta: Dict[str, Any]
    summary: str
    actor: Optional[ActorOut] = None
    created_at: Optional[datetime] = None


class ActivityPage(BaseModel):
    items: List[ActivityOut]
    limit: int
    offset: int


def clamp_page(limit: Optional[int], offset: Optional[int]) -> tuple:
    limit = DEFAULT_LIMIT if limit is None else int(limit)
    offset = 0 if offset is None else int(offset)
    return max(1, min(limit, MAX_LIMIT)), max(0, offset)


def _to_out(entry: ActivityLog, user: Optional[User]) -> ActivityOut:
    meta = entry.meta or {}
    return ActivityOut(
        id=entry.id,
        board_id=entry.board_id,
        entity_type=EntityType(entry.entity_type).value,
        entity_id=entry.entity_id,
        action=ActivityAction(entry.action).value,
        meta=meta,
        summary=describe(entry.action, meta),
        actor=actor_identity(user),
        created_at=entry.created_at,
    )


async def _page(db: AsyncSession, criteria, limit, offset) -> ActivityPage:
    limit, offset = clamp_page(limit, offset)
    stmt = (
        select(ActivityLog, User)
        .outerjoin(User, User.id == ActivityLog.actor_user_id)
        .where(criteria)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    items = [_to_out(entry, user) for entry, user in result.all()]
    return ActivityPage(items=items, limit=limit, offset=offset)


async def list_for_board(
    db: AsyncSession, board_id: int, limit: Optional[int] = DEFAULT_LIMIT, offset: Optional[int] = 0
) -> ActivityPage:
    """Newest first. Authorization is the caller's job."""
    return await _page(db, ActivityLog.board_id == board_id, limit, offset)


async def list_for_task(
    db: AsyncSession, task_id: int, limit: Optional[int] = DEFAULT_LIMIT, offset: Optional[int] = 0
) -> ActivityPage:
    """Entries about the task itself, plus entries whose payload references it (comments)."""
    criteria = or_(
        and_(ActivityLog.entity_type == EntityType.TASK, ActivityLog.entity_id == task_id),
        ActivityLog.meta["task_id"].as_integer() == task_id,
    )
    return await _page(db, criteria, limit, offset)


# ============================================================
# SUMMARIES
# ============================================================

def _person(name: Optional[str], email: Optional[str], user_id: Any) -> str:
    return name or email or f"User #{user_id}"


def describe(action, meta: Optional[Dict[str, Any]]) -> str:
    """One-line human readable text for an entry, built from its payload alone."""
    m = meta or {}
    action = ActivityAction(action)
    title = m.get("title", "")
    A = ActivityAction

    if action == A.BOARD_CREATED:
        return f'created board "{m.get("name", "")}"'
    if action == A.BOARD_DELETED:
        return f'deleted board "{m.get("name", "")}"'
    if action in (A.BOARD_RENAMED, A.COLUMN_RENAMED):
        kind = "board" if action == A.BOARD_RENAMED else "column"
        return f'renamed {kind} "{m.get("old_name", "")}" to "{m.get("new_name", "")}"'
    if action == A.COLUMN_CREATED:
        return f'added column "{m.get("name", "")}"'
    if action == A.COLUMN_MOVED:
        return f'moved column "{m.get("name", "")}" from position {m.get("from_position")} to {m.get("to_position")}'
    if action == A.COLUMN_DELETED:
        return f'deleted column "{m.get("name", "")}"'
    if action == A.TASK_CREATED:
        text = f'created task "{title}"'
        return f"{text} in {m['column_name']}" if m.get("column_name") else text
    if action == A.TASK_UPDATED:
        fields = m.get("fields") or []
        text = f'updated task "{title}"'
        return f"{text} (changed: {', '.join(fields)})" if fields else text
    if action == A.TASK_MOVED:
        return f'moved task "{title}" from {m.get("from_column_name") or "?"} to {m.get("to_column_name") or "?"}'
    if action == A.TASK_DELETED:
        return f'deleted task "{title}"'
    if action in (A.TASK_ASSIGNEE_ADDED, A.TASK_ASSIGNEE_REMOVED):
        who = _person(m.get("assignee_name"), m.get("assignee_email"), m.get("assignee_user_id"))
        if action == A.TASK_ASSIGNEE_ADDED:
            return f'assigned {who} to "{title}"'
        return f'unassigned {who} from "{title}"'
    if action == A.COMMENT_ADDED:
        text = f'commented on "{title}"'
        return f'{text}: "{m["body_preview"]}"' if m.get("body_preview") else text
    if action == A.COMMENT_DELETED:
        return f'deleted a comment on "{title}"'
    if action == A.MEMBER_ADDED:
        return f"added {_person(m.get('display_name'), m.get('email'), m.get('user_id'))} to the board"
    if action == A.MEMBER_REMOVED:
        return f"removed {_person(m.get('display_name'), m.get('email'), m.get('user_id'))} from the board"
    if action == A.FRIEND_REQUEST_SENT:
        return f"sent a friend request to User #{m.get('addressee_id')}"
    if action == A.FRIEND_REQUEST_ACCEPTED:
        return f"accepted a friend request from User #{m.get('requester_id')}"
    if action == A.FRIEND_REQUEST_REJECTED:
        return f"rejected a friend request from User #{m.get('requester_id')}"
    if action == A.FRIEND_REMOVED:
        return "removed a friend"
    return action.value
