# models.py — Database models for the task board service
# - Integer primary keys everywhere
# - Dense 0..N-1 positions for columns (per board) and tasks (per column)
# - Append-only activity log (never update or delete)
# - Soft deletes only where a model declares supports_soft_delete

from datetime import datetime, timezone
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, String, DateTime, JSON, Boolean, BigInteger, Integer,
    Enum as SQLEnum, ForeignKey, Text, Index, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


def _enum(enum_cls):
    """Store enum values (e.g. "task.moved") rather than member names"""
    return SQLEnum(enum_cls, values_callable=lambda e: [m.value for m in e])


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Timezone-aware UTC; SQLite hands DateTime(timezone=True) back naive"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================
# ENUMS
# ============================================================

class MemberRole(str, PyEnum):
    OWNER = "owner"
    MEMBER = "member"


class FriendStatus(str, PyEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class EntityType(str, PyEnum):
    BOARD = "board"
    COLUMN = "column"
    TASK = "task"
    COMMENT = "comment"
    MEMBER = "member"
    FRIEND = "friend"


class ActivityAction(str, PyEnum):
    # Board events
    BOARD_CREATED = "board.created"
    BOARD_RENAMED = "board.renamed"
    BOARD_DELETED = "board.deleted"
    # Column events
    COLUMN_CREATED = "column.created"
    COLUMN_RENAMED = "column.renamed"
    COLUMN_MOVED = "column.moved"
    COLUMN_DELETED = "column.deleted"
    # Task events
    TASK_CREATED = "task.created"
    TASK_UPDATED = "task.updated"
    TASK_MOVED = "task.moved"
    TASK_DELETED = "task.deleted"
    TASK_ASSIGNEE_ADDED = "task.assignee.added"
    TASK_ASSIGNEE_REMOVED = "task.assignee.removed"
    # Comment events
    COMMENT_ADDED = "comment.added"
    COMMENT_DELETED = "comment.deleted"
    # Membership events
    MEMBER_ADDED = "member.added"
    MEMBER_REMOVED = "member.removed"
    # Friendship events
    FRIEND_REQUEST_SENT = "friend.request.sent"
    FRIEND_REQUEST_ACCEPTED = "friend.request.accepted"
    FRIEND_REQUEST_REJECTED = "friend.request.rejected"
    FRIEND_REMOVED = "friend.removed"


# ============================================================
# USERS
# ============================================================

class User(Base):
    __tablename__ = "users"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(200), nullable=False, default="")
    avatar_url = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    last_failed_login_at = Column(DateTime(timezone=True), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class Friend(Base):
    """Friendship request between two users; direction matters only while pending"""
    __tablename__ = "friends"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    requester_id = Column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    addressee_id = Column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(_enum(FriendStatus), nullable=False, default=FriendStatus.PENDING, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_friend_pair", "requester_id", "addressee_id"),
    )


# ============================================================
# KANBAN BOARD
# ============================================================

class Board(Base):
    """Kanban board; owns an ordered set of columns"""
    __tablename__ = "boards"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    name = Column(String(150), nullable=False)
    owner_id = Column(BigIntId, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class BoardMember(Base):
    __tablename__ = "board_members"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    board_id = Column(BigIntId, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(_enum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("board_id", "user_id", name="uq_board_member"),
    )


class BoardColumn(Base):
    """Column in a board; board_id never changes after creation"""
    __tablename__ = "board_columns"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    board_id = Column(BigIntId, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_col_board_pos", "board_id", "position"),
    )


class Task(Base):
    """Task card; column_id changes when the task moves between columns"""
    __tablename__ = "tasks"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    column_id = Column(BigIntId, ForeignKey("board_columns.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(DateTime(timezone=True), nullable=True)
    done = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)  # Order within column
    created_by_user_id = Column(BigIntId, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_task_col_pos", "column_id", "position"),
    )


class TaskAssignee(Base):
    __tablename__ = "task_assignees"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    task_id = Column(BigIntId, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(BigIntId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("task_id", "user_id", name="uq_task_assignee"),
    )


class TaskComment(Base):
    """Comments on a task card (tombstoned, never hard-deleted on their own)"""
    __tablename__ = "task_comments"
    supports_soft_delete = True

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    task_id = Column(BigIntId, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(BigIntId, ForeignKey("users.id"), nullable=False)
    body = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)


# ============================================================
# ACTIVITY LOG (append-only)
# ============================================================

class ActivityLog(Base):
    __tablename__ = "activity_log"
    supports_soft_delete = False

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    actor_user_id = Column(BigIntId, ForeignKey("users.id"), nullable=False, index=True)
    board_id = Column(BigIntId, nullable=True, index=True)  # No FK: entries outlive their board
    entity_type = Column(_enum(EntityType), nullable=False)
    entity_id = Column(BigIntId, nullable=False)
    action = Column(_enum(ActivityAction), nullable=False, index=True)
    meta = Column(JSON, nullable=True)
    ip = Column(String(60), nullable=True)
    user_agent = Column(String(300), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    __table_args__ = (
        Index("idx_activity_board_time", "board_id", "created_at"),
        Index("idx_activity_entity", "entity_type", "entity_id"),
    )
