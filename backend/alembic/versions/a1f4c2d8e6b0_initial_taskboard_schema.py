"""Initial task board schema (users, friends, boards, columns, tasks, activity log)

Revision ID: a1f4c2d8e6b0
Revises:
Create Date: 2026-10-19T09:12:44.318207
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'a1f4c2d8e6b0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVITY_ACTIONS = (
    'board.created', 'board.renamed', 'board.deleted',
    'column.created', 'column.renamed', 'column.moved', 'column.deleted',
    'task.created', 'task.updated', 'task.moved', 'task.deleted',
    'task.assignee.added', 'task.assignee.removed',
    'comment.added', 'comment.deleted',
    'member.added', 'member.removed',
    'friend.request.sent', 'friend.request.accepted', 'friend.request.rejected', 'friend.removed',
)


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(200), nullable=False, server_default=''),
        sa.Column('avatar_url', sa.String(), nullable=True),
        sa.Column('password_hash', sa.String(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_failed_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # --- friends ---
    op.create_table(
        'friends',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('requester_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('addressee_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.Enum('pending', 'accepted', 'rejected', name='friendstatus'), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_friends_requester_id', 'friends', ['requester_id'])
    op.create_index('ix_friends_addressee_id', 'friends', ['addressee_id'])
    op.create_index('ix_friends_status', 'friends', ['status'])
    op.create_index('idx_friend_pair', 'friends', ['requester_id', 'addressee_id'])

    # --- boards ---
    op.create_table(
        'boards',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('owner_id', sa.BigInteger(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_boards_owner_id', 'boards', ['owner_id'])

    # --- board_members ---
    op.create_table(
        'board_members',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('board_id', sa.BigInteger(), sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.Enum('owner', 'member', name='memberrole'), nullable=False, server_default='member'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('board_id', 'user_id', name='uq_board_member'),
    )
    op.create_index('ix_board_members_board_id', 'board_members', ['board_id'])
    op.create_index('ix_board_members_user_id', 'board_members', ['user_id'])

    # --- board_columns ---
    op.create_table(
        'board_columns',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('board_id', sa.BigInteger(), sa.ForeignKey('boards.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(120), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_board_columns_board_id', 'board_columns', ['board_id'])
    op.create_index('idx_col_board_pos', 'board_columns', ['board_id', 'position'])

    # --- tasks ---
    op.create_table(
        'tasks',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('column_id', sa.BigInteger(), sa.ForeignKey('board_columns.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('done', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.BigInteger(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tasks_column_id', 'tasks', ['column_id'])
    op.create_index('idx_task_col_pos', 'tasks', ['column_id', 'position'])

    # --- task_assignees ---
    op.create_table(
        'task_assignees',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('task_id', sa.BigInteger(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id', 'user_id', name='uq_task_assignee'),
    )
    op.create_index('ix_task_assignees_task_id', 'task_assignees', ['task_id'])
    op.create_index('ix_task_assignees_user_id', 'task_assignees', ['user_id'])

    # --- task_comments ---
    op.create_table(
        'task_comments',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('task_id', sa.BigInteger(), sa.ForeignKey('tasks.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.BigInteger(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_task_comments_task_id', 'task_comments', ['task_id'])

    # --- activity_log (append-only; no FK on board_id so entries outlive their board) ---
    op.create_table(
        'activity_log',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('actor_user_id', sa.BigInteger(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('board_id', sa.BigInteger(), nullable=True),
        sa.Column('entity_type', sa.Enum('board', 'column', 'task', 'comment', 'member', 'friend', name='entitytype'), nullable=False),
        sa.Column('entity_id', sa.BigInteger(), nullable=False),
        sa.Column('action', sa.Enum(*ACTIVITY_ACTIONS, name='activityaction'), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('ip', sa.String(60), nullable=True),
        sa.Column('user_agent', sa.String(300), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activity_log_actor_user_id', 'activity_log', ['actor_user_id'])
    op.create_index('ix_activity_log_board_id', 'activity_log', ['board_id'])
    op.create_index('ix_activity_log_action', 'activity_log', ['action'])
    op.create_index('ix_activity_log_created_at', 'activity_log', ['created_at'])
    op.create_index('idx_activity_board_time', 'activity_log', ['board_id', 'created_at'])
    op.create_index('idx_activity_entity', 'activity_log', ['entity_type', 'entity_id'])


def downgrade() -> None:
    op.drop_table('activity_log')
    op.drop_table('task_comments')
    op.drop_table('task_assignees')
    op.drop_table('tasks')
    op.drop_table('board_columns')
    op.drop_table('board_members')
    op.drop_table('boards')
    op.drop_table('friends')
    op.drop_table('users')
    op.execute("DROP TYPE IF EXISTS activityaction")
    op.execute("DROP TYPE IF EXISTS entitytype")
    op.execute("DROP TYPE IF EXISTS memberrole")
    op.execute("DROP TYPE IF EXISTS friendstatus")
