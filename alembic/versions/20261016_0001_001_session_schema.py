"""Session schema - users, activities, pomodoro sessions and scheduled notifications.

Revision ID: 001
Revises: None
Create Date: 2026-10-16

- users / activities: minimal read models used for ownership checks
- pomodoro_sessions: session aggregate with phase boundary and version
- scheduled_notifications: one pending row per session, enforced by a
  partial unique index
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PENDING_ONLY = sa.text("NOT sent AND NOT cancelled")


def upgrade() -> None:
    # Types are created once up front; the cycle phase type is shared by two tables
    session_type_enum = postgresql.ENUM('CLASSIC', 'FREESTYLE', name='sessiontype', create_type=False)
    session_status_enum = postgresql.ENUM(
        'NOT_STARTED', 'IN_PROGRESS', 'PAUSED', 'COMPLETED', 'ABANDONED',
        name='sessionstatus', create_type=False,
    )
    cycle_phase_enum = postgresql.ENUM('FOCUS', 'BREAK', 'LONG_BREAK', name='cyclephase', create_type=False)
    notification_type_enum = postgresql.ENUM('PHASE_COMPLETE', 'SESSION_COMPLETE', name='notificationtype', create_type=False)

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum in (session_type_enum, session_status_enum, cycle_phase_enum, notification_type_enum):
            postgresql.ENUM(*enum.enums, name=enum.name).create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'activities',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activities_user_id', 'activities', ['user_id'])

    op.create_table(
        'pomodoro_sessions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('activity_id', sa.Uuid(), nullable=False),
        sa.Column('session_type', session_type_enum, nullable=False),
        sa.Column('status', session_status_enum, nullable=False),
        sa.Column('current_phase', cycle_phase_enum, nullable=False),
        sa.Column('focus_minutes', sa.Integer(), nullable=False),
        sa.Column('break_minutes', sa.Integer(), nullable=False),
        sa.Column('long_break_minutes', sa.Integer(), nullable=False),
        sa.Column('long_break_interval_cycles', sa.Integer(), nullable=False),
        sa.Column('total_cycles', sa.Integer(), nullable=True),
        sa.Column('cycles_completed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('phase_ends_at', sa.DateTime(), nullable=True),
        sa.Column('remaining_seconds_at_pause', sa.Float(), nullable=True),
        sa.Column('phase_notified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('note', sa.String(length=2000), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['activity_id'], ['activities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_pomodoro_sessions_activity_id', 'pomodoro_sessions', ['activity_id'])
    op.create_index('ix_pomodoro_sessions_status', 'pomodoro_sessions', ['status'])
    op.create_index('ix_pomodoro_sessions_phase_ends_at', 'pomodoro_sessions', ['phase_ends_at'])

    op.create_table(
        'scheduled_notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('session_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('activity_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('body', sa.String(length=1000), nullable=False),
        sa.Column('notification_type', notification_type_enum, nullable=False),
        sa.Column('current_phase', cycle_phase_enum, nullable=False),
        sa.Column('scheduled_at', sa.DateTime(), nullable=False),
        sa.Column('sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancelled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.String(), nullable=True),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['pomodoro_sessions.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['activity_id'], ['activities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scheduled_notifications_session_id', 'scheduled_notifications', ['session_id'])
    op.create_index('ix_scheduled_notifications_user_id', 'scheduled_notifications', ['user_id'])
    op.create_index('ix_scheduled_notifications_scheduled_at', 'scheduled_notifications', ['scheduled_at'])
    op.create_index(
        'uq_scheduled_notifications_pending_session',
        'scheduled_notifications',
        ['session_id'],
        unique=True,
        postgresql_where=PENDING_ONLY,
        sqlite_where=PENDING_ONLY,
    )


def downgrade() -> None:
    op.drop_index('uq_scheduled_notifications_pending_session', table_name='scheduled_notifications')
    op.drop_index('ix_scheduled_notifications_scheduled_at', table_name='scheduled_notifications')
    op.drop_index('ix_scheduled_notifications_user_id', table_name='scheduled_notifications')
    op.drop_index('ix_scheduled_notifications_session_id', table_name='scheduled_notifications')
    op.drop_table('scheduled_notifications')

    op.drop_index('ix_pomodoro_sessions_phase_ends_at', table_name='pomodoro_sessions')
    op.drop_index('ix_pomodoro_sessions_status', table_name='pomodoro_sessions')
    op.drop_index('ix_pomodoro_sessions_activity_id', table_name='pomodoro_sessions')
    op.drop_table('pomodoro_sessions')

    op.drop_index('ix_activities_user_id', table_name='activities')
    op.drop_table('activities')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS notificationtype")
        op.execute("DROP TYPE IF EXISTS cyclephase")
        op.execute("DROP TYPE IF EXISTS sessionstatus")
        op.execute("DROP TYPE IF EXISTS sessiontype")
