"""baseline career coach schema

Revision ID: 5c1e7a9d2b40
Revises:
Create Date: 2026-10-17 09:12:44.118203

Production-safe migration: only creates tables that do not exist yet.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '5c1e7a9d2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def table_exists(table_name: str) -> bool:
    """Check if a table exists in the database."""
    bind = op.get_bind()
    inspector = inspect(bind)
    return table_name in inspector.get_table_names()


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade() -> None:
    if not table_exists('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('email', sa.String(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
        op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    if not table_exists('profiles'):
        op.create_table('profiles',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('desired_role', sa.String(), nullable=False),
            sa.Column('weekly_hours', sa.Integer(), nullable=False),
            sa.Column('timezone', sa.String(), nullable=True),
            sa.Column('preferences', sa.JSON(), nullable=True),
            sa.Column('name', sa.String(), nullable=True),
            sa.Column('phone', sa.String(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_profiles_id'), 'profiles', ['id'], unique=False)
        op.create_index(op.f('ix_profiles_user_id'), 'profiles', ['user_id'], unique=True)

    if not table_exists('resumes'):
        op.create_table('resumes',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('original_file', sa.String(), nullable=True),
            sa.Column('parsed_json', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_resumes_user_id'), 'resumes', ['user_id'], unique=False)

    if not table_exists('planners'):
        op.create_table('planners',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('role', sa.String(), nullable=False),
            sa.Column('start_date', sa.Date(), nullable=False),
            sa.Column('end_date', sa.Date(), nullable=False),
            sa.Column('plan_json', sa.JSON(), nullable=True),
            sa.Column('plan_source', sa.String(), nullable=False),
            sa.Column('progress_percent', sa.Float(), nullable=False),
            sa.Column('milestones_reached', sa.JSON(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_planner_user_dates', 'planners', ['user_id', 'start_date', 'end_date'], unique=False)
        op.create_index(op.f('ix_planners_id'), 'planners', ['id'], unique=False)
        op.create_index(op.f('ix_planners_user_id'), 'planners', ['user_id'], unique=False)
        op.create_index(op.f('ix_planners_created_at'), 'planners', ['created_at'], unique=False)

    if not table_exists('interviews'):
        op.create_table('interviews',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('planner_id', sa.Integer(), nullable=True),
            sa.Column('scheduled_at', sa.DateTime(), nullable=False),
            sa.Column('status', sa.String(), nullable=False),
            sa.Column('session_correlation_id', sa.String(), nullable=True),
            sa.Column('provider_assistant_id', sa.String(), nullable=True),
            sa.Column('started_at', sa.DateTime(), nullable=True),
            sa.Column('transcript', sa.Text(), nullable=True),
            sa.Column('score_json', sa.JSON(), nullable=True),
            sa.Column('recording_url', sa.String(), nullable=True),
            sa.Column('ended_reason', sa.String(), nullable=True),
            sa.Column('call_duration_seconds', sa.Float(), nullable=True),
            sa.Column('call_cost', sa.Float(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.ForeignKeyConstraint(['planner_id'], ['planners.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('idx_interview_user_planner_status', 'interviews', ['user_id', 'planner_id', 'status'], unique=False)
        op.create_index(op.f('ix_interviews_id'), 'interviews', ['id'], unique=False)
        op.create_index(op.f('ix_interviews_user_id'), 'interviews', ['user_id'], unique=False)
        op.create_index(op.f('ix_interviews_planner_id'), 'interviews', ['planner_id'], unique=False)
        op.create_index(op.f('ix_interviews_status'), 'interviews', ['status'], unique=False)
        op.create_index(op.f('ix_interviews_session_correlation_id'), 'interviews', ['session_correlation_id'], unique=True)
        op.create_index(op.f('ix_interviews_created_at'), 'interviews', ['created_at'], unique=False)

    if not table_exists('notifications'):
        op.create_table('notifications',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('user_id', sa.Integer(), nullable=False),
            sa.Column('type', sa.String(), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('dispatch_key', sa.String(), nullable=True),
            sa.Column('payload', sa.JSON(), nullable=True),
            sa.Column('sent', sa.Boolean(), nullable=False),
            sa.Column('read', sa.Boolean(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index(op.f('ix_notifications_id'), 'notifications', ['id'], unique=False)
        op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)
        op.create_index(op.f('ix_notifications_type'), 'notifications', ['type'], unique=False)
        op.create_index(op.f('ix_notifications_dispatch_key'), 'notifications', ['dispatch_key'], unique=False)


def downgrade() -> None:
    for table in ('notifications', 'interviews', 'planners', 'resumes', 'profiles', 'users'):
        if table_exists(table):
            op.drop_table(table)
