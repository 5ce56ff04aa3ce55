"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('password_hash', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('timezone', sa.Text(), server_default='Asia/Tokyo', nullable=False),
        sa.Column('language', sa.Text(), server_default='ja', nullable=False),
        sa.Column('subscription_status', sa.Text(), server_default='free', nullable=False),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("subscription_status IN ('free', 'standard', 'premium')", name='ck_users_subscription_status'),
    )

    op.create_table(
        'goals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('deadline', sa.Date(), nullable=True),
        sa.Column('unit', sa.Text(), server_default='hours', nullable=False),
        sa.Column('target_duration', sa.Integer(), server_default='0', nullable=False),
        sa.Column('current_value', sa.Integer(), server_default='0', nullable=False),
        sa.Column('weekday_hours', sa.Float(), server_default='0', nullable=False),
        sa.Column('weekend_hours', sa.Float(), server_default='0', nullable=False),
        sa.Column('calculated_hours', sa.Integer(), server_default='0', nullable=False),
        sa.Column('dont_list', sa.JSON(), nullable=False),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'completed', 'paused')", name='ck_goals_status'),
    )
    op.create_index('ix_goals_user_id', 'goals', ['user_id'])

    op.create_table(
        'activities',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('goal_id', sa.Uuid(), sa.ForeignKey('goals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('icon', sa.Text(), nullable=True),
        sa.Column('color', sa.Text(), server_default='#6366f1', nullable=False),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_activities_user_id', 'activities', ['user_id'])

    op.create_table(
        'sessions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('activity_id', sa.Uuid(), sa.ForeignKey('activities.id'), nullable=False),
        sa.Column('goal_id', sa.Uuid(), sa.ForeignKey('goals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration', sa.Integer(), server_default='0', nullable=False),
        sa.Column('session_date', sa.Date(), nullable=False),
        sa.Column('status', sa.Text(), server_default='active', nullable=False),
        sa.Column('paused_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paused_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("status IN ('active', 'paused', 'ended')", name='ck_sessions_status'),
        sa.CheckConstraint('duration >= 0', name='ck_sessions_duration_nonnegative'),
    )
    op.create_index('ix_sessions_user_start', 'sessions', ['user_id', 'start_time'])
    op.create_index('ix_sessions_user_end_time', 'sessions', ['user_id', 'end_time'])
    op.create_index(
        'uq_sessions_one_open_per_user', 'sessions', ['user_id'], unique=True,
        postgresql_where=sa.text('end_time IS NULL'), sqlite_where=sa.text('end_time IS NULL'),
    )

    op.create_table(
        'session_reflections',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('mood_score', sa.Integer(), nullable=False),
        sa.Column('mood_notes', sa.Text(), nullable=True),
        sa.Column('additional_notes', sa.Text(), nullable=True),
        sa.Column('reflection_duration', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('session_id', name='uq_session_reflections_session'),
        sa.CheckConstraint('mood_score BETWEEN 1 AND 5', name='ck_session_reflections_mood_range'),
    )
    op.create_index('ix_session_reflections_user_id', 'session_reflections', ['user_id'])

    op.create_table(
        'session_media',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('session_id', sa.Uuid(), sa.ForeignKey('sessions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('media_type', sa.Text(), server_default='image', nullable=False),
        sa.Column('file_path', sa.Text(), nullable=False),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('file_size', sa.Integer(), nullable=False),
        sa.Column('mime_type', sa.Text(), nullable=False),
        sa.Column('caption', sa.Text(), nullable=True),
        sa.Column('is_main_image', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('public_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_session_media_session_id', 'session_media', ['session_id'])

    op.create_table(
        'ai_feedback',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('feedback_type', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('tone', sa.Text(), nullable=True),
        sa.Column('model', sa.Text(), nullable=True),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.UniqueConstraint('user_id', 'feedback_type', 'period_start', name='uq_ai_feedback_user_period'),
        sa.CheckConstraint("feedback_type IN ('weekly', 'monthly')", name='ck_ai_feedback_type'),
    )
    op.create_index('ix_ai_feedback_user_created', 'ai_feedback', ['user_id', 'created_at'])

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('stripe_customer_id', sa.Text(), nullable=True),
        sa.Column('stripe_subscription_id', sa.Text(), nullable=True),
        sa.Column('stripe_price_id', sa.Text(), nullable=True),
        sa.Column('plan_type', sa.Text(), server_default='free', nullable=False),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_at_period_end', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('canceled_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_subscriptions_stripe_customer_id', 'subscriptions', ['stripe_customer_id'])
    op.create_index('ix_subscriptions_stripe_subscription_id', 'subscriptions', ['stripe_subscription_id'])

    op.create_table(
        'stripe_events',
        sa.Column('event_id', sa.Text(), primary_key=True),
        sa.Column('event_type', sa.Text(), nullable=False),
        sa.Column('stripe_created', sa.Integer(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])


def downgrade() -> None:
    op.drop_table('stripe_events')
    op.drop_table('subscriptions')
    op.drop_table('ai_feedback')
    op.drop_table('session_media')
    op.drop_table('session_reflections')
    op.drop_table('sessions')
    op.drop_table('activities')
    op.drop_table('goals')
    op.drop_table('users')
