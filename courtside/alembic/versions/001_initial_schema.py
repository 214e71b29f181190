"""001_initial_schema

Revision ID: 001
Revises:
Create Date: 2026-03-02 10:00:00.000000

Initial schema for match reservations and ratings:
- Directory tables: users, courts
- Rating tables: user_stats, elo_logs
- Reservation tables: matches, match_slots, applications, results
- Notification outbox: notifications, notification_deliveries
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


MATCH_FORMAT_VALUES = ('singles', 'doubles')


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('full_name', sa.String(), nullable=False),
        sa.Column('gender', sa.String(), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('api_token', sa.String(), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_users_api_token', 'users', ['api_token'])

    op.create_table(
        'courts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('surface_type', sa.String(50), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'user_stats',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), primary_key=True),
        sa.Column('singles_elo', sa.Float(), nullable=False, server_default='1500'),
        sa.Column('doubles_elo', sa.Float(), nullable=False, server_default='1500'),
        sa.Column('win_streak_singles', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('win_streak_doubles', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_matches', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cancelled_matches', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        'matches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('creator_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('court_id', sa.Integer(), sa.ForeignKey('courts.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('format', sa.Enum(*MATCH_FORMAT_VALUES, name='match_format'), nullable=False),
        sa.Column('skill_level_min', sa.Float(), nullable=True),
        sa.Column('skill_level_max', sa.Float(), nullable=True),
        sa.Column('gender_filter', sa.String(), nullable=True),
        sa.Column('surface_filter', sa.String(50), nullable=True),
        sa.Column('max_distance', sa.Integer(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'confirmed', 'completed', 'cancelled', name='match_status'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_matches_creator', 'matches', ['creator_user_id'])
    op.create_index('idx_matches_court', 'matches', ['court_id'])
    op.create_index('idx_matches_date', 'matches', ['date'])
    op.create_index('idx_matches_status', 'matches', ['status'])

    op.create_table(
        'match_slots',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('available', 'locked', 'confirmed', 'completed', 'cancelled', name='slot_status'),
            nullable=False,
            server_default='available',
        ),
        sa.Column('locked_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('start_time < end_time', name='ck_match_slots_window'),
    )
    op.create_index('idx_match_slots_match', 'match_slots', ['match_id'])
    op.create_index('idx_match_slots_status', 'match_slots', ['status'])
    op.create_index('idx_match_slots_locked_by', 'match_slots', ['locked_by_user_id'])

    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('slot_id', sa.Integer(), sa.ForeignKey('match_slots.id', ondelete='CASCADE'), nullable=False),
        sa.Column('applicant_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('guest_partner_name', sa.String(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'confirmed', 'rejected', 'waitlisted', 'expired', name='application_status'),
            nullable=False,
            server_default='pending',
        ),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_applications_slot', 'applications', ['slot_id'])
    op.create_index('idx_applications_applicant', 'applications', ['applicant_user_id'])
    op.create_index('idx_applications_status', 'applications', ['status'])

    op.create_table(
        'results',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('player1_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('player2_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('winner_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('guest_player1_name', sa.String(), nullable=True),
        sa.Column('guest_player2_name', sa.String(), nullable=True),
        sa.Column('score', sa.Text(), nullable=False),
        sa.Column(
            'outcome',
            sa.Enum('completed', 'won_by_default', 'opponent_retired', name='result_outcome'),
            nullable=False,
            server_default='completed',
        ),
        sa.Column('disputed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('submitted_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_results_player1', 'results', ['player1_user_id'])
    op.create_index('idx_results_player2', 'results', ['player2_user_id'])

    op.create_table(
        'elo_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=False),
        sa.Column('opponent_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        # match_format type already created with the matches table
        sa.Column(
            'match_type',
            postgresql.ENUM(*MATCH_FORMAT_VALUES, name='match_format', create_type=False),
            nullable=False,
        ),
        sa.Column('elo_before', sa.Float(), nullable=False),
        sa.Column('elo_after', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'match_id', name='uq_elo_logs_user_match'),
    )
    op.create_index('idx_elo_logs_user', 'elo_logs', ['user_id'])
    op.create_index('idx_elo_logs_match', 'elo_logs', ['match_id'])
    op.create_index('idx_elo_logs_user_type_created', 'elo_logs', ['user_id', 'match_type', 'created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('matches.id'), nullable=True),
        sa.Column('affected_user_ids', sa.Text(), nullable=False),
        sa.Column('payload', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('idx_notifications_type', 'notifications', ['type'])
    op.create_index('idx_notifications_match', 'notifications', ['match_id'])
    op.create_index('idx_notifications_created', 'notifications', ['created_at'])

    op.create_table(
        'notification_deliveries',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'notification_id',
            sa.Integer(),
            sa.ForeignKey('notifications.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('channel', sa.Enum('email', 'sms', 'push', name='notification_channel'), nullable=False),
        sa.Column('status', sa.Enum('sent', 'failed', name='delivery_status'), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            'notification_id', 'channel', 'retry_count', name='uq_notification_deliveries_attempt'
        ),
    )
    op.create_index('idx_notification_deliveries_notification', 'notification_deliveries', ['notification_id'])
    op.create_index('idx_notification_deliveries_status', 'notification_deliveries', ['status'])


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_table('notification_deliveries')
    op.drop_table('notifications')
    op.drop_table('elo_logs')
    op.drop_table('results')
    op.drop_table('applications')
    op.drop_table('match_slots')
    op.drop_table('matches')
    op.drop_table('user_stats')
    op.drop_table('courts')
    op.drop_table('users')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for enum_name in (
            'delivery_status',
            'notification_channel',
            'result_outcome',
            'application_status',
            'slot_status',
            'match_status',
            'match_format',
        ):
            op.execute(f'DROP TYPE IF EXISTS {enum_name}')
