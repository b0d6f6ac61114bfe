"""create sleep pipeline tables

Revision ID: 20261017_create_sleep_tables
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_create_sleep_tables"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'sleep_sessions',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('session_date', sa.Date(), nullable=False, index=True),
        sa.Column('bedtime', sa.DateTime(), nullable=True),
        sa.Column('sleep_onset', sa.DateTime(), nullable=True),
        sa.Column('wake_time', sa.DateTime(), nullable=True),
        sa.Column('get_up_time', sa.DateTime(), nullable=True),
        sa.Column('total_sleep_duration', sa.Integer(), nullable=True),
        sa.Column('sleep_latency', sa.Integer(), nullable=True),
        sa.Column('sleep_efficiency', sa.Float(), nullable=True),
        sa.Column('wake_episodes', sa.Integer(), nullable=True, server_default='0'),
        sa.Column('quality_score', sa.Integer(), nullable=True),
        sa.Column('energy_level', sa.Integer(), nullable=True),
        sa.Column('mood_upon_waking', sa.String(50), nullable=True),
        sa.Column('caffeine_after_2pm', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('alcohol_consumed', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('exercise_day', sa.Boolean(), nullable=True, server_default=sa.false()),
        sa.Column('screen_time_before_bed', sa.Integer(), nullable=True),
        sa.Column('room_temperature', sa.String(20), nullable=True),
        sa.Column('stress_level_before_bed', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('data_source', sa.String(40), nullable=False, server_default='manual'),
        sa.Column('confidence_score', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.UniqueConstraint('user_id', 'session_date', name='uq_sleep_user_date'),
    )
    op.create_index('ix_sleep_user_date', 'sleep_sessions', ['user_id', 'session_date'])

    # Pattern, status and severity kept as String to avoid enum migration issues
    op.create_table(
        'sleep_patterns',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('pattern_type', sa.String(40), nullable=False),
        sa.Column('pattern_subtype', sa.String(20), nullable=True),
        sa.Column('detection_date', sa.Date(), nullable=False, index=True),
        sa.Column('analysis_period_start', sa.Date(), nullable=False),
        sa.Column('analysis_period_end', sa.Date(), nullable=False),
        sa.Column('confidence_score', sa.Float(), nullable=False),
        sa.Column('pattern_data', sa.JSON(), nullable=True),
        sa.Column('severity_level', sa.String(20), nullable=False),
        sa.Column('intervention_recommended', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.UniqueConstraint('user_id', 'pattern_type', 'detection_date', name='uq_sleep_pattern_user_type_date'),
    )
    op.create_index('ix_sleep_pattern_user_date', 'sleep_patterns', ['user_id', 'detection_date'])

    op.create_table(
        'cross_service_events',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('source_service', sa.String(40), nullable=False),
        sa.Column('target_service', sa.String(40), nullable=False),
        sa.Column('event_type', sa.String(80), nullable=False),
        sa.Column('severity', sa.String(20), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_cross_event_target_processed', 'cross_service_events', ['target_service', 'processed', 'created_at'])
    op.create_index('ix_cross_event_type_time', 'cross_service_events', ['event_type', 'created_at'])

    op.create_table(
        'sleep_interventions',
        sa.Column('id', sa.String(25), primary_key=True, index=True),
        sa.Column('user_id', sa.String(64), nullable=False, index=True),
        sa.Column('trigger_type', sa.String(60), nullable=False),
        sa.Column('trigger_data', sa.JSON(), nullable=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('severity_level', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('acknowledged_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('user_rating', sa.Integer(), nullable=True),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=True),
    )
    op.create_index('ix_sleep_intervention_user_status', 'sleep_interventions', ['user_id', 'status'])


def downgrade() -> None:
    op.drop_index('ix_sleep_intervention_user_status', table_name='sleep_interventions')
    op.drop_table('sleep_interventions')

    op.drop_index('ix_cross_event_type_time', table_name='cross_service_events')
    op.drop_index('ix_cross_event_target_processed', table_name='cross_service_events')
    op.drop_table('cross_service_events')

    op.drop_index('ix_sleep_pattern_user_date', table_name='sleep_patterns')
    op.drop_table('sleep_patterns')

    op.drop_index('ix_sleep_user_date', table_name='sleep_sessions')
    op.drop_table('sleep_sessions')
