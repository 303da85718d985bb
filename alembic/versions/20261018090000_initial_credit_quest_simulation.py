"""initial credit, quest and simulation schema

Revision ID: 20261018090000
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018090000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CREDIT_TYPES = (
    'SIGNUP_BONUS', 'REFERRAL_BONUS', 'SURVEY_COMPLETION', 'PROMOTION', 'EARNED',
    'SIMULATION_BONUS', 'PURCHASE', 'REFUND', 'ANALYSIS_USAGE', 'SURVEY_USAGE',
    'SIMULATION_USAGE',
)


def upgrade() -> None:
    """Create users, ledger, quest, simulation and roadmap tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('subscription_type', sa.String(), nullable=False, server_default='free'),
        sa.Column('referred_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('credits >= 0', name='ck_users_credits_non_negative'),
        sa.CheckConstraint('paid_credits >= 0', name='ck_users_paid_credits_non_negative'),
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_activity_logs_id'), 'activity_logs', ['id'], unique=False)
    op.create_index(op.f('ix_activity_logs_user_id'), 'activity_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_activity_logs_action'), 'activity_logs', ['action'], unique=False)

    op.create_table(
        'career_surveys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_career_surveys_id'), 'career_surveys', ['id'], unique=False)
    op.create_index(op.f('ix_career_surveys_user_id'), 'career_surveys', ['user_id'], unique=False)

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.Enum(*CREDIT_TYPES, name='credit_transaction_type'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('related_id', sa.String(length=64), nullable=True),
        sa.Column('related_type', sa.String(length=64), nullable=True),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_credit_transactions_id'), 'credit_transactions', ['id'], unique=False)
    op.create_index(op.f('ix_credit_transactions_user_id'), 'credit_transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_credit_transactions_created_at'), 'credit_transactions', ['created_at'], unique=False)

    op.create_table(
        'quests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', sa.Enum('LOGIN', 'SIMULATION', 'MILESTONE', 'EXPLORATION', 'STREAK', 'SURVEY', name='quest_type'), nullable=False),
        sa.Column('category', sa.Enum('DAILY', 'ONBOARDING', name='quest_category'), nullable=False),
        sa.Column('difficulty', sa.Enum('EASY', 'NORMAL', 'HARD', name='quest_difficulty'), nullable=False),
        sa.Column('target_value', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('requirements', sa.JSON(), nullable=True),
        sa.Column('reward_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reward_xp', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reward_badge', sa.String(length=64), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', 'type', name='uq_quest_name_type'),
    )
    op.create_index(op.f('ix_quests_id'), 'quests', ['id'], unique=False)

    op.create_table(
        'user_quests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('quest_id', sa.Integer(), sa.ForeignKey('quests.id'), nullable=False),
        sa.Column('assigned_date', sa.Date(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('progress', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.Enum('ASSIGNED', 'IN_PROGRESS', 'COMPLETED', 'EXPIRED', name='quest_status'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'quest_id', 'assigned_date', name='uq_user_quest_daily'),
    )
    op.create_index(op.f('ix_user_quests_id'), 'user_quests', ['id'], unique=False)
    op.create_index(op.f('ix_user_quests_user_id'), 'user_quests', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_quests_assigned_date'), 'user_quests', ['assigned_date'], unique=False)

    op.create_table(
        'simulation_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('simulation_id', sa.String(length=128), nullable=False),
        sa.Column('status', sa.Enum('IN_PROGRESS', 'PAUSED', 'COMPLETED', name='simulation_status'), nullable=False),
        sa.Column('active_key', sa.Integer(), nullable=True),
        sa.Column('current_chapter', sa.String(length=64), nullable=False),
        sa.Column('current_quest', sa.String(length=64), nullable=False),
        sa.Column('scenario_data', sa.JSON(), nullable=False),
        sa.Column('current_state', sa.JSON(), nullable=False),
        sa.Column('total_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skill_levels', sa.JSON(), nullable=False),
        sa.Column('badges', sa.JSON(), nullable=False),
        sa.Column('progress', sa.Float(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_play_time', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'simulation_id', 'active_key', name='uq_simulation_session_active'),
    )
    op.create_index(op.f('ix_simulation_sessions_id'), 'simulation_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_simulation_sessions_user_id'), 'simulation_sessions', ['user_id'], unique=False)
    op.create_index(op.f('ix_simulation_sessions_simulation_id'), 'simulation_sessions', ['simulation_id'], unique=False)

    op.create_table(
        'simulation_interactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('simulation_sessions.id'), nullable=False),
        sa.Column('quest_id', sa.String(length=64), nullable=False),
        sa.Column('interaction_type', sa.String(length=32), nullable=False),
        sa.Column('user_input', sa.JSON(), nullable=False),
        sa.Column('ai_response', sa.JSON(), nullable=False),
        sa.Column('score_gained', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skills_gained', sa.JSON(), nullable=False),
        sa.Column('response_time_ms', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_simulation_interactions_id'), 'simulation_interactions', ['id'], unique=False)
    op.create_index(op.f('ix_simulation_interactions_session_id'), 'simulation_interactions', ['session_id'], unique=False)

    op.create_table(
        'final_simulation_results',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), sa.ForeignKey('simulation_sessions.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('simulation_id', sa.String(length=128), nullable=False),
        sa.Column('final_score', sa.Integer(), nullable=False),
        sa.Column('max_score', sa.Integer(), nullable=False),
        sa.Column('grade', sa.String(length=4), nullable=False),
        sa.Column('percentile', sa.Float(), nullable=False),
        sa.Column('average_score', sa.Float(), nullable=False),
        sa.Column('category_scores', sa.JSON(), nullable=False),
        sa.Column('skill_assessment', sa.JSON(), nullable=False),
        sa.Column('strengths_weaknesses', sa.JSON(), nullable=False),
        sa.Column('personalized_feedback', sa.JSON(), nullable=False),
        sa.Column('next_steps', sa.JSON(), nullable=False),
        sa.Column('credits_used', sa.Integer(), nullable=False),
        sa.Column('bonus_credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id'),
    )
    op.create_index(op.f('ix_final_simulation_results_id'), 'final_simulation_results', ['id'], unique=False)
    op.create_index(op.f('ix_final_simulation_results_user_id'), 'final_simulation_results', ['user_id'], unique=False)
    op.create_index(op.f('ix_final_simulation_results_simulation_id'), 'final_simulation_results', ['simulation_id'], unique=False)

    op.create_table(
        'user_roadmaps',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('progress', sa.Float(), nullable=False, server_default='0'),
        sa.Column('current_phase_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_user_roadmaps_id'), 'user_roadmaps', ['id'], unique=False)
    op.create_index(op.f('ix_user_roadmaps_user_id'), 'user_roadmaps', ['user_id'], unique=False)

    op.create_table(
        'roadmap_phases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('roadmap_id', sa.Integer(), sa.ForeignKey('user_roadmaps.id'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_roadmap_phases_id'), 'roadmap_phases', ['id'], unique=False)
    op.create_index(op.f('ix_roadmap_phases_roadmap_id'), 'roadmap_phases', ['roadmap_id'], unique=False)

    op.create_table(
        'roadmap_milestones',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('roadmap_id', sa.Integer(), sa.ForeignKey('user_roadmaps.id'), nullable=False),
        sa.Column('phase_id', sa.Integer(), sa.ForeignKey('roadmap_phases.id'), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_roadmap_milestones_id'), 'roadmap_milestones', ['id'], unique=False)
    op.create_index(op.f('ix_roadmap_milestones_roadmap_id'), 'roadmap_milestones', ['roadmap_id'], unique=False)
    op.create_index(op.f('ix_roadmap_milestones_phase_id'), 'roadmap_milestones', ['phase_id'], unique=False)


def downgrade() -> None:
    """Drop everything created in upgrade()."""
    for table in (
        'roadmap_milestones',
        'roadmap_phases',
        'user_roadmaps',
        'final_simulation_results',
        'simulation_interactions',
        'simulation_sessions',
        'user_quests',
        'quests',
        'credit_transactions',
        'career_surveys',
        'activity_logs',
        'users',
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum_name in ('credit_transaction_type', 'quest_type', 'quest_category', 'quest_difficulty', 'quest_status', 'simulation_status'):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
