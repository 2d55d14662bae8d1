"""initial coach schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'app_user',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('display_name', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), server_default='user', nullable=False),
        sa.Column('fitness_goal', sa.Text(), nullable=True),
        sa.Column('activity_level', sa.Text(), nullable=True),
        sa.Column('is_pioneer', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('referral_code', sa.Text(), nullable=True),
        sa.Column('referred_by_user_id', sa.Uuid(), sa.ForeignKey('app_user.id'), nullable=True),
        sa.Column('successful_referral_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('first_workout_logged_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('referral_reward_granted_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('email', name='uq_app_user_email'),
        sa.UniqueConstraint('referral_code', name='uq_app_user_referral_code'),
    )

    op.create_table(
        'exercise',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('app_user.id'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_exercise_user_id', 'exercise', ['user_id'])

    op.create_table(
        'workout_log',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('app_user.id'), nullable=False),
        sa.Column('exercise_id', sa.Uuid(), sa.ForeignKey('exercise.id'), nullable=False),
        sa.Column('sets', sa.JSON(), nullable=False),
        sa.Column('rpe', sa.Float(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint('rpe IS NULL OR (rpe >= 1 AND rpe <= 10)', name='ck_workout_log_rpe_range'),
    )
    op.create_index('ix_workout_log_user_created', 'workout_log', ['user_id', 'created_at'])
    op.create_index('ix_workout_log_user_exercise_created', 'workout_log', ['user_id', 'exercise_id', 'created_at'])

    op.create_table(
        'coach_conversation',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('app_user.id'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_coach_conversation_user_updated', 'coach_conversation', ['user_id', 'updated_at'])

    op.create_table(
        'coach_message',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column(
            'conversation_id',
            sa.Uuid(),
            sa.ForeignKey('coach_conversation.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('app_user.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('role', sa.Text(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('intent', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.CheckConstraint("role IN ('user', 'coach')", name='ck_coach_message_role'),
    )
    op.create_index('ix_coach_message_user_role_created', 'coach_message', ['user_id', 'role', 'created_at'])

    op.create_table(
        'coach_advice',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.Uuid(), sa.ForeignKey('app_user.id'), nullable=False),
        sa.Column('exercise_name', sa.Text(), nullable=False),
        sa.Column('advice', sa.Text(), nullable=False),
        sa.Column('context', sa.Text(), nullable=True),
        sa.Column('intent', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
    )
    op.create_index('ix_coach_advice_user_created', 'coach_advice', ['user_id', 'created_at'])
    op.create_index('ix_coach_advice_user_exercise_created', 'coach_advice', ['user_id', 'exercise_name', 'created_at'])


def downgrade() -> None:
    op.drop_table('coach_advice')
    op.drop_table('coach_message')
    op.drop_table('coach_conversation')
    op.drop_table('workout_log')
    op.drop_table('exercise')
    op.drop_table('app_user')
