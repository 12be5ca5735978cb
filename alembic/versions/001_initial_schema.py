"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

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
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_workspace_id', 'users', ['workspace_id'])

    op.create_table(
        'oncall_rotations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_oncall_rotations_workspace_id', 'oncall_rotations', ['workspace_id'])

    op.create_table(
        'oncall_layers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('rotation_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('handoff_interval_hours', sa.Integer(), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('restrictions', sa.JSON(), nullable=True),
        sa.Column('is_shadow', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['rotation_id'], ['oncall_rotations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_oncall_layers_rotation_order', 'oncall_layers', ['rotation_id', 'order']
    )

    op.create_table(
        'oncall_participants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('layer_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['layer_id'], ['oncall_layers.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_oncall_participants_layer_position', 'oncall_participants', ['layer_id', 'position']
    )

    op.create_table(
        'oncall_overrides',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('rotation_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['rotation_id'], ['oncall_rotations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_oncall_overrides_rotation_window',
        'oncall_overrides',
        ['rotation_id', 'starts_at', 'ends_at'],
    )

    op.create_table(
        'alert_groups',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=255), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('severity', sa.String(length=50), nullable=False),
        sa.Column('environment', sa.String(length=100), nullable=False),
        sa.Column('project', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_alert_groups_workspace_id', 'alert_groups', ['workspace_id'])
    op.create_index('ix_alert_groups_status', 'alert_groups', ['status'])

    op.create_table(
        'paging_policies',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('workspace_id', sa.String(length=255), nullable=False),
        sa.Column('rotation_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['rotation_id'], ['oncall_rotations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_paging_policies_workspace_id', 'paging_policies', ['workspace_id'])

    op.create_table(
        'paging_steps',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('policy_id', sa.String(length=36), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('channels', sa.JSON(), nullable=False),
        sa.Column('delay_seconds', sa.Integer(), nullable=False),
        sa.Column('repeat_count', sa.Integer(), nullable=False),
        sa.Column('repeat_interval_seconds', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['policy_id'], ['paging_policies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('policy_id', 'order', name='uq_paging_step_order')
    )

    op.create_table(
        'paging_attempts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('policy_id', sa.String(length=36), nullable=False),
        sa.Column('alert_group_id', sa.String(length=36), nullable=False),
        sa.Column('channel', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('target_user_id', sa.String(length=36), nullable=True),
        sa.Column('step_order', sa.Integer(), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('ack_token', sa.String(length=16), nullable=True),
        sa.Column('ack_source', sa.String(length=50), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_paging_attempts_ack_token', 'paging_attempts', ['ack_token'])
    op.create_index(
        'idx_paging_attempts_alert_group', 'paging_attempts', ['alert_group_id', 'completed_at']
    )
    op.create_index(
        'idx_paging_attempts_policy_step',
        'paging_attempts',
        ['policy_id', 'step_order', 'attempt_number'],
    )


def downgrade() -> None:
    op.drop_table('paging_attempts')
    op.drop_table('paging_steps')
    op.drop_table('paging_policies')
    op.drop_table('alert_groups')
    op.drop_table('oncall_overrides')
    op.drop_table('oncall_participants')
    op.drop_table('oncall_layers')
    op.drop_table('oncall_rotations')
    op.drop_table('users')
