"""create_projection_tables

Revision ID: 2026_10_18_120000
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '2026_10_18_120000'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'groups',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contract_address', sa.String(length=255), nullable=True),
        sa.Column('chain_id', sa.Integer(), nullable=True),
        sa.Column('current_round', sa.Integer(), nullable=False),
        sa.Column('total_rounds', sa.Integer(), nullable=False),
        sa.Column('min_members', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_groups_contract_chain', 'groups', ['contract_address', 'chain_id'])
    op.create_index('ix_groups_status', 'groups', ['status'])

    op.create_table(
        'memberships',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('group_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('wallet_address', sa.String(length=255), nullable=False),
        sa.Column('payout_order', sa.Integer(), nullable=False),
        sa.Column('has_paid_current_round', sa.Boolean(), nullable=False),
        sa.Column('has_received_payout', sa.Boolean(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('group_id', 'user_id', name='uq_memberships_group_user'),
    )
    op.create_index('ix_memberships_group_wallet', 'memberships', ['group_id', 'wallet_address'])
    op.create_index('ix_memberships_group_payout_order', 'memberships', ['group_id', 'payout_order'])

    op.create_table(
        'contributions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('group_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('wallet_address', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.String(length=255), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('transaction_hash', sa.String(length=255), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['group_id'], ['groups.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_hash', name='uq_contributions_transaction_hash'),
    )
    op.create_index('ix_contributions_group_round', 'contributions', ['group_id', 'round_number'])
    op.create_index('ix_contributions_user', 'contributions', ['user_id'])

    op.create_table(
        'on_chain_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('event_name', sa.String(length=255), nullable=False),
        sa.Column('transaction_hash', sa.String(length=255), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('contract_address', sa.String(length=255), nullable=False),
        sa.Column('chain_id', sa.Integer(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_hash', 'chain_id', name='uq_on_chain_events_tx_chain'),
    )

    op.create_table(
        'approval_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('owner_address', sa.String(length=255), nullable=False),
        sa.Column('spender_address', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.String(length=255), nullable=False),
        sa.Column('transaction_hash', sa.String(length=255), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('contract_address', sa.String(length=255), nullable=False),
        sa.Column('chain_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_hash', name='uq_approval_events_transaction_hash'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('group_id', sa.String(length=36), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_audit_logs_created_at', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_table('approval_events')
    op.drop_table('on_chain_events')
    op.drop_index('ix_contributions_user', table_name='contributions')
    op.drop_index('ix_contributions_group_round', table_name='contributions')
    op.drop_table('contributions')
    op.drop_index('ix_memberships_group_payout_order', table_name='memberships')
    op.drop_index('ix_memberships_group_wallet', table_name='memberships')
    op.drop_table('memberships')
    op.drop_index('ix_groups_status', table_name='groups')
    op.drop_index('ix_groups_contract_chain', table_name='groups')
    op.drop_table('groups')
