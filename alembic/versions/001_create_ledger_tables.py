"""Create commission ledger and settlement tables

Revision ID: 001_ledger
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers
revision = '001_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create ledger, collaborator snapshot, settlement and audit tables"""

    # ====================
    # COMMISSION LEDGER
    # ====================
    op.create_table(
        'commission_ledger_entries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('tier', sa.String(10), nullable=False),
        sa.Column('source_invoice_id', sa.String(64), nullable=False),
        sa.Column('source_ref', sa.String(64), nullable=True),
        sa.Column('source_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('beneficiary_id', sa.String(64), nullable=False),
        sa.Column('base_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('percentage_applied', sa.Numeric(5, 2), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('reference_month', sa.String(7), nullable=False),
        sa.Column('settings_snapshot', JSONB, nullable=True),
        sa.Column('status', sa.String(20), server_default='PENDING', nullable=False),
        sa.Column('status_reason', sa.Text, nullable=True),
        sa.Column('available_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_by', sa.String(64), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('source_invoice_id', 'tier', 'beneficiary_id',
                            name='uq_commission_ledger_invoice_tier_beneficiary'),
        sa.CheckConstraint('amount >= 0', name='ck_commission_ledger_amount_non_negative'),
        sa.CheckConstraint('percentage_applied >= 0 AND percentage_applied <= 100',
                           name='ck_commission_ledger_percentage_range'),
    )
    op.create_index('ix_commission_ledger_entries_tier', 'commission_ledger_entries', ['tier'])
    op.create_index('ix_commission_ledger_entries_source_invoice_id', 'commission_ledger_entries', ['source_invoice_id'])
    op.create_index('ix_commission_ledger_entries_beneficiary_id', 'commission_ledger_entries', ['beneficiary_id'])
    op.create_index('ix_commission_ledger_beneficiary_status', 'commission_ledger_entries', ['beneficiary_id', 'status'])
    op.create_index('ix_commission_ledger_reference_month', 'commission_ledger_entries', ['reference_month'])

    # ====================
    # AFFILIATE PROGRAM
    # ====================
    op.create_table(
        'affiliate_settings',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('enabled', sa.Boolean, server_default='true', nullable=False),
        sa.Column('l1_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('l2_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('lock_days', sa.Integer, server_default='30', nullable=False),
        sa.Column('min_withdrawal', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )

    op.create_table(
        'referral_edges',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', sa.String(64), unique=True, nullable=False),
        sa.Column('referrer_id', sa.String(64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_referral_edges_user_id', 'referral_edges', ['user_id'])
    op.create_index('ix_referral_edges_referrer_id', 'referral_edges', ['referrer_id'])

    op.create_table(
        'contract_commission_snapshots',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('contract_id', sa.String(64), unique=True, nullable=False),
        sa.Column('sales_agent_id', sa.String(64), nullable=False),
        sa.Column('rate_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('signed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('agent_active', sa.Boolean, server_default='true', nullable=False),
    )
    op.create_index('ix_contract_commission_snapshots_contract_id', 'contract_commission_snapshots', ['contract_id'])
    op.create_index('ix_contract_commission_snapshots_sales_agent_id', 'contract_commission_snapshots', ['sales_agent_id'])

    # ====================
    # CAMPAIGNS AND PLAYS
    # ====================
    op.create_table(
        'campaign_budgets',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('campaign_id', sa.String(64), unique=True, nullable=False),
        sa.Column('campaign_name', sa.String(200), nullable=True),
        sa.Column('advertiser_id', sa.String(64), nullable=True),
        sa.Column('budget', sa.Numeric(14, 2), nullable=False),
        sa.Column('goal_plays', sa.Integer, nullable=False),
        sa.Column('quoted_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_campaign_budgets_campaign_id', 'campaign_budgets', ['campaign_id'])

    op.create_table(
        'play_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('monitor_id', sa.String(64), nullable=False),
        sa.Column('campaign_id', sa.String(64), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_seconds', sa.Integer, server_default='0', nullable=False),
    )
    op.create_index('ix_play_logs_campaign_id', 'play_logs', ['campaign_id'])
    op.create_index('ix_play_logs_occurred_at', 'play_logs', ['occurred_at'])
    op.create_index('ix_play_logs_monitor_occurred', 'play_logs', ['monitor_id', 'occurred_at'])

    # ====================
    # SETTLEMENTS
    # ====================
    op.create_table(
        'settlements',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('target_id', sa.String(64), nullable=False),
        sa.Column('target_type', sa.String(20), nullable=False),
        sa.Column('period_start', sa.Date, nullable=False),
        sa.Column('period_end', sa.Date, nullable=False),
        sa.Column('gross_value', sa.Numeric(14, 2), server_default='0', nullable=False),
        sa.Column('share_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_plays', sa.Integer, server_default='0', nullable=False),
        sa.Column('status', sa.String(20), server_default='DRAFT', nullable=False),
        sa.Column('revision', sa.Integer, server_default='1', nullable=False),
        sa.Column('generated_by', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        sa.UniqueConstraint('target_id', 'period_start', 'period_end', name='uq_settlement_target_period'),
    )
    op.create_index('ix_settlements_target_id', 'settlements', ['target_id'])
    op.create_index('ix_settlements_target_type', 'settlements', ['target_type'])

    op.create_table(
        'settlement_details',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('settlement_id', UUID(as_uuid=True),
                  sa.ForeignKey('settlements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer, nullable=False),
        sa.Column('campaign_id', sa.String(64), nullable=True),
        sa.Column('ledger_entry_id', UUID(as_uuid=True), nullable=True),
        sa.Column('source_invoice_id', sa.String(64), nullable=True),
        sa.Column('plays', sa.Integer, server_default='0', nullable=False),
        sa.Column('value_per_play', sa.Numeric(18, 8), nullable=True),
        sa.Column('gross_value', sa.Numeric(14, 2), nullable=False),
        sa.Column('share_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
    )
    op.create_index('ix_settlement_details_settlement_id', 'settlement_details', ['settlement_id'])

    op.create_table(
        'settlement_targets',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('target_id', sa.String(64), unique=True, nullable=False),
        sa.Column('target_type', sa.String(20), nullable=False),
        sa.Column('share_percent', sa.Numeric(5, 2), server_default='100', nullable=False),
        sa.Column('monitor_ids', JSONB, server_default='[]', nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_settlement_targets_target_id', 'settlement_targets', ['target_id'])

    # ====================
    # AUDIT
    # ====================
    op.create_table(
        'audit_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('actor_id', sa.String(64), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', UUID(as_uuid=True), nullable=True),
        sa.Column('old_values', JSONB, nullable=True),
        sa.Column('new_values', JSONB, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])


def downgrade():
    """Drop all ledger tables"""
    op.drop_table('audit_logs')
    op.drop_table('settlement_targets')
    op.drop_table('settlement_details')
    op.drop_table('settlements')
    op.drop_table('play_logs')
    op.drop_table('campaign_budgets')
    op.drop_table('contract_commission_snapshots')
    op.drop_table('referral_edges')
    op.drop_table('affiliate_settings')
    op.drop_table('commission_ledger_entries')
