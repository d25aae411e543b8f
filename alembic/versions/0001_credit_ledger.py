"""credit ledger tables

Revision ID: 0001_credit_ledger
Revises:
Create Date: 2026-10-17 12:00:00.000000

Creates account, purchase, submission and ledger_entry. The unique
purchase.payment_session_ref is the payment idempotency gate.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_credit_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'account',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False, server_default='Customer'),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('free_trial_used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('total_spent', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('total_followups_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_customer_ref', sa.String(length=120), nullable=True),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('credits >= 0', name='ck_account_credits_non_negative'),
    )
    op.create_index('ix_account_email', 'account', ['email'], unique=True)

    op.create_table(
        'purchase',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('payment_intent_ref', sa.String(length=120), nullable=True),
        sa.Column('payment_session_ref', sa.String(length=120), nullable=False),
        sa.Column('package_type', sa.String(length=20), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('credits_granted', sa.Integer(), nullable=False),
        sa.Column('status', sa.Enum('completed', name='purchase_status'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['account.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_session_ref'),
    )
    op.create_index('ix_purchase_account_id', 'purchase', ['account_id'])

    op.create_table(
        'submission',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column(
            'status',
            sa.Enum('processing', 'generated', 'completed', 'email_failed', 'generation_failed', name='submission_status'),
            nullable=False,
        ),
        sa.Column('is_free_trial', sa.Boolean(), nullable=False),
        sa.Column('credits_used', sa.Integer(), nullable=False),
        sa.Column('business_type', sa.String(length=120), nullable=False),
        sa.Column('language', sa.String(length=8), nullable=False),
        sa.Column('client_name', sa.String(length=120), nullable=True),
        sa.Column('client_info', sa.Text(), nullable=False),
        sa.Column('template_type', sa.String(length=20), nullable=False),
        sa.Column('generated_artifact', sa.Text(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['account.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_submission_account_id', 'submission', ['account_id'])
    op.create_index('ix_submission_status', 'submission', ['status'])

    op.create_table(
        'ledger_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('kind', sa.Enum('purchase', 'usage', 'free_trial', 'refund', name='ledger_kind'), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['account.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('balance_after >= 0', name='ck_ledger_entry_balance_after_non_negative'),
    )
    op.create_index('ix_ledger_entry_account_id', 'ledger_entry', ['account_id'])
    op.create_index('ix_ledger_entry_kind', 'ledger_entry', ['kind'])
    op.create_index('ix_ledger_entry_reference_id', 'ledger_entry', ['reference_id'])


def downgrade() -> None:
    op.drop_index('ix_ledger_entry_reference_id', table_name='ledger_entry')
    op.drop_index('ix_ledger_entry_kind', table_name='ledger_entry')
    op.drop_index('ix_ledger_entry_account_id', table_name='ledger_entry')
    op.drop_table('ledger_entry')
    op.drop_index('ix_submission_status', table_name='submission')
    op.drop_index('ix_submission_account_id', table_name='submission')
    op.drop_table('submission')
    op.drop_index('ix_purchase_account_id', table_name='purchase')
    op.drop_table('purchase')
    op.drop_index('ix_account_email', table_name='account')
    op.drop_table('account')
    sa.Enum(name='ledger_kind').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='submission_status').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='purchase_status').drop(op.get_bind(), checkfirst=True)
