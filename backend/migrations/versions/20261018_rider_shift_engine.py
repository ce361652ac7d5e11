"""rider stock and shift reconciliation schema

Revision ID: 20261018_rider_shift
Revises:
Create Date: 2026-10-18 00:00:00.000000

Creates the rider stock ledger, shift lifecycle, sales transactions and the
branch verification checklist:
- stock_movements: append-only movement log (sent/received/returned/sold/adjustment)
- inventory_balances: per (rider, product) balance, never negative, versioned
- shifts: one active shift per (rider, day), enforced by a partial unique index
- operational_expenses / daily_reports: written once by shift report submission
- report_submission_claims: in-flight marker for report submission
- sales_transactions: transactions store read by the sales aggregator
- cash_deposit_verifications: branch checklist per (rider, day)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_rider_shift'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # stock_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('expected_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verification_photo_ref', sa.String(length=512), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verified_quantity', sa.Integer(), nullable=True),
        sa.Column('verified_by_user_id', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_reference_id', 'stock_movements', ['reference_id'])
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_rider_id', 'stock_movements', ['rider_id'])
    op.create_index('ix_stock_movements_branch_id', 'stock_movements', ['branch_id'])
    op.create_index('ix_stock_movements_kind', 'stock_movements', ['kind'])
    op.create_index('ix_stock_movements_status', 'stock_movements', ['status'])
    op.create_index('ix_stock_movements_rider_status', 'stock_movements', ['rider_id', 'status'])
    op.create_index('ix_stock_movements_rider_product', 'stock_movements', ['rider_id', 'product_id'])

    # ============================================================================
    # inventory_balances: derived, versioned
    # ============================================================================
    op.create_table(
        'inventory_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_inventory_balances_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rider_id', 'product_id', name='uq_inventory_balances_rider_product'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_balances_rider_id', 'inventory_balances', ['rider_id'])
    op.create_index('ix_inventory_balances_branch_id', 'inventory_balances', ['branch_id'])
    op.create_index('ix_inventory_balances_product_id', 'inventory_balances', ['product_id'])

    # ============================================================================
    # shifts
    # ============================================================================
    op.create_table(
        'shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('shift_date', sa.Date(), nullable=False),
        sa.Column('shift_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('shift_start_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shift_end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('report_submitted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('report_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('total_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_collected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_transactions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rider_id', 'shift_date', 'shift_number', name='uq_shifts_rider_date_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_shifts_rider_id', 'shifts', ['rider_id'])
    op.create_index('ix_shifts_branch_id', 'shifts', ['branch_id'])
    op.create_index('ix_shifts_shift_date', 'shifts', ['shift_date'])
    op.create_index('ix_shifts_status', 'shifts', ['status'])
    # At most one active shift per rider per day, enforced by the database
    op.create_index(
        'uq_shifts_one_active_per_rider_day',
        'shifts',
        ['rider_id', 'shift_date'],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    # ============================================================================
    # operational_expenses / daily_reports / report_submission_claims
    # ============================================================================
    op.create_table(
        'operational_expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('line_key', sa.String(length=64), nullable=False),
        sa.Column('expense_type', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('receipt_photo_ref', sa.String(length=512), nullable=True),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('amount >= 0', name='ck_operational_expenses_amount_non_negative'),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shift_id', 'line_key', name='uq_operational_expenses_shift_line'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_operational_expenses_rider_id', 'operational_expenses', ['rider_id'])
    op.create_index('ix_operational_expenses_shift_id', 'operational_expenses', ['shift_id'])
    op.create_index('ix_operational_expenses_expense_date', 'operational_expenses', ['expense_date'])

    op.create_table(
        'daily_reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('shift_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('report_date', sa.Date(), nullable=False),
        sa.Column('total_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('qris_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transfer_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_expenses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_collected', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_transactions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deposit_proof_ref', sa.String(length=512), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verified_by_user_id', sa.Integer(), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['shift_id'], ['shifts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rider_id', 'shift_id', name='uq_daily_reports_rider_shift'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_daily_reports_rider_id', 'daily_reports', ['rider_id'])
    op.create_index('ix_daily_reports_shift_id', 'daily_reports', ['shift_id'])
    op.create_index('ix_daily_reports_branch_id', 'daily_reports', ['branch_id'])
    op.create_index('ix_daily_reports_report_date', 'daily_reports', ['report_date'])

    op.create_table(
        'report_submission_claims',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rider_id', name='uq_report_submission_claims_rider'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # sales_transactions
    # ============================================================================
    op.create_table(
        'sales_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=64), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('final_amount', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='completed'),
        sa.Column('is_voided', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_transactions_rider_id', 'sales_transactions', ['rider_id'])
    op.create_index('ix_sales_transactions_branch_id', 'sales_transactions', ['branch_id'])
    op.create_index('ix_sales_transactions_status', 'sales_transactions', ['status'])
    op.create_index('ix_sales_transactions_is_voided', 'sales_transactions', ['is_voided'])
    op.create_index('ix_sales_transactions_transaction_date', 'sales_transactions', ['transaction_date'])
    op.create_index('ix_sales_transactions_rider_date', 'sales_transactions', ['rider_id', 'transaction_date'])

    # ============================================================================
    # cash_deposit_verifications: branch checklist
    # ============================================================================
    op.create_table(
        'cash_deposit_verifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('rider_id', sa.Integer(), nullable=False),
        sa.Column('deposit_date', sa.Date(), nullable=False),
        sa.Column('verified_total_sales', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verified_cash_sales', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verified_qris_sales', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verified_transfer_sales', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verified_operational_expenses', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('verified_cash_deposit', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verified_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rider_id', 'deposit_date', name='uq_cash_deposit_verifications_rider_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_deposit_verifications_rider_id', 'cash_deposit_verifications', ['rider_id'])
    op.create_index('ix_cash_deposit_verifications_deposit_date', 'cash_deposit_verifications', ['deposit_date'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('cash_deposit_verifications')
    op.drop_table('sales_transactions')
    op.drop_table('report_submission_claims')
    op.drop_table('daily_reports')
    op.drop_table('operational_expenses')
    op.drop_index('uq_shifts_one_active_per_rider_day', table_name='shifts')
    op.drop_table('shifts')
    op.drop_table('inventory_balances')
    op.drop_table('stock_movements')
