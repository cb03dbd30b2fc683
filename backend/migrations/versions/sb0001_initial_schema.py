"""initial stockbill schema

Revision ID: sb0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete StockBill schema:
- branches: tenant scope for every record below
- users / security_events: accounts and the denial audit trail
- document_sequences: atomic invoice numbering
- products / stock_movements: catalog and append-only stock ledger
- invoices / invoice_items / payments: billing and reconciliation

Money columns are integer cents. Constraint names follow the metadata
naming convention in stockbill/extensions.py.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'sb0001'
down_revision = None
branch_labels = None
depends_on = None


def _created_at(name='created_at'):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    # ============================================================================
    # branches
    # ============================================================================
    op.create_table(
        'branches',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('manager', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.PrimaryKeyConstraint('id', name='pk_branches'),
        sa.UniqueConstraint('name', name='uq_branches_name'),
    )
    op.create_index('ix_branches_is_active', 'branches', ['is_active'])

    # ============================================================================
    # users, security_events
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False, server_default='user'),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_users_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_branch_active', 'users', ['branch_id', 'is_active'])

    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=True),
        sa.Column('branch_id', sa.String(length=64), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        _created_at('occurred_at'),
        sa.PrimaryKeyConstraint('id', name='pk_security_events'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_success', 'security_events', ['success'])
    op.create_index('ix_security_events_occurred_at', 'security_events', ['occurred_at'])
    op.create_index('ix_security_events_user_type', 'security_events', ['user_id', 'event_type'])
    op.create_index('ix_security_events_branch_occurred', 'security_events', ['branch_id', 'occurred_at'])

    # ============================================================================
    # document_sequences: one row per document type, incremented in place
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('next_number >= 1', name='ck_document_sequences_next_number_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_document_sequences'),
        sa.UniqueConstraint('document_type', name='uq_document_sequences_document_type'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # products, stock_movements
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=128), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='pcs'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_price_cents', sa.Integer(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_stock', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        _created_at(),
        _created_at('updated_at'),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('price_cents >= 0', name='ck_products_price_non_negative'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_products_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sa.UniqueConstraint('barcode', name='uq_products_barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_branch_id', 'products', ['branch_id'])
    op.create_index('ix_products_branch_name', 'products', ['branch_id', 'name'])
    op.create_index('ix_products_branch_active', 'products', ['branch_id', 'is_active'])
    op.create_index('ix_products_category', 'products', ['category'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        _created_at(),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_movements_product_id_products'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_stock_movements_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_movements'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_branch_id', 'stock_movements', ['branch_id'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])

    # ============================================================================
    # invoices, invoice_items, payments
    # ============================================================================
    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('customer_address', sa.String(length=512), nullable=True),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        _created_at(),
        _created_at('updated_at'),
        sa.CheckConstraint('total_cents >= 0', name='ck_invoices_total_non_negative'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_invoices_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_invoices'),
        sa.UniqueConstraint('invoice_number', name='uq_invoices_invoice_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoices_branch_id', 'invoices', ['branch_id'])
    op.create_index('ix_invoices_payment_status', 'invoices', ['payment_status'])
    op.create_index('ix_invoices_branch_created', 'invoices', ['branch_id', 'created_at'])
    op.create_index('ix_invoices_branch_status', 'invoices', ['branch_id', 'payment_status'])

    op.create_table(
        'invoice_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_invoice_items_quantity_positive'),
        sa.CheckConstraint('line_total_cents >= 0', name='ck_invoice_items_line_total_non_negative'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_invoice_items_invoice_id_invoices'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_invoice_items_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_invoice_items'),
        sa.UniqueConstraint('invoice_id', 'position', name='uq_invoice_items_invoice_position'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoice_items_invoice_id', 'invoice_items', ['invoice_id'])
    op.create_index('ix_invoice_items_product_id', 'invoice_items', ['product_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('branch_id', sa.String(length=64), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_type', sa.String(length=8), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('customer', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        _created_at(),
        sa.CheckConstraint('amount_cents > 0', name='ck_payments_amount_positive'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], name='fk_payments_invoice_id_invoices'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_payments_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_payments'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payments_invoice_id', 'payments', ['invoice_id'])
    op.create_index('ix_payments_branch_id', 'payments', ['branch_id'])
    op.create_index('ix_payments_invoice_type', 'payments', ['invoice_id', 'payment_type'])
    op.create_index('ix_payments_branch_created', 'payments', ['branch_id', 'created_at'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('payments')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('stock_movements')
    op.drop_table('products')
    op.drop_table('document_sequences')
    op.drop_table('security_events')
    op.drop_table('users')
    op.drop_table('branches')
