"""stock ledger and consignment schema

Revision ID: 0001_stock_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the complete schema:
- clients, products: master data (maintained by the external CRUD)
- stock_movements: append-only inventory ledger
- stock_balances: per-product cached SUM over stock_movements
- sales, sale_items: sale documents
- consignments, consignment_items: consignment documents (the header keeps
  the legacy single-item product_id/quantity columns, nullable)
- accounts_receivable: receivables, optionally linked to a sale
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_stock_ledger'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_clients_name', 'clients', ['name'])

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='un'),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_active_name', 'products', ['active', 'name'])

    # ============================================================================
    # stock_movements: append-only ledger (quantity > 0, sign from direction)
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('direction', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('origin_id', sa.Integer(), nullable=True),
        sa.Column('is_reversal', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('quantity > 0', name='ck_stock_movements_quantity_positive'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_id', 'stock_movements', ['product_id'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])
    op.create_index('ix_stock_movements_origin', 'stock_movements', ['category', 'origin_id'])

    op.create_table(
        'stock_balances',
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('product_id'),
    )

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_client_id', 'sales', ['client_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_date', 'sales', ['date'])
    op.create_index('ix_sales_client_status', 'sales', ['client_id', 'status'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_sale_items_quantity_non_negative'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'])

    op.create_table(
        'consignments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True, server_default='open'),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=True),
        sa.Column('closed_quantity', sa.Integer(), nullable=True),
        sa.Column('closed_total_cents', sa.Integer(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_consignments_client_id', 'consignments', ['client_id'])
    op.create_index('ix_consignments_status', 'consignments', ['status'])
    op.create_index('ix_consignments_client_status', 'consignments', ['client_id', 'status'])

    op.create_table(
        'consignment_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('consignment_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_consignment_items_quantity_positive'),
        sa.ForeignKeyConstraint(['consignment_id'], ['consignments.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_consignment_items_consignment_id', 'consignment_items', ['consignment_id'])
    op.create_index('ix_consignment_items_product_id', 'consignment_items', ['product_id'])

    op.create_table(
        'accounts_receivable',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('received_date', sa.Date(), nullable=True),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounts_receivable_client_id', 'accounts_receivable', ['client_id'])
    op.create_index('ix_accounts_receivable_status', 'accounts_receivable', ['status'])
    op.create_index('ix_accounts_receivable_sale_id', 'accounts_receivable', ['sale_id'])
    op.create_index('ix_accounts_receivable_due_status', 'accounts_receivable', ['due_date', 'status'])


def downgrade():
    op.drop_table('accounts_receivable')
    op.drop_table('consignment_items')
    op.drop_table('consignments')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('stock_balances')
    op.drop_table('stock_movements')
    op.drop_table('products')
    op.drop_table('clients')
