"""initial schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete POS schema:
- users: staff accounts with role, soft delete and stored refresh token
- categories, products, product_options: catalog with soft-deleted products
- stock_history: append-only stock ledger
- payment_methods, cancellation_reasons: lookup tables
- orders, order_items, order_item_options: orders with price snapshots
- activity_logs: append-only audit trail
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
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
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('username', sa.String(length=32), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='cashier'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('avatar', sa.String(length=255), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('admin', 'manager', 'cashier')", name='ck_users_role'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('username', name=op.f('uq_users_username')),
        sa.UniqueConstraint('email', name=op.f('uq_users_email')),
    )
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_categories')),
        sa.UniqueConstraint('name', name=op.f('uq_categories_name')),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('cost_price', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('stock', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_non_negative'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name=op.f('fk_products_category_id_categories')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
    )
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_deleted_at', 'products', ['deleted_at'])
    op.create_index('ix_products_category_deleted', 'products', ['category_id', 'deleted_at'])

    op.create_table(
        'product_options',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('additional_price', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('image_url', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_product_options_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_product_options')),
    )
    op.create_index('ix_product_options_product_id', 'product_options', ['product_id'])

    # ============================================================================
    # stock_history: append-only; current = previous + change enforced in-row
    # ============================================================================
    op.create_table(
        'stock_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('change_amount', sa.Integer(), nullable=False),
        sa.Column('previous_stock', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=16), nullable=False),
        sa.Column('reference_id', sa.Uuid(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('current_stock = previous_stock + change_amount',
                           name='ck_stock_history_balance'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_stock_history_product_id_products')),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name=op.f('fk_stock_history_created_by_users')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_history')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_history_product_created', 'stock_history', ['product_id', 'created_at'])

    # ============================================================================
    # lookups
    # ============================================================================
    op.create_table(
        'payment_methods',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_payment_methods')),
        sa.UniqueConstraint('name', name=op.f('uq_payment_methods_name')),
        sqlite_autoincrement=True
    )

    op.create_table(
        'cancellation_reasons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_cancellation_reasons')),
        sa.UniqueConstraint('reason', name=op.f('uq_cancellation_reasons_reason')),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # orders
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        sa.Column('gross_total', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('net_total', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('payment_method_id', sa.Integer(), nullable=True),
        sa.Column('payment_gateway_reference', sa.String(length=100), nullable=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('cash_received', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('change_due', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('cancellation_reason_id', sa.Integer(), nullable=True),
        sa.Column('cancellation_notes', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_orders_user_id_users')),
        sa.ForeignKeyConstraint(['payment_method_id'], ['payment_methods.id'], name=op.f('fk_orders_payment_method_id_payment_methods')),
        sa.ForeignKeyConstraint(['cancellation_reason_id'], ['cancellation_reasons.id'], name=op.f('fk_orders_cancellation_reason_id_cancellation_reasons')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
        sa.UniqueConstraint('payment_gateway_reference', name=op.f('uq_orders_payment_gateway_reference')),
    )
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])
    op.create_index('ix_orders_user_created', 'orders', ['user_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_at_sale', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('cost_price_at_sale', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('discount_amount', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('net_subtotal', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], name=op.f('fk_order_items_order_id_orders')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_order_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_items')),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'order_item_options',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_item_id', sa.Uuid(), nullable=False),
        sa.Column('product_option_id', sa.Uuid(), nullable=False),
        sa.Column('price_at_sale', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'], name=op.f('fk_order_item_options_order_item_id_order_items')),
        sa.ForeignKeyConstraint(['product_option_id'], ['product_options.id'], name=op.f('fk_order_item_options_product_option_id_product_options')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_order_item_options')),
    )
    op.create_index('ix_order_item_options_order_item_id', 'order_item_options', ['order_item_id'])

    # ============================================================================
    # activity_logs: append-only audit trail
    # ============================================================================
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=True),
        sa.Column('action_type', sa.String(length=32), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_activity_logs_user_id_users')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_activity_logs')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_created', 'activity_logs', ['created_at'])
    op.create_index('ix_activity_logs_entity', 'activity_logs', ['entity_type', 'entity_id'])

    # ============================================================================
    # settings: branding and receipt printer preferences
    # ============================================================================
    op.create_table(
        'settings',
        sa.Column('key', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('key', name=op.f('pk_settings'))
    )


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('settings')
    op.drop_table('activity_logs')
    op.drop_table('order_item_options')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('cancellation_reasons')
    op.drop_table('payment_methods')
    op.drop_table('stock_history')
    op.drop_table('product_options')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('users')
