"""initial ledger schema

Revision ID: sl001_initial_ledger
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete shop ledger schema:
- customers, users: counterparties and staff
- purchases / purchase_items / purchase_activities: intake documents
- sales / sale_items / sale_activities: outgoing documents
- inventory_items: one row per physical device
- repairs / repair_entries: repair cases and their billable events
- payments / payment_allocations: customer-level settlements
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'sl001_initial_ledger'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    """
    Create all tables from scratch.

    WHY: Money columns are integer cents; balance identities and the
    SOLD/sale_id pairing are CHECK constraints so no writer can bypass them.
    """

    # ============================================================================
    # customers
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('phone_number', sa.String(length=30), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('passport_id', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone_number', name='uq_customers_phone_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_is_active', 'customers', ['is_active'])

    # ============================================================================
    # users: staff identity only (technicians on repairs)
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('phone_number', sa.String(length=30), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_is_active', 'users', ['is_active'])

    # ============================================================================
    # purchases
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),

        # CASH, CARD, OTHER / PAID_NOW, PAY_LATER
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_type', sa.String(length=16), nullable=False),

        sa.Column('total_price_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('paid_now_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('remaining_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('total_price_cents = paid_now_cents + remaining_cents', name='ck_purchases_balance'),
        sa.CheckConstraint('remaining_cents >= 0', name='ck_purchases_remaining_nonneg'),
        sa.CheckConstraint('paid_now_cents >= 0', name='ck_purchases_paid_nonneg'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchases', schema=None) as batch_op:
        batch_op.create_index('ix_purchases_customer_id', ['customer_id'])
        batch_op.create_index('ix_purchases_payment_type', ['payment_type'])
        batch_op.create_index('ix_purchases_is_active', ['is_active'])
        batch_op.create_index('ix_purchases_active_purchased_at', ['is_active', 'purchased_at'])

    # ============================================================================
    # sales
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_type', sa.String(length=16), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('paid_now_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('remaining_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('total_price_cents = paid_now_cents + remaining_cents', name='ck_sales_balance'),
        sa.CheckConstraint('remaining_cents >= 0', name='ck_sales_remaining_nonneg'),
        sa.CheckConstraint('paid_now_cents >= 0', name='ck_sales_paid_nonneg'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_customer_id', ['customer_id'])
        batch_op.create_index('ix_sales_payment_type', ['payment_type'])
        batch_op.create_index('ix_sales_is_active', ['is_active'])
        batch_op.create_index('ix_sales_active_sold_at', ['is_active', 'sold_at'])

    # ============================================================================
    # inventory_items: one physical device
    # ============================================================================
    # status: IN_STOCK, IN_REPAIR, READY_FOR_SALE, SOLD, RETURNED
    # SOLD iff sale_id is set; one active row per IMEI
    # ============================================================================
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('imei', sa.String(length=40), nullable=False),
        sa.Column('serial_number', sa.String(length=50), nullable=True),
        sa.Column('brand', sa.String(length=80), nullable=False),
        sa.Column('model', sa.String(length=80), nullable=False),
        sa.Column('storage', sa.String(length=40), nullable=True),
        sa.Column('color', sa.String(length=40), nullable=True),
        sa.Column('condition', sa.String(length=16), nullable=False),
        sa.Column('known_issues', sa.Text(), nullable=True),
        sa.Column('expected_sale_price_cents', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "(status = 'SOLD' AND sale_id IS NOT NULL) OR (status <> 'SOLD' AND sale_id IS NULL)",
            name='ck_inventory_items_sold_has_sale',
        ),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_items', schema=None) as batch_op:
        batch_op.create_index('ix_inventory_items_imei', ['imei'])
        batch_op.create_index('ix_inventory_items_purchase_id', ['purchase_id'])
        batch_op.create_index('ix_inventory_items_sale_id', ['sale_id'])
        batch_op.create_index('ix_inventory_items_is_active', ['is_active'])
        batch_op.create_index('ix_inventory_items_status_active', ['status', 'is_active'])
        batch_op.create_index(
            'uq_inventory_items_active_imei',
            ['imei'],
            unique=True,
            sqlite_where=sa.text('is_active = 1'),
            postgresql_where=sa.text('is_active IS TRUE'),
        )

    # ============================================================================
    # purchase_items / sale_items: document lines
    # ============================================================================
    op.create_table(
        'purchase_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('purchase_price_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_items', schema=None) as batch_op:
        batch_op.create_index('ix_purchase_items_purchase_id', ['purchase_id'])
        batch_op.create_index('ix_purchase_items_item_id', ['item_id'])
        batch_op.create_index('ix_purchase_items_is_active', ['is_active'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('sale_price_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index('ix_sale_items_sale_id', ['sale_id'])
        batch_op.create_index('ix_sale_items_item_id', ['item_id'])
        batch_op.create_index('ix_sale_items_is_active', ['is_active'])
        batch_op.create_index(
            'uq_sale_items_active_item',
            ['item_id'],
            unique=True,
            sqlite_where=sa.text('is_active = 1'),
            postgresql_where=sa.text('is_active IS TRUE'),
        )

    # ============================================================================
    # repairs / repair_entries
    # ============================================================================
    op.create_table(
        'repairs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('repaired_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),

        # PENDING, DONE
        sa.Column('status', sa.String(length=16), nullable=False),

        # Derived from entries once any exist
        sa.Column('cost_total_cents', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('parts_cost_cents', sa.Integer(), nullable=True),
        sa.Column('labor_cost_cents', sa.Integer(), nullable=True),

        sa.Column('technician_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.ForeignKeyConstraint(['item_id'], ['inventory_items.id'], ),
        sa.ForeignKeyConstraint(['technician_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('repairs', schema=None) as batch_op:
        batch_op.create_index('ix_repairs_item_id', ['item_id'])
        batch_op.create_index('ix_repairs_status', ['status'])
        batch_op.create_index('ix_repairs_technician_id', ['technician_id'])
        batch_op.create_index('ix_repairs_is_active', ['is_active'])
        batch_op.create_index('ix_repairs_item_active', ['item_id', 'is_active'])

    op.create_table(
        'repair_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('repair_id', sa.Integer(), nullable=False),
        sa.Column('entry_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('cost_total_cents', sa.Integer(), nullable=False),
        sa.Column('parts_cost_cents', sa.Integer(), nullable=True),
        sa.Column('labor_cost_cents', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('repair_entries', schema=None) as batch_op:
        batch_op.create_index('ix_repair_entries_repair_id', ['repair_id'])
        batch_op.create_index('ix_repair_entries_is_active', ['is_active'])

    # ============================================================================
    # purchase_activities / sale_activities: append-only payment history
    # ============================================================================
    # activity_type REPAIR_COST rows are informational and never count
    # toward paid_now.
    # ============================================================================
    op.create_table(
        'purchase_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('activity_type', sa.String(length=16), nullable=False, server_default='PAYMENT'),
        sa.Column('repair_id', sa.Integer(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ),
        sa.ForeignKeyConstraint(['repair_id'], ['repairs.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('purchase_activities', schema=None) as batch_op:
        batch_op.create_index('ix_purchase_activities_purchase_id', ['purchase_id'])
        batch_op.create_index('ix_purchase_activities_repair_id', ['repair_id'])
        batch_op.create_index('ix_purchase_activities_is_active', ['is_active'])

    op.create_table(
        'sale_activities',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_activities', schema=None) as batch_op:
        batch_op.create_index('ix_sale_activities_sale_id', ['sale_id'])
        batch_op.create_index('ix_sale_activities_is_active', ['is_active'])

    # ============================================================================
    # payments / payment_allocations: customer-level settlements
    # ============================================================================
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),

        # CUSTOMER_PAYS_SHOP, SHOP_PAYS_CUSTOMER
        sa.Column('direction', sa.String(length=24), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index('ix_payments_customer_id', ['customer_id'])
        batch_op.create_index('ix_payments_is_active', ['is_active'])

    op.create_table(
        'payment_allocations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.Integer(), nullable=False),
        sa.Column('target_type', sa.String(length=16), nullable=False),
        sa.Column('target_sale_id', sa.Integer(), nullable=True),
        sa.Column('target_purchase_id', sa.Integer(), nullable=True),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ),
        sa.ForeignKeyConstraint(['target_sale_id'], ['sales.id'], ),
        sa.ForeignKeyConstraint(['target_purchase_id'], ['purchases.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "(target_type = 'SALE' AND target_sale_id IS NOT NULL AND target_purchase_id IS NULL)"
            " OR (target_type = 'PURCHASE' AND target_purchase_id IS NOT NULL AND target_sale_id IS NULL)",
            name='ck_payment_allocations_single_target',
        ),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_allocations', schema=None) as batch_op:
        batch_op.create_index('ix_payment_allocations_payment_id', ['payment_id'])
        batch_op.create_index('ix_payment_allocations_target_sale_id', ['target_sale_id'])
        batch_op.create_index('ix_payment_allocations_target_purchase_id', ['target_purchase_id'])
        batch_op.create_index('ix_payment_allocations_is_active', ['is_active'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('payment_allocations')
    op.drop_table('payments')
    op.drop_table('sale_activities')
    op.drop_table('purchase_activities')
    op.drop_table('repair_entries')
    op.drop_table('repairs')
    op.drop_table('sale_items')
    op.drop_table('purchase_items')
    op.drop_table('inventory_items')
    op.drop_table('sales')
    op.drop_table('purchases')
    op.drop_table('users')
    op.drop_table('customers')
