"""Create affiliate commission tables

Revision ID: affiliate_engine_001
Revises:
Create Date: 2026-10-19

Tables created:
- stores: Store with commission maturity period
- affiliates: Affiliate profile with PIX key
- store_affiliates: Invite / membership link with default commission
- coupons: Store coupons with scope
- store_affiliate_coupons: Coupon attribution to a store affiliate
- affiliate_commission_rules: Product / category commission overrides
- orders, order_items: Local order snapshots fed by order events
- affiliate_withdrawal_requests: Withdrawal requests (one PENDING per affiliate and store)
- affiliate_earnings: One earning per (order, store affiliate)
- affiliate_earning_items: Per-item commission breakdown
- affiliate_commission_recalc_logs: Commission recalculation audit
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB


# revision identifiers, used by Alembic.
revision = 'affiliate_engine_001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Check if tables already exist (for idempotent migrations)
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    # 1. Stores
    if 'stores' not in existing_tables:
        op.create_table(
            'stores',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('affiliate_commission_maturity_days', sa.Integer(), nullable=False, server_default='7'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        print("Created table: stores")

    # 2. Affiliates
    if 'affiliates' not in existing_tables:
        op.create_table(
            'affiliates',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('email', sa.String(255), nullable=False, unique=True),
            sa.Column('phone', sa.String(20), nullable=True),
            sa.Column('pix_key', sa.String(140), nullable=True),
            sa.Column('status', sa.String(50), nullable=False, server_default='ACTIVE'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        op.create_index('ix_affiliates_email', 'affiliates', ['email'])
        op.create_index('ix_affiliates_status', 'affiliates', ['status'])
        print("Created table: affiliates")

    # 3. Store affiliates
    if 'store_affiliates' not in existing_tables:
        op.create_table(
            'store_affiliates',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('store_id', UUID(as_uuid=True), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
            sa.Column('affiliate_id', UUID(as_uuid=True), sa.ForeignKey('affiliates.id', ondelete='CASCADE'), nullable=False),
            sa.Column('status', sa.String(50), nullable=False, server_default='INVITED'),
            sa.Column('default_commission_type', sa.String(50), nullable=False, server_default='PERCENTAGE'),
            sa.Column('default_commission_value', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('commission_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('invited_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.UniqueConstraint('store_id', 'affiliate_id', name='uq_store_affiliate'),
        )
        op.create_index('ix_store_affiliates_store_id', 'store_affiliates', ['store_id'])
        op.create_index('ix_store_affiliates_affiliate_id', 'store_affiliates', ['affiliate_id'])
        op.create_index('ix_store_affiliates_status', 'store_affiliates', ['status'])
        print("Created table: store_affiliates")

    # 4. Coupons
    if 'coupons' not in existing_tables:
        op.create_table(
            'coupons',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('store_id', UUID(as_uuid=True), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
            sa.Column('code', sa.String(50), nullable=False),
            sa.Column('discount_type', sa.String(50), nullable=False, server_default='PERCENTAGE'),
            sa.Column('discount_value', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('scope', sa.String(50), nullable=False, server_default='ALL'),
            sa.Column('category_names', JSONB, nullable=True),
            sa.Column('product_ids', JSONB, nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column(
                'store_affiliate_id', UUID(as_uuid=True),
                sa.ForeignKey('store_affiliates.id', ondelete='SET NULL'), nullable=True
            ),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.UniqueConstraint('store_id', 'code', name='uq_coupon_store_code'),
        )
        op.create_index('ix_coupons_store_id', 'coupons', ['store_id'])
        op.create_index('ix_coupons_code', 'coupons', ['code'])
        print("Created table: coupons")

    # 5. Coupon attribution
    if 'store_affiliate_coupons' not in existing_tables:
        op.create_table(
            'store_affiliate_coupons',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column(
                'store_affiliate_id', UUID(as_uuid=True),
                sa.ForeignKey('store_affiliates.id', ondelete='CASCADE'), nullable=False
            ),
            sa.Column('coupon_id', UUID(as_uuid=True), sa.ForeignKey('coupons.id', ondelete='CASCADE'), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.UniqueConstraint('coupon_id', name='uq_store_affiliate_coupon'),
        )
        op.create_index(
            'ix_store_affiliate_coupons_store_affiliate_id', 'store_affiliate_coupons', ['store_affiliate_id']
        )
        print("Created table: store_affiliate_coupons")

    # 6. Commission rules
    if 'affiliate_commission_rules' not in existing_tables:
        op.create_table(
            'affiliate_commission_rules',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column(
                'store_affiliate_id', UUID(as_uuid=True),
                sa.ForeignKey('store_affiliates.id', ondelete='CASCADE'), nullable=False
            ),
            sa.Column('applies_to', sa.String(50), nullable=False),
            sa.Column('product_id', sa.String(64), nullable=True),
            sa.Column('category_name', sa.String(200), nullable=True),
            sa.Column('target_key', sa.String(200), nullable=False),
            sa.Column('commission_type', sa.String(50), nullable=False),
            sa.Column('commission_value', sa.Numeric(12, 2), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('deactivated_at', sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index(
            'ix_affiliate_commission_rules_store_affiliate_id', 'affiliate_commission_rules', ['store_affiliate_id']
        )
        # At most one active rule per target
        op.create_index(
            'uq_commission_rule_active_target',
            'affiliate_commission_rules',
            ['store_affiliate_id', 'applies_to', 'target_key'],
            unique=True,
            postgresql_where=sa.text('is_active'),
        )
        print("Created table: affiliate_commission_rules")

    # 7. Orders
    if 'orders' not in existing_tables:
        op.create_table(
            'orders',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('store_id', UUID(as_uuid=True), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
            sa.Column('order_number', sa.String(50), nullable=True),
            sa.Column('status', sa.String(50), nullable=False, server_default='PENDING'),
            sa.Column('coupon_code', sa.String(50), nullable=True),
            sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        op.create_index('ix_orders_store_id', 'orders', ['store_id'])
        op.create_index('ix_orders_store_status', 'orders', ['store_id', 'status'])
        print("Created table: orders")

    if 'order_items' not in existing_tables:
        op.create_table(
            'order_items',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('product_id', sa.String(64), nullable=False),
            sa.Column('product_name', sa.String(255), nullable=True),
            sa.Column('category', sa.String(200), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
            sa.Column('line_discount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        )
        op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
        print("Created table: order_items")

    # 8. Withdrawal requests
    if 'affiliate_withdrawal_requests' not in existing_tables:
        op.create_table(
            'affiliate_withdrawal_requests',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('affiliate_id', UUID(as_uuid=True), sa.ForeignKey('affiliates.id', ondelete='CASCADE'), nullable=False),
            sa.Column('store_id', UUID(as_uuid=True), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
            sa.Column(
                'store_affiliate_id', UUID(as_uuid=True),
                sa.ForeignKey('store_affiliates.id', ondelete='SET NULL'), nullable=True
            ),
            sa.Column('amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('pix_key', sa.String(140), nullable=False),
            sa.Column('status', sa.String(50), nullable=False, server_default='PENDING'),
            sa.Column('notes', sa.Text(), nullable=True),
            sa.Column('admin_notes', sa.Text(), nullable=True),
            sa.Column('payment_proof', sa.String(500), nullable=True),
            sa.Column('requested_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        op.create_index('ix_affiliate_withdrawal_requests_affiliate_id', 'affiliate_withdrawal_requests', ['affiliate_id'])
        op.create_index('ix_withdrawal_requests_store_status', 'affiliate_withdrawal_requests', ['store_id', 'status'])
        # One PENDING request per affiliate and store
        op.create_index(
            'uq_withdrawal_pending_per_store',
            'affiliate_withdrawal_requests',
            ['affiliate_id', 'store_id'],
            unique=True,
            postgresql_where=sa.text("status = 'PENDING'"),
        )
        print("Created table: affiliate_withdrawal_requests")

    # 9. Earnings
    if 'affiliate_earnings' not in existing_tables:
        op.create_table(
            'affiliate_earnings',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
            sa.Column('order_number', sa.String(50), nullable=True),
            sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
            sa.Column('order_status', sa.String(50), nullable=False),
            sa.Column('store_id', UUID(as_uuid=True), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False),
            sa.Column('affiliate_id', UUID(as_uuid=True), sa.ForeignKey('affiliates.id', ondelete='CASCADE'), nullable=False),
            sa.Column(
                'store_affiliate_id', UUID(as_uuid=True),
                sa.ForeignKey('store_affiliates.id', ondelete='CASCADE'), nullable=False
            ),
            sa.Column('coupon_id', UUID(as_uuid=True), sa.ForeignKey('coupons.id', ondelete='SET NULL'), nullable=True),
            sa.Column('order_total', sa.Numeric(12, 2), nullable=False),
            sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('settled_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
            sa.Column('status', sa.String(50), nullable=False, server_default='PENDING'),
            sa.Column('commission_available_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('maturity_days_applied', sa.Integer(), nullable=True),
            sa.Column('availability_estimated', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column(
                'withdrawal_request_id', UUID(as_uuid=True),
                sa.ForeignKey('affiliate_withdrawal_requests.id', ondelete='SET NULL'), nullable=True
            ),
            sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
            sa.UniqueConstraint('order_id', 'store_affiliate_id', name='uq_affiliate_earning_order_link'),
        )
        op.create_index('ix_affiliate_earnings_order_id', 'affiliate_earnings', ['order_id'])
        op.create_index('ix_affiliate_earnings_status', 'affiliate_earnings', ['status'])
        op.create_index('ix_affiliate_earnings_affiliate_store', 'affiliate_earnings', ['affiliate_id', 'store_id'])
        print("Created table: affiliate_earnings")

    if 'affiliate_earning_items' not in existing_tables:
        op.create_table(
            'affiliate_earning_items',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column(
                'earning_id', UUID(as_uuid=True),
                sa.ForeignKey('affiliate_earnings.id', ondelete='CASCADE'), nullable=False
            ),
            sa.Column('order_item_id', UUID(as_uuid=True), nullable=True),
            sa.Column('product_id', sa.String(64), nullable=False),
            sa.Column('product_name', sa.String(255), nullable=True),
            sa.Column('product_category', sa.String(200), nullable=True),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('item_subtotal', sa.Numeric(12, 2), nullable=False),
            sa.Column('item_discount', sa.Numeric(12, 2), nullable=False),
            sa.Column('item_value_with_discount', sa.Numeric(12, 2), nullable=False),
            sa.Column('is_coupon_eligible', sa.Boolean(), nullable=False),
            sa.Column('commission_type', sa.String(50), nullable=False),
            sa.Column('commission_value', sa.Numeric(12, 2), nullable=False),
            sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False),
            sa.Column('commission_source', sa.String(50), nullable=False),
        )
        op.create_index('ix_affiliate_earning_items_earning_id', 'affiliate_earning_items', ['earning_id'])
        print("Created table: affiliate_earning_items")

    # 10. Recalculation audit
    if 'affiliate_commission_recalc_logs' not in existing_tables:
        op.create_table(
            'affiliate_commission_recalc_logs',
            sa.Column('id', UUID(as_uuid=True), primary_key=True),
            sa.Column('order_id', UUID(as_uuid=True), nullable=False),
            sa.Column('order_number', sa.String(50), nullable=True),
            sa.Column(
                'earning_id', UUID(as_uuid=True),
                sa.ForeignKey('affiliate_earnings.id', ondelete='CASCADE'), nullable=False
            ),
            sa.Column('store_id', UUID(as_uuid=True), nullable=False),
            sa.Column('store_affiliate_id', UUID(as_uuid=True), nullable=False),
            sa.Column('affiliate_id', UUID(as_uuid=True), nullable=False),
            sa.Column('order_total_before', sa.Numeric(12, 2), nullable=False),
            sa.Column('commission_amount_before', sa.Numeric(12, 2), nullable=False),
            sa.Column('items_count_before', sa.Integer(), nullable=False),
            sa.Column('order_total_after', sa.Numeric(12, 2), nullable=False),
            sa.Column('commission_amount_after', sa.Numeric(12, 2), nullable=False),
            sa.Column('items_count_after', sa.Integer(), nullable=False),
            sa.Column('commission_difference', sa.Numeric(12, 2), nullable=False),
            sa.Column('reason', sa.Text(), nullable=False),
            sa.Column('recalculated_at', sa.DateTime(timezone=True), server_default=sa.text('NOW()'), nullable=False),
        )
        op.create_index('ix_affiliate_commission_recalc_logs_order_id', 'affiliate_commission_recalc_logs', ['order_id'])
        op.create_index(
            'ix_recalc_logs_store_date', 'affiliate_commission_recalc_logs', ['store_id', 'recalculated_at']
        )
        print("Created table: affiliate_commission_recalc_logs")


def downgrade():
    op.drop_table('affiliate_commission_recalc_logs')
    op.drop_table('affiliate_earning_items')
    op.drop_table('affiliate_earnings')
    op.drop_table('affiliate_withdrawal_requests')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('affiliate_commission_rules')
    op.drop_table('store_affiliate_coupons')
    op.drop_table('coupons')
    op.drop_table('store_affiliates')
    op.drop_table('affiliates')
    op.drop_table('stores')
