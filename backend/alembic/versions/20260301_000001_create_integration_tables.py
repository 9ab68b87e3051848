"""Create integration lifecycle tables

Revision ID: 20260301_000001
Revises:
Create Date: 2026-03-01

WHAT:
    Creates the credential store, the per-platform daily metric tables, the
    webhook-fed WooCommerce / ad entity tables and the webhook log.

WHY:
    Each metric table carries a (agency_id, account_id, entity_id, date)
    unique constraint; sync jobs rely on it for INSERT ... ON CONFLICT upserts.

REFERENCES:
    - metrionix/models.py
    - metrionix/services/sync_service.py:upsert_metric_rows
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20260301_000001'
down_revision = None
branch_labels = None
depends_on = None


PLATFORMS = ('meta_ads', 'google_ads', 'ga4', 'search_console', 'woocommerce')

# Created once in upgrade(); referenced by several tables
platform_enum = postgresql.ENUM(*PLATFORMS, name='platformenum', create_type=False)
status_enum = postgresql.ENUM('connected', 'error', name='integrationstatusenum', create_type=False)
sync_status_enum = postgresql.ENUM('idle', 'syncing', name='syncstatusenum', create_type=False)
level_enum = postgresql.ENUM('campaign', 'adset', 'ad', name='levelenum', create_type=False)

METRIC_TABLES = {
    'meta_ads_insights_daily': [
        sa.Column('campaign_id', sa.String, nullable=True),
        sa.Column('adset_id', sa.String, nullable=True),
        sa.Column('impressions', sa.Integer, nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer, nullable=False, server_default='0'),
        sa.Column('spend', sa.Float, nullable=False, server_default='0'),
        sa.Column('conversions', sa.Float, nullable=False, server_default='0'),
        sa.Column('revenue', sa.Float, nullable=False, server_default='0'),
        sa.Column('ctr', sa.Float, nullable=False, server_default='0'),
        sa.Column('cpc', sa.Float, nullable=False, server_default='0'),
        sa.Column('cpa', sa.Float, nullable=False, server_default='0'),
        sa.Column('roas', sa.Float, nullable=False, server_default='0'),
    ],
    'google_ads_campaigns_daily': [
        sa.Column('campaign_name', sa.String, nullable=True),
        sa.Column('status', sa.String, nullable=True),
        sa.Column('impressions', sa.Integer, nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer, nullable=False, server_default='0'),
        sa.Column('spend', sa.Float, nullable=False, server_default='0'),
        sa.Column('conversions', sa.Float, nullable=False, server_default='0'),
        sa.Column('revenue', sa.Float, nullable=False, server_default='0'),
        sa.Column('ctr', sa.Float, nullable=False, server_default='0'),
        sa.Column('cpc', sa.Float, nullable=False, server_default='0'),
        sa.Column('cpa', sa.Float, nullable=False, server_default='0'),
        sa.Column('roas', sa.Float, nullable=False, server_default='0'),
    ],
    'ga4_daily': [
        sa.Column('sessions', sa.Integer, nullable=False, server_default='0'),
        sa.Column('users', sa.Integer, nullable=False, server_default='0'),
        sa.Column('new_users', sa.Integer, nullable=False, server_default='0'),
        sa.Column('pageviews', sa.Integer, nullable=False, server_default='0'),
        sa.Column('conversions', sa.Float, nullable=False, server_default='0'),
        sa.Column('revenue', sa.Float, nullable=False, server_default='0'),
        sa.Column('bounce_rate', sa.Float, nullable=False, server_default='0'),
        sa.Column('conversion_rate', sa.Float, nullable=False, server_default='0'),
    ],
    'search_console_pages_daily': [
        sa.Column('clicks', sa.Integer, nullable=False, server_default='0'),
        sa.Column('impressions', sa.Integer, nullable=False, server_default='0'),
        sa.Column('ctr', sa.Float, nullable=False, server_default='0'),
        sa.Column('position', sa.Float, nullable=False, server_default='0'),
    ],
    'woocommerce_sales_daily': [
        sa.Column('orders', sa.Integer, nullable=False, server_default='0'),
        sa.Column('items', sa.Integer, nullable=False, server_default='0'),
        sa.Column('revenue', sa.Float, nullable=False, server_default='0'),
        sa.Column('average_order_value', sa.Float, nullable=False, server_default='0'),
    ],
}


def _uuid_pk():
    return sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True,
                     server_default=sa.text('gen_random_uuid()'))


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Enum types
    # =========================================================================
    bind = op.get_bind()
    for enum_type in (platform_enum, status_enum, sync_status_enum, level_enum):
        enum_type.create(bind, checkfirst=True)

    # =========================================================================
    # STEP 2: Credential store
    # =========================================================================
    op.create_table(
        'integrations',
        _uuid_pk(),
        sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('account_id', sa.String, nullable=False),
        sa.Column('account_name', sa.String, nullable=True),
        sa.Column('credentials_enc', sa.Text, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('status', status_enum, nullable=False, server_default='connected'),
        sa.Column('last_sync', sa.DateTime, nullable=True),
        sa.Column('sync_status', sync_status_enum, nullable=False, server_default='idle'),
        sa.Column('sync_started_at', sa.DateTime, nullable=True),
        sa.Column('last_sync_error', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
        sa.UniqueConstraint('agency_id', 'platform', 'account_id', name='uq_integration_agency_platform_account'),
    )

    # =========================================================================
    # STEP 3: Daily metric tables (upsert key = agency, account, entity, date)
    # =========================================================================
    for table, measures in METRIC_TABLES.items():
        op.create_table(
            table,
            _uuid_pk(),
            sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
            sa.Column('account_id', sa.String, nullable=False),
            sa.Column('entity_id', sa.String, nullable=False),
            sa.Column('date', sa.Date, nullable=False),
            sa.Column('synced_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
            *measures,
            sa.UniqueConstraint('agency_id', 'account_id', 'entity_id', 'date', name=f'uq_{table}_key'),
        )

    # =========================================================================
    # STEP 4: Webhook-fed domain tables
    # =========================================================================
    op.create_table(
        'woocommerce_orders',
        _uuid_pk(),
        sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('account_id', sa.String, nullable=False),
        sa.Column('order_id', sa.String, nullable=False),
        sa.Column('order_number', sa.String, nullable=True),
        sa.Column('status', sa.String, nullable=True),
        sa.Column('currency', sa.String, nullable=True),
        sa.Column('total', sa.Numeric(18, 4), nullable=True),
        sa.Column('customer_id', sa.String, nullable=True),
        sa.Column('customer_email', sa.String, nullable=True),
        sa.Column('date_created', sa.DateTime, nullable=True),
        sa.Column('order_data', sa.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
        sa.UniqueConstraint('agency_id', 'account_id', 'order_id', name='uq_woocommerce_order'),
    )

    op.create_table(
        'woocommerce_order_items',
        _uuid_pk(),
        sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('account_id', sa.String, nullable=False),
        sa.Column('order_id', sa.String, nullable=False, index=True),
        sa.Column('product_id', sa.String, nullable=True),
        sa.Column('variation_id', sa.String, nullable=True),
        sa.Column('name', sa.String, nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(18, 4), nullable=True),
        sa.Column('total', sa.Numeric(18, 4), nullable=True),
    )

    op.create_table(
        'woocommerce_products',
        _uuid_pk(),
        sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('account_id', sa.String, nullable=False),
        sa.Column('product_id', sa.String, nullable=False),
        sa.Column('name', sa.String, nullable=True),
        sa.Column('sku', sa.String, nullable=True),
        sa.Column('price', sa.Numeric(18, 4), nullable=True),
        sa.Column('regular_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('sale_price', sa.Numeric(18, 4), nullable=True),
        sa.Column('status', sa.String, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
        sa.UniqueConstraint('agency_id', 'account_id', 'product_id', name='uq_woocommerce_product'),
    )

    op.create_table(
        'ad_entities',
        _uuid_pk(),
        sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('account_id', sa.String, nullable=False),
        sa.Column('level', level_enum, nullable=False),
        sa.Column('external_id', sa.String, nullable=False),
        sa.Column('parent_external_id', sa.String, nullable=True),
        sa.Column('name', sa.String, nullable=True),
        sa.Column('status', sa.String, nullable=True),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
        sa.UniqueConstraint('agency_id', 'platform', 'account_id', 'external_id', name='uq_ad_entity'),
    )

    # =========================================================================
    # STEP 5: Webhook log (append-only)
    # =========================================================================
    op.create_table(
        'webhook_logs',
        _uuid_pk(),
        sa.Column('agency_id', postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column('platform', platform_enum, nullable=False),
        sa.Column('account_id', sa.String, nullable=True),
        sa.Column('event_type', sa.String, nullable=False),
        sa.Column('payload', sa.JSON, nullable=False),
        sa.Column('received_at', sa.DateTime, nullable=False, server_default=sa.text("(NOW() AT TIME ZONE 'UTC')")),
    )
    op.create_index('idx_webhook_logs_platform_received', 'webhook_logs', ['platform', 'received_at'])


def downgrade() -> None:
    op.drop_index('idx_webhook_logs_platform_received', 'webhook_logs')
    op.drop_table('webhook_logs')
    op.drop_table('ad_entities')
    op.drop_table('woocommerce_products')
    op.drop_table('woocommerce_order_items')
    op.drop_table('woocommerce_orders')
    for table in reversed(list(METRIC_TABLES)):
        op.drop_table(table)
    op.drop_table('integrations')

    bind = op.get_bind()
    for enum_type in (level_enum, sync_status_enum, status_enum, platform_enum):
        enum_type.drop(bind, checkfirst=True)
