"""SQLAlchemy ORM models and enums.

The schema covers the integration lifecycle only: the credential store
(`integrations`), one daily metrics table per platform, the webhook-fed domain
tables and the append-only webhook log. All timestamps are naive UTC.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base


# Single Base used by the entire application
Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how every DateTime column is stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum_values(obj):
    return [e.value for e in obj]


# Enums ---------------------------------------------------------

class PlatformEnum(str, enum.Enum):
    meta_ads = "meta_ads"
    google_ads = "google_ads"
    ga4 = "ga4"
    search_console = "search_console"
    woocommerce = "woocommerce"


class IntegrationStatusEnum(str, enum.Enum):
    connected = "connected"
    error = "error"  # credentials invalid/revoked; reconnect required


class SyncStatusEnum(str, enum.Enum):
    idle = "idle"
    syncing = "syncing"


class LevelEnum(str, enum.Enum):
    campaign = "campaign"
    adset = "adset"
    ad = "ad"


# Credential store ---------------------------------------------

class Integration(Base):
    """A connected platform account for one agency.

    WHAT: Encrypted credentials plus sync bookkeeping for (agency, platform, account)
    WHY: Written by the OAuth callback (or WooCommerce key form), read and
         stamped by sync jobs. Disconnecting deletes the row.
    """
    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("agency_id", "platform", "account_id", name="uq_integration_agency_platform_account"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    platform = Column(Enum(PlatformEnum, values_callable=_enum_values), nullable=False)
    account_id = Column(String, nullable=False)
    account_name = Column(String, nullable=True)

    # Fernet ciphertext of the JSON credential blob (see services/token_service.py)
    credentials_enc = Column(Text, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    status = Column(
        Enum(IntegrationStatusEnum, values_callable=_enum_values),
        nullable=False,
        default=IntegrationStatusEnum.connected,
    )
    last_sync = Column(DateTime, nullable=True)  # Last successful sync only

    # In-progress flag, claimed with a conditional UPDATE
    sync_status = Column(
        Enum(SyncStatusEnum, values_callable=_enum_values),
        nullable=False,
        default=SyncStatusEnum.idle,
    )
    sync_started_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def display_status(self) -> str:
        if self.sync_status == SyncStatusEnum.syncing:
            return "syncing"
        return self.status.value if self.status else IntegrationStatusEnum.connected.value

    def __str__(self):
        return f"{self.platform.value}:{self.account_id}"


# Metric tables -------------------------------------------------

class DailyMetricMixin:
    """Shared upsert key for per-platform daily metric tables.

    Re-syncing a date overwrites the row for (agency, account, entity, date).
    """

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    account_id = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    synced_at = Column(DateTime, default=utcnow, nullable=False)

    upsert_keys = ("agency_id", "account_id", "entity_id", "date")


def _metric_key(table: str) -> UniqueConstraint:
    return UniqueConstraint("agency_id", "account_id", "entity_id", "date", name=f"uq_{table}_key")


class MetaAdsInsightDaily(DailyMetricMixin, Base):
    """Ad-level daily Meta Ads insights (entity_id = ad id)."""
    __tablename__ = "meta_ads_insights_daily"
    __table_args__ = (_metric_key("meta_ads_insights_daily"),)

    campaign_id = Column(String, nullable=True)
    adset_id = Column(String, nullable=True)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    spend = Column(Float, nullable=False, default=0.0)
    conversions = Column(Float, nullable=False, default=0.0)
    revenue = Column(Float, nullable=False, default=0.0)
    ctr = Column(Float, nullable=False, default=0.0)
    cpc = Column(Float, nullable=False, default=0.0)
    cpa = Column(Float, nullable=False, default=0.0)
    roas = Column(Float, nullable=False, default=0.0)


class GoogleAdsCampaignDaily(DailyMetricMixin, Base):
    """Campaign-level daily Google Ads KPIs (entity_id = campaign id)."""
    __tablename__ = "google_ads_campaigns_daily"
    __table_args__ = (_metric_key("google_ads_campaigns_daily"),)

    campaign_name = Column(String, nullable=True)
    status = Column(String, nullable=True)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    spend = Column(Float, nullable=False, default=0.0)  # cost_micros / 1e6
    conversions = Column(Float, nullable=False, default=0.0)
    revenue = Column(Float, nullable=False, default=0.0)  # conversions_value
    ctr = Column(Float, nullable=False, default=0.0)
    cpc = Column(Float, nullable=False, default=0.0)
    cpa = Column(Float, nullable=False, default=0.0)
    roas = Column(Float, nullable=False, default=0.0)


class Ga4Daily(DailyMetricMixin, Base):
    """Property-level daily GA4 traffic (entity_id = property id)."""
    __tablename__ = "ga4_daily"
    __table_args__ = (_metric_key("ga4_daily"),)

    sessions = Column(Integer, nullable=False, default=0)
    users = Column(Integer, nullable=False, default=0)
    new_users = Column(Integer, nullable=False, default=0)
    pageviews = Column(Integer, nullable=False, default=0)
    conversions = Column(Float, nullable=False, default=0.0)
    revenue = Column(Float, nullable=False, default=0.0)
    bounce_rate = Column(Float, nullable=False, default=0.0)
    conversion_rate = Column(Float, nullable=False, default=0.0)


class SearchConsolePageDaily(DailyMetricMixin, Base):
    """Page-level daily Search Console performance (entity_id = page URL)."""
    __tablename__ = "search_console_pages_daily"
    __table_args__ = (_metric_key("search_console_pages_daily"),)

    clicks = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    ctr = Column(Float, nullable=False, default=0.0)
    position = Column(Float, nullable=False, default=0.0)


class WooCommerceSalesDaily(DailyMetricMixin, Base):
    """Store-level daily WooCommerce sales (entity_id = store url)."""
    __tablename__ = "woocommerce_sales_daily"
    __table_args__ = (_metric_key("woocommerce_sales_daily"),)

    orders = Column(Integer, nullable=False, default=0)
    items = Column(Integer, nullable=False, default=0)
    revenue = Column(Float, nullable=False, default=0.0)
    average_order_value = Column(Float, nullable=False, default=0.0)


# Webhook-fed domain tables -------------------------------------

class WooCommerceOrder(Base):
    """WooCommerce order pushed by the store webhook.

    WHAT: Order header; deletions are soft (status = "deleted")
    WHY: Order history stays available for revenue reporting after a store deletes it
    """
    __tablename__ = "woocommerce_orders"
    __table_args__ = (
        UniqueConstraint("agency_id", "account_id", "order_id", name="uq_woocommerce_order"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    account_id = Column(String, nullable=False)
    order_id = Column(String, nullable=False)
    order_number = Column(String, nullable=True)
    status = Column(String, nullable=True)
    currency = Column(String, nullable=True)
    total = Column(Numeric(18, 4), nullable=True)
    customer_id = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    date_created = Column(DateTime, nullable=True)
    order_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class WooCommerceOrderItem(Base):
    """Line item of a WooCommerce order (replaced wholesale on redelivery)."""
    __tablename__ = "woocommerce_order_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    account_id = Column(String, nullable=False)
    order_id = Column(String, nullable=False, index=True)
    product_id = Column(String, nullable=True)
    variation_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(18, 4), nullable=True)
    total = Column(Numeric(18, 4), nullable=True)


class WooCommerceProduct(Base):
    """Product catalog entry kept current by product.created/updated webhooks."""
    __tablename__ = "woocommerce_products"
    __table_args__ = (
        UniqueConstraint("agency_id", "account_id", "product_id", name="uq_woocommerce_product"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    account_id = Column(String, nullable=False)
    product_id = Column(String, nullable=False)
    name = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    price = Column(Numeric(18, 4), nullable=True)
    regular_price = Column(Numeric(18, 4), nullable=True)
    sale_price = Column(Numeric(18, 4), nullable=True)
    status = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AdEntity(Base):
    """Campaign / ad set / ad known from ad-platform change webhooks.

    Removal events set status = "REMOVED"; rows are never deleted.
    """
    __tablename__ = "ad_entities"
    __table_args__ = (
        UniqueConstraint("agency_id", "platform", "account_id", "external_id", name="uq_ad_entity"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    platform = Column(Enum(PlatformEnum, values_callable=_enum_values), nullable=False)
    account_id = Column(String, nullable=False)
    level = Column(Enum(LevelEnum, values_callable=_enum_values), nullable=False)
    external_id = Column(String, nullable=False)
    parent_external_id = Column(String, nullable=True)
    name = Column(String, nullable=True)
    status = Column(String, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class WebhookLog(Base):
    """Append-only audit record of every accepted webhook."""
    __tablename__ = "webhook_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    platform = Column(Enum(PlatformEnum, values_callable=_enum_values), nullable=False)
    account_id = Column(String, nullable=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False)
    received_at = Column(DateTime, default=utcnow, nullable=False)
