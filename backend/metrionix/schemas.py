"""Pydantic schemas for request/response payloads."""

from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl

from .models import PlatformEnum


class SyncRequest(BaseModel):
    """Request body for `POST /sync/{platform}`.

    WHAT: Integration key plus an optional date window
    WHY: Omitted dates default to the trailing 30 days
    """

    agency_id: UUID = Field(description="Agency owning the integration")
    account_id: str = Field(min_length=1, description="Platform account id")
    start_date: Optional[date] = Field(default=None, description="Inclusive start (YYYY-MM-DD)")
    end_date: Optional[date] = Field(default=None, description="Inclusive end (YYYY-MM-DD)")

    model_config = {
        "json_schema_extra": {
            "example": {
                "agency_id": "3f6c1a52-4d0b-4c8e-9a4e-1f2b3c4d5e6f",
                "account_id": "1234567890",
                "start_date": "2024-01-01",
                "end_date": "2024-01-31",
            }
        }
    }


class SyncResponse(BaseModel):
    """Result of a sync call (200 on success, 500 on failure)."""

    success: bool
    insights_synced: Optional[int] = Field(default=None, description="Metric rows upserted")
    error: Optional[str] = None
    error_type: Optional[str] = None
    timestamp: datetime


class OAuthStartRequest(BaseModel):
    """Begin connecting a platform."""

    agency_id: UUID
    platform: PlatformEnum
    account_hint: Optional[str] = Field(
        default=None,
        description="Account to bind when the provider cannot name one (e.g. Google Ads customer id)",
    )


class OAuthStartResponse(BaseModel):
    provider: str
    platform: PlatformEnum
    state: Optional[str] = None
    authorization_url: Optional[str] = None
    setup_path: Optional[str] = Field(default=None, description="WooCommerce: in-app API key form")
    expires_in: Optional[int] = Field(default=None, description="Seconds the state stays valid")


class OAuthCallbackMessageIn(BaseModel):
    """Callback relayed from the popup (`window.postMessage` shape)."""

    type: Literal["oauth_callback"]
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    provider: Optional[str] = None


class IntegrationOut(BaseModel):
    """Integration as shown on the dashboard (never includes credentials)."""

    id: UUID
    agency_id: UUID
    platform: PlatformEnum
    account_id: str
    account_name: Optional[str] = None
    is_active: bool
    status: str = Field(description="connected | syncing | error")
    last_sync: Optional[datetime] = None
    last_sync_error: Optional[str] = None

    @classmethod
    def from_model(cls, integration) -> "IntegrationOut":
        return cls(
            id=integration.id,
            agency_id=integration.agency_id,
            platform=integration.platform,
            account_id=integration.account_id,
            account_name=integration.account_name,
            is_active=integration.is_active,
            status=integration.display_status,
            last_sync=integration.last_sync,
            last_sync_error=integration.last_sync_error,
        )


class WooCommerceConnectRequest(BaseModel):
    """REST API keys generated in WooCommerce > Settings > Advanced > REST API."""

    agency_id: UUID
    store_url: HttpUrl
    consumer_key: str = Field(min_length=1)
    consumer_secret: str = Field(min_length=1)

    model_config = {
        "json_schema_extra": {
            "example": {
                "agency_id": "3f6c1a52-4d0b-4c8e-9a4e-1f2b3c4d5e6f",
                "store_url": "https://shop.example.com",
                "consumer_key": "ck_xxx",
                "consumer_secret": "cs_xxx",
            }
        }
    }


class WebhookAck(BaseModel):
    success: bool = True
    event_type: str
    handled: bool
    resync_requested: bool


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service status", examples=["ok"])
