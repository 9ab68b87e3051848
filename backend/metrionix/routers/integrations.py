"""Integration management endpoints.

WHAT:
    List, disconnect and manually refresh an agency's integrations, and
    connect WooCommerce stores with REST API keys (no OAuth).

WHY:
    - The dashboard shows connection health from `status`/`last_sync_error`.
    - WooCommerce keys are probed before they are stored so a typo surfaces
      at connect time instead of at the first sync.

REFERENCES:
    - metrionix/services/token_service.py (credential storage/refresh)
    - metrionix/services/adapters/woocommerce.py (store API URLs)
"""

import logging
from typing import List
from urllib.parse import urlparse
from uuid import UUID

import httpx
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..deps import Principal, get_current_principal, get_http_client, get_settings
from ..errors import StorageError
from ..models import Integration, IntegrationStatusEnum, PlatformEnum, SyncStatusEnum
from ..schemas import IntegrationOut, WooCommerceConnectRequest
from ..services.adapters.base import request_json
from ..services.adapters.woocommerce import store_api_url
from ..services.token_service import Credentials, refresh_integration_token, store_credentials

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["Integrations"])


def _get_owned(db: Session, principal: Principal, integration_id: UUID) -> Integration:
    integration = db.query(Integration).filter(Integration.id == integration_id).first()
    if integration is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Integration not found")
    if integration.agency_id != principal.agency_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this agency")
    return integration


@router.get("", response_model=List[IntegrationOut])
def list_integrations(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> List[IntegrationOut]:
    integrations = (
        db.query(Integration)
        .filter(Integration.agency_id == principal.agency_id)
        .order_by(Integration.platform, Integration.account_id)
        .all()
    )
    return [IntegrationOut.from_model(i) for i in integrations]


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_integration(
    integration_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> None:
    """Disconnect: the row and its encrypted credentials are removed. Synced metrics stay."""
    integration = _get_owned(db, principal, integration_id)
    try:
        db.delete(integration)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError("Could not delete integration", provider=integration.platform.value) from exc
    logger.info(
        "[INTEGRATIONS] Disconnected %s %s for agency %s",
        integration.platform.value, integration.account_id, principal.agency_id,
    )


@router.post("/woocommerce", response_model=IntegrationOut, status_code=status.HTTP_201_CREATED)
async def connect_woocommerce(
    request: WooCommerceConnectRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> IntegrationOut:
    """Store WooCommerce REST API keys after probing `wc/v3/system_status`.

    Raises:
        ExternalApiError: the store rejected the keys or is unreachable.
    """
    if principal.agency_id != request.agency_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this agency")

    store_url = str(request.store_url).rstrip("/")
    body = await request_json(
        http,
        "woocommerce",
        "GET",
        store_api_url(store_url, "system_status"),
        f"verifying API keys for {store_url}",
        auth=(request.consumer_key, request.consumer_secret),
    )
    environment = body.get("environment") if isinstance(body, dict) else None
    account_name = (environment or {}).get("site_title") or urlparse(store_url).hostname

    integration = (
        db.query(Integration)
        .filter(
            Integration.agency_id == request.agency_id,
            Integration.platform == PlatformEnum.woocommerce,
            Integration.account_id == store_url,
        )
        .first()
    )
    try:
        if integration is None:
            integration = Integration(
                agency_id=request.agency_id,
                platform=PlatformEnum.woocommerce,
                account_id=store_url,
                sync_status=SyncStatusEnum.idle,
            )
            db.add(integration)
        integration.account_name = account_name
        store_credentials(
            integration,
            Credentials(
                access_token=request.consumer_key,
                extra={"consumer_secret": request.consumer_secret, "store_url": store_url},
            ),
        )
        integration.is_active = True
        integration.status = IntegrationStatusEnum.connected
        integration.last_sync_error = None
        db.commit()
        db.refresh(integration)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("[INTEGRATIONS] Failed to store WooCommerce connection for %s", store_url)
        raise StorageError("Could not save WooCommerce connection", provider="woocommerce") from exc

    logger.info("[INTEGRATIONS] Connected WooCommerce store %s for agency %s", store_url, request.agency_id)
    return IntegrationOut.from_model(integration)


@router.post("/{integration_id}/refresh-token", response_model=IntegrationOut)
async def refresh_token(
    integration_id: UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> IntegrationOut:
    """Force a Google access-token refresh (invalid_grant flips status to `error`)."""
    integration = _get_owned(db, principal, integration_id)
    await refresh_integration_token(db, integration, settings, http)
    db.refresh(integration)
    return IntegrationOut.from_model(integration)
