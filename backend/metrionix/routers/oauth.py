"""OAuth connection endpoints.

WHAT:
    - POST /integrations/oauth/start: validate provider config, record the
      transit state, return the consent URL (or the WooCommerce setup page).
    - GET /integrations/oauth/callback: provider redirect target; completes
      the flow and redirects back to the frontend with a status.
    - POST /integrations/oauth/callback: callback relayed from the popup as
      the `oauth_callback` message; only accepted from the frontend origin.

WHY:
    Both callback paths share OAuthCallbackHandler, so the state is consumed
    exactly once whichever path arrives first.

REFERENCES:
    - metrionix/oauth/initiator.py
    - metrionix/oauth/callback.py
"""

import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..deps import Principal, get_current_principal, get_http_client, get_settings, get_transit_store, require_agency
from ..errors import MetrionixError
from ..oauth.callback import OAuthCallbackHandler
from ..oauth.initiator import OAuthInitiator
from ..oauth.transit import TransitStateStore
from ..schemas import IntegrationOut, OAuthCallbackMessageIn, OAuthStartRequest, OAuthStartResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/oauth", tags=["OAuth"])


@router.post("/start", response_model=OAuthStartResponse)
def start_oauth(
    request: OAuthStartRequest,
    principal: Principal = Depends(get_current_principal),
    settings: Settings = Depends(get_settings),
    store: TransitStateStore = Depends(get_transit_store),
) -> OAuthStartResponse:
    """Begin connecting a platform for the caller's agency."""
    require_agency(principal, request.agency_id)
    started = OAuthInitiator(settings, store).start(
        request.platform,
        str(request.agency_id),
        account_hint=request.account_hint,
    )
    return OAuthStartResponse(
        provider=started.provider,
        platform=started.platform,
        state=started.state,
        authorization_url=started.authorization_url,
        setup_path=started.setup_path,
        expires_in=started.expires_in,
    )


@router.get("/callback")
async def oauth_callback_redirect(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    store: TransitStateStore = Depends(get_transit_store),
    http: httpx.AsyncClient = Depends(get_http_client),
):
    """Provider redirect: complete the flow, then hand the user back to the app."""
    handler = OAuthCallbackHandler(settings, store, http)
    try:
        integration = await handler.handle(
            db,
            code=code,
            state=state,
            provider=provider,
            error=error_description or error,
        )
    except MetrionixError as exc:
        logger.warning("[OAUTH] Callback failed (%s): %s", exc.error_type, exc.message)
        params = {"status": "error", "error_type": exc.error_type, "message": exc.message}
        if exc.provider:
            params["provider"] = exc.provider
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/oauth/callback?{urlencode(params)}")

    params = {
        "status": "success",
        "platform": integration.platform.value,
        "account_id": integration.account_id,
    }
    return RedirectResponse(url=f"{settings.FRONTEND_URL}/oauth/callback?{urlencode(params)}")


@router.post("/callback", response_model=IntegrationOut)
async def oauth_callback_message(
    message: OAuthCallbackMessageIn,
    origin: Optional[str] = Header(default=None),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    store: TransitStateStore = Depends(get_transit_store),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> IntegrationOut:
    """Relayed popup message. Foreign origins are refused before the state is touched."""
    if origin is None or origin.rstrip("/") != settings.frontend_origin:
        logger.warning("[OAUTH] Discarded callback message from origin %s", origin)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Origin not allowed")

    handler = OAuthCallbackHandler(settings, store, http)
    integration = await handler.handle(
        db,
        code=message.code,
        state=message.state,
        provider=message.provider,
        error=message.error,
        agency_id=str(principal.agency_id),
    )
    return IntegrationOut.from_model(integration)
