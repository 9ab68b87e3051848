"""Inbound platform webhooks.

WHAT:
    POST /webhooks/{platform}: verify the HMAC, apply the event, log it and
    enqueue a re-sync. Unauthenticated by bearer token; the shared secret is
    the authentication.

REFERENCES:
    - metrionix/services/webhooks/receiver.py
    - metrionix/workers/arq_enqueue.py
"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..deps import get_settings
from ..models import PlatformEnum
from ..schemas import WebhookAck
from ..services.webhooks import WebhookReceiver
from ..workers.arq_enqueue import enqueue_sync_job

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/{platform}", response_model=WebhookAck)
async def receive_webhook(
    platform: PlatformEnum,
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> WebhookAck:
    """Errors render as `{error, error_type}` with 400/401/500 via the app handler."""
    raw_body = await request.body()
    receiver = WebhookReceiver(db, settings, enqueue_resync=enqueue_sync_job)
    result = await receiver.receive(platform, raw_body, request.headers)
    logger.info(
        "[WEBHOOK] Accepted %s %s (handled=%s, resync=%s)",
        platform.value, result.event_type, result.handled, result.resync_requested,
    )
    return WebhookAck(
        event_type=result.event_type,
        handled=result.handled,
        resync_requested=result.resync_requested,
    )
