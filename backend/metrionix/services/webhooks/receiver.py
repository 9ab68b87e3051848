"""Webhook receiver: verify, dispatch, log, request re-sync.

WHAT:
    1. Verify the HMAC against the platform's shared secret (fail closed).
    2. Dispatch recognized event types to their domain handler.
    3. Append the event to `webhook_logs` in the same transaction.
    4. For recognized events, enqueue a re-sync of the owning integration.

WHY:
    An invalid signature must leave no trace, and a re-sync that cannot be
    enqueued must never turn an accepted webhook into an error response.

REFERENCES:
    - metrionix/routers/webhooks.py (HTTP surface)
    - metrionix/workers/arq_enqueue.py (re-sync delivery)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import Settings
from ...errors import InvalidSignature, InvalidWebhookPayload, MetrionixError, StorageError
from ...models import PlatformEnum, WebhookLog
from ...telemetry import capture_exception
from . import ad_platforms, woocommerce
from .events import WebhookEvent
from .signatures import verify_signature

logger = logging.getLogger(__name__)

Handler = Callable[[Session, WebhookEvent], None]
ResyncEnqueuer = Callable[[str, str, str], Awaitable[Any]]

HANDLERS: Dict[PlatformEnum, Dict[str, Handler]] = {
    PlatformEnum.woocommerce: woocommerce.HANDLERS,
    PlatformEnum.meta_ads: ad_platforms.META_HANDLERS,
    PlatformEnum.google_ads: ad_platforms.GOOGLE_HANDLERS,
}


@dataclass
class WebhookResult:
    event_type: str
    handled: bool
    resync_requested: bool


class WebhookReceiver:
    def __init__(self, db: Session, settings: Settings, enqueue_resync: Optional[ResyncEnqueuer] = None):
        self.db = db
        self.settings = settings
        self.enqueue_resync = enqueue_resync

    async def receive(self, platform, raw_body: bytes, headers: Mapping[str, str]) -> WebhookResult:
        """Process one delivery.

        Raises:
            InvalidSignature: no secret configured or signature mismatch (nothing written).
            InvalidWebhookPayload: body is not a valid envelope (nothing written).
            StorageError: the domain write or log append failed (rolled back).
        """
        platform = PlatformEnum(platform)
        handlers = HANDLERS.get(platform)
        if handlers is None:
            raise InvalidWebhookPayload(f"Webhooks are not supported for {platform.value}")

        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError as exc:
            raise InvalidWebhookPayload("Webhook body is not valid JSON") from exc

        secret = self.settings.webhook_secret(platform.value)
        if not secret:
            logger.error("[WEBHOOK] No shared secret configured for %s; rejecting", platform.value)
            raise InvalidSignature(f"{platform.value} webhooks are not configured", provider=platform.value)
        if not verify_signature(secret, raw_body, headers, payload):
            logger.warning("[WEBHOOK] Invalid %s signature", platform.value)
            raise InvalidSignature("Invalid webhook signature", provider=platform.value)

        try:
            event = WebhookEvent.model_validate(payload)
        except ValidationError as exc:
            raise InvalidWebhookPayload(f"Invalid webhook envelope: {exc.errors()[0]['msg']}") from exc

        handler = handlers.get(event.event_type)
        try:
            if handler is not None:
                handler(self.db, event)
            else:
                logger.info("[WEBHOOK] Unhandled %s event %s (logged only)", platform.value, event.event_type)
            self.db.add(
                WebhookLog(
                    agency_id=event.agency_id,
                    platform=platform,
                    account_id=event.account_id,
                    event_type=event.event_type,
                    payload=event.model_dump(mode="json", exclude={"signature"}),
                )
            )
            self.db.commit()
        except MetrionixError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("[WEBHOOK] Failed to store %s %s", platform.value, event.event_type)
            raise StorageError("Could not store webhook event", provider=platform.value) from exc

        resync_requested = False
        if handler is not None:
            resync_requested = await self._request_resync(platform, event)

        return WebhookResult(event_type=event.event_type, handled=handler is not None, resync_requested=resync_requested)

    async def _request_resync(self, platform: PlatformEnum, event: WebhookEvent) -> bool:
        """Fire-and-forget: failures are logged and reported, never raised."""
        if self.enqueue_resync is None:
            return False
        try:
            await self.enqueue_resync(platform.value, str(event.agency_id), event.account_id)
            return True
        except Exception as exc:  # noqa: BLE001 - enqueue failure must not fail the webhook
            logger.exception("[WEBHOOK] Could not enqueue %s re-sync for %s", platform.value, event.account_id)
            capture_exception(exc, extra={"platform": platform.value, "account_id": event.account_id})
            return False
