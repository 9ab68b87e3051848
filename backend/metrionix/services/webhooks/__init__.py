"""Inbound platform webhooks."""

from .receiver import HANDLERS, WebhookReceiver, WebhookResult
from .signatures import sign_payload, verify_signature

__all__ = ["HANDLERS", "WebhookReceiver", "WebhookResult", "sign_payload", "verify_signature"]
