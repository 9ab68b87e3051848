"""Webhook HMAC verification.

WHAT: Validates webhook signatures with each platform's shared secret
WHY: Reject forged webhooks before anything is written

Accepted signatures, checked in order:
    1. WooCommerce `X-WC-Webhook-Signature`: base64(HMAC-SHA256(secret, raw body))
    2. `X-Hub-Signature-256`: "sha256=" + hex(HMAC-SHA256(secret, raw body))
    3. Body field `signature`: hex(HMAC-SHA256(secret, canonical JSON of
       {agency_id, account_id, event_type, data}))
"""

import base64
import hashlib
import hmac
import json
from typing import Any, Mapping, Optional

WOOCOMMERCE_SIGNATURE_HEADER = "x-wc-webhook-signature"
HUB_SIGNATURE_HEADER = "x-hub-signature-256"

SIGNED_FIELDS = ("agency_id", "account_id", "event_type", "data")


def _digest(secret: str, message: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()


def canonical_payload(payload: Mapping[str, Any]) -> bytes:
    """Deterministic bytes for the body-field signature."""
    signed = {field: payload.get(field) for field in SIGNED_FIELDS}
    return json.dumps(signed, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def sign_payload(secret: str, payload: Mapping[str, Any]) -> str:
    """Body-field signature senders attach as `signature`."""
    return _digest(secret, canonical_payload(payload)).hex()


def sign_body_base64(secret: str, raw_body: bytes) -> str:
    return base64.b64encode(_digest(secret, raw_body)).decode("utf-8")


def sign_body_hub(secret: str, raw_body: bytes) -> str:
    return "sha256=" + _digest(secret, raw_body).hex()


def verify_signature(
    secret: Optional[str],
    raw_body: bytes,
    headers: Mapping[str, str],
    payload: Optional[Mapping[str, Any]],
) -> bool:
    """True only when a presented signature matches. Missing secret fails closed."""
    if not secret:
        return False

    wc_signature = headers.get(WOOCOMMERCE_SIGNATURE_HEADER)
    if wc_signature:
        return hmac.compare_digest(sign_body_base64(secret, raw_body), wc_signature.strip())

    hub_signature = headers.get(HUB_SIGNATURE_HEADER)
    if hub_signature:
        return hmac.compare_digest(sign_body_hub(secret, raw_body), hub_signature.strip())

    body_signature = payload.get("signature") if isinstance(payload, Mapping) else None
    if isinstance(body_signature, str) and body_signature:
        return hmac.compare_digest(sign_payload(secret, payload), body_signature.strip().lower())

    return False
