"""Tests for POST /webhooks/{platform}."""

import json
from decimal import Decimal

import pytest

from metrionix.models import AdEntity, WebhookLog, WooCommerceOrder, WooCommerceOrderItem, WooCommerceProduct
from metrionix.routers import webhooks as webhooks_router
from metrionix.services.webhooks.signatures import sign_body_base64, sign_body_hub, sign_payload


@pytest.fixture
def enqueued(monkeypatch):
    """Capture re-sync requests instead of talking to Redis."""
    calls = []

    async def fake_enqueue(platform, agency_id, account_id):
        calls.append((platform, agency_id, account_id))
        return {"job_id": "sync:test", "status": "enqueued"}

    monkeypatch.setattr(webhooks_router, "enqueue_sync_job", fake_enqueue)
    return calls


def _order_event(agency_id, event_type="order.created", **data):
    body = {
        "agency_id": str(agency_id),
        "account_id": "https://shop.example.com",
        "event_type": event_type,
        "data": {
            "id": 1001,
            "number": "1001",
            "status": "processing",
            "currency": "EUR",
            "total": "59.90",
            "customer_id": 7,
            "billing": {"email": "buyer@example.com"},
            "date_created": "2024-01-05T10:15:00",
            "line_items": [
                {"product_id": 11, "name": "Mug", "quantity": 2, "price": "12.50", "total": "25.00"},
                {"product_id": 12, "name": "Tee", "quantity": 1, "price": "34.90", "total": "34.90"},
            ],
            **data,
        },
    }
    return body


def _post_woocommerce(client, settings, body):
    raw = json.dumps(body).encode()
    signature = sign_body_base64(settings.WOOCOMMERCE_WEBHOOK_SECRET, raw)
    return client.post(
        "/webhooks/woocommerce",
        content=raw,
        headers={"Content-Type": "application/json", "X-WC-Webhook-Signature": signature},
    )


def test_order_created_stores_order_items_and_log(client, settings, test_db_session, agency_id, enqueued):
    response = _post_woocommerce(client, settings, _order_event(agency_id))

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "event_type": "order.created",
        "handled": True,
        "resync_requested": True,
    }
    order = test_db_session.query(WooCommerceOrder).one()
    assert order.order_id == "1001"
    assert order.customer_email == "buyer@example.com"
    assert order.total == Decimal("59.90")
    assert test_db_session.query(WooCommerceOrderItem).count() == 2
    log = test_db_session.query(WebhookLog).one()
    assert log.event_type == "order.created"
    assert "signature" not in log.payload
    assert enqueued == [("woocommerce", str(agency_id), "https://shop.example.com")]


def test_redelivered_order_is_idempotent(client, settings, test_db_session, agency_id, enqueued):
    body = _order_event(agency_id)
    assert _post_woocommerce(client, settings, body).status_code == 200
    assert _post_woocommerce(client, settings, body).status_code == 200

    assert test_db_session.query(WooCommerceOrder).count() == 1
    assert test_db_session.query(WooCommerceOrderItem).count() == 2
    assert test_db_session.query(WebhookLog).count() == 2


def test_zero_quantity_line_item_is_stored_as_zero(client, settings, test_db_session, agency_id, enqueued):
    body = _order_event(agency_id, line_items=[
        {"product_id": 11, "name": "Mug (refunded)", "quantity": 0, "price": "12.50", "total": "0.00"},
        {"product_id": 12, "name": "Tee", "price": "34.90", "total": "34.90"},
    ])

    assert _post_woocommerce(client, settings, body).status_code == 200

    quantities = {i.product_id: i.quantity for i in test_db_session.query(WooCommerceOrderItem).all()}
    assert quantities == {"11": 0, "12": 1}


def test_non_numeric_quantity_is_bad_request(client, settings, test_db_session, agency_id, enqueued):
    body = _order_event(agency_id, line_items=[{"product_id": 11, "name": "Mug", "quantity": "two"}])

    response = _post_woocommerce(client, settings, body)

    assert response.status_code == 400
    assert test_db_session.query(WooCommerceOrder).count() == 0
    assert test_db_session.query(WooCommerceOrderItem).count() == 0
    assert enqueued == []


def test_order_deleted_is_soft_delete(client, settings, test_db_session, agency_id, enqueued):
    _post_woocommerce(client, settings, _order_event(agency_id))
    deleted = {
        "agency_id": str(agency_id),
        "account_id": "https://shop.example.com",
        "event_type": "order.deleted",
        "data": {"id": 1001},
    }

    response = _post_woocommerce(client, settings, deleted)

    assert response.status_code == 200
    test_db_session.expire_all()
    order = test_db_session.query(WooCommerceOrder).one()
    assert order.status == "deleted"
    assert test_db_session.query(WooCommerceOrderItem).count() == 2


def test_product_updated_upserts_catalog(client, settings, test_db_session, agency_id, enqueued):
    body = {
        "agency_id": str(agency_id),
        "account_id": "https://shop.example.com",
        "event_type": "product.updated",
        "data": {"id": 11, "name": "Mug", "sku": "MUG-1", "price": "12.50", "status": "publish"},
    }

    assert _post_woocommerce(client, settings, body).status_code == 200

    product = test_db_session.query(WooCommerceProduct).one()
    assert (product.product_id, product.sku, product.status) == ("11", "MUG-1", "publish")


def test_invalid_signature_writes_nothing(client, test_db_session, agency_id, enqueued):
    raw = json.dumps(_order_event(agency_id)).encode()

    response = client.post(
        "/webhooks/woocommerce",
        content=raw,
        headers={"Content-Type": "application/json", "X-WC-Webhook-Signature": "bm90LXRoZS1zaWduYXR1cmU="},
    )

    assert response.status_code == 401
    assert response.json()["error_type"] == "invalid_signature"
    assert test_db_session.query(WooCommerceOrder).count() == 0
    assert test_db_session.query(WebhookLog).count() == 0
    assert enqueued == []


def test_unsigned_webhook_is_rejected(client, test_db_session, agency_id, enqueued):
    response = client.post("/webhooks/woocommerce", json=_order_event(agency_id))

    assert response.status_code == 401
    assert test_db_session.query(WebhookLog).count() == 0


def test_missing_secret_fails_closed(app, client, settings, test_db_session, agency_id, enqueued):
    from metrionix.deps import get_settings

    unconfigured = settings.model_copy(update={"WOOCOMMERCE_WEBHOOK_SECRET": ""})
    app.dependency_overrides[get_settings] = lambda: unconfigured

    response = _post_woocommerce(client, settings, _order_event(agency_id))

    assert response.status_code == 401
    assert test_db_session.query(WooCommerceOrder).count() == 0


def test_meta_ad_removed_with_hub_signature(client, settings, test_db_session, agency_id, enqueued):
    body = {
        "agency_id": str(agency_id),
        "account_id": "act_111",
        "event_type": "AD_REMOVED",
        "data": {"ad_id": "601", "adset_id": "501", "name": "Winter promo"},
    }
    raw = json.dumps(body).encode()

    response = client.post(
        "/webhooks/meta_ads",
        content=raw,
        headers={
            "Content-Type": "application/json",
            "X-Hub-Signature-256": sign_body_hub(settings.META_WEBHOOK_SECRET, raw),
        },
    )

    assert response.status_code == 200
    entity = test_db_session.query(AdEntity).one()
    assert entity.external_id == "601"
    assert entity.parent_external_id == "501"
    assert entity.status == "REMOVED"


def test_google_campaign_event_with_body_signature(client, settings, test_db_session, agency_id, enqueued):
    body = {
        "agency_id": str(agency_id),
        "account_id": "1234567890",
        "event_type": "CAMPAIGN_UPDATED",
        "data": {"campaign_id": "77", "name": "Search", "status": "PAUSED"},
    }
    body["signature"] = sign_payload(settings.GOOGLE_ADS_WEBHOOK_SECRET, body)

    response = client.post("/webhooks/google_ads", json=body)

    assert response.status_code == 200
    assert test_db_session.query(AdEntity).one().status == "PAUSED"


def test_unknown_event_is_logged_without_resync(client, settings, test_db_session, agency_id, enqueued):
    body = {
        "agency_id": str(agency_id),
        "account_id": "https://shop.example.com",
        "event_type": "coupon.created",
        "data": {"id": 5},
    }

    response = _post_woocommerce(client, settings, body)

    assert response.status_code == 200
    assert response.json()["handled"] is False
    assert response.json()["resync_requested"] is False
    assert test_db_session.query(WebhookLog).one().event_type == "coupon.created"
    assert enqueued == []


def test_enqueue_failure_still_acknowledges(client, settings, test_db_session, agency_id, monkeypatch):
    async def broken_enqueue(platform, agency_id, account_id):
        raise ConnectionError("redis down")

    monkeypatch.setattr(webhooks_router, "enqueue_sync_job", broken_enqueue)

    response = _post_woocommerce(client, settings, _order_event(agency_id))

    assert response.status_code == 200
    assert response.json()["resync_requested"] is False
    assert test_db_session.query(WooCommerceOrder).count() == 1


def test_malformed_body_is_bad_request(client, settings, test_db_session, enqueued):
    raw = b"{not json"
    response = client.post(
        "/webhooks/woocommerce",
        content=raw,
        headers={"X-WC-Webhook-Signature": sign_body_base64(settings.WOOCOMMERCE_WEBHOOK_SECRET, raw)},
    )

    assert response.status_code == 400
    assert test_db_session.query(WebhookLog).count() == 0


def test_order_without_id_is_rejected(client, settings, test_db_session, agency_id, enqueued):
    body = _order_event(agency_id)
    del body["data"]["id"]

    response = _post_woocommerce(client, settings, body)

    assert response.status_code == 400
    assert test_db_session.query(WooCommerceOrder).count() == 0
    assert test_db_session.query(WebhookLog).count() == 0


def test_unsupported_platform(client, enqueued):
    response = client.post("/webhooks/ga4", json={})
    assert response.status_code == 400
