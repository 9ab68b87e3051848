"""WooCommerce webhook handlers: orders and products.

order.deleted is a soft delete (status = "deleted") so revenue history is kept.
order.created is idempotent: a redelivered order replaces its header and items.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...errors import InvalidWebhookPayload
from ...models import WooCommerceOrder, WooCommerceOrderItem, WooCommerceProduct
from .events import WebhookEvent

logger = logging.getLogger(__name__)

DELETED_STATUS = "deleted"


def _money(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidWebhookPayload(f"Invalid amount {value!r}") from exc


def _quantity(value: Any) -> int:
    if value is None:
        return 1
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidWebhookPayload(f"Invalid line item quantity {value!r}") from exc


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        logger.warning("[WEBHOOK] Unparseable WooCommerce date %r", value)
        return None


def _find_order(db: Session, event: WebhookEvent, order_id: str) -> Optional[WooCommerceOrder]:
    return (
        db.query(WooCommerceOrder)
        .filter(
            WooCommerceOrder.agency_id == event.agency_id,
            WooCommerceOrder.account_id == event.account_id,
            WooCommerceOrder.order_id == order_id,
        )
        .first()
    )


def _upsert_order(db: Session, event: WebhookEvent) -> WooCommerceOrder:
    data = event.data
    order_id = str(event.require("id"))
    order = _find_order(db, event, order_id)
    if order is None:
        order = WooCommerceOrder(agency_id=event.agency_id, account_id=event.account_id, order_id=order_id)
        db.add(order)

    billing = data.get("billing") or {}
    order.order_number = str(data.get("number") or order_id)
    order.status = data.get("status")
    order.currency = data.get("currency")
    order.total = _money(data.get("total"))
    order.customer_id = str(data["customer_id"]) if data.get("customer_id") not in (None, "") else None
    order.customer_email = billing.get("email")
    order.date_created = _timestamp(data.get("date_created"))
    order.order_data = data
    return order


def _replace_items(db: Session, event: WebhookEvent, order_id: str) -> int:
    db.query(WooCommerceOrderItem).filter(
        WooCommerceOrderItem.agency_id == event.agency_id,
        WooCommerceOrderItem.account_id == event.account_id,
        WooCommerceOrderItem.order_id == order_id,
    ).delete(synchronize_session=False)

    items = event.data.get("line_items") or []
    for item in items:
        db.add(
            WooCommerceOrderItem(
                agency_id=event.agency_id,
                account_id=event.account_id,
                order_id=order_id,
                product_id=str(item.get("product_id")) if item.get("product_id") is not None else None,
                variation_id=str(item.get("variation_id")) if item.get("variation_id") else None,
                name=item.get("name"),
                quantity=_quantity(item.get("quantity")),
                price=_money(item.get("price")),
                total=_money(item.get("total")),
            )
        )
    return len(items)


def order_created(db: Session, event: WebhookEvent) -> None:
    order = _upsert_order(db, event)
    count = _replace_items(db, event, order.order_id)
    logger.info("[WEBHOOK] WooCommerce order %s stored with %d items", order.order_id, count)


def order_updated(db: Session, event: WebhookEvent) -> None:
    order = _upsert_order(db, event)
    if "line_items" in event.data:
        _replace_items(db, event, order.order_id)
    logger.info("[WEBHOOK] WooCommerce order %s updated", order.order_id)


def order_deleted(db: Session, event: WebhookEvent) -> None:
    order_id = str(event.require("id"))
    order = _find_order(db, event, order_id)
    if order is None:
        logger.info("[WEBHOOK] WooCommerce order %s deleted before it was recorded", order_id)
        return
    order.status = DELETED_STATUS


def product_upserted(db: Session, event: WebhookEvent) -> None:
    data = event.data
    product_id = str(event.require("id"))
    product = (
        db.query(WooCommerceProduct)
        .filter(
            WooCommerceProduct.agency_id == event.agency_id,
            WooCommerceProduct.account_id == event.account_id,
            WooCommerceProduct.product_id == product_id,
        )
        .first()
    )
    if product is None:
        product = WooCommerceProduct(agency_id=event.agency_id, account_id=event.account_id, product_id=product_id)
        db.add(product)

    product.name = data.get("name")
    product.sku = data.get("sku") or None
    product.price = _money(data.get("price"))
    product.regular_price = _money(data.get("regular_price"))
    product.sale_price = _money(data.get("sale_price"))
    product.status = data.get("status")


HANDLERS = {
    "order.created": order_created,
    "order.updated": order_updated,
    "order.deleted": order_deleted,
    "product.created": product_upserted,
    "product.updated": product_upserted,
}
