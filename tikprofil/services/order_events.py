from __future__ import annotations

from tikprofil.core.money import to_decimal
from tikprofil.models.order import Order
from tikprofil.services.event_bus import ORDER_CREATED, ORDER_STATUS_CHANGED, event_bus


def build_order_payload(
    order: Order,
    previous_status: str | None = None,
    business_slug: str | None = None,
    business_name: str | None = None,
) -> dict:
    return {
        "order_id": order.id,
        "business_id": order.business_id,
        "business_slug": business_slug,
        "business_name": business_name,
        "status": order.status,
        "previous_status": previous_status,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "delivery_type": order.delivery_type,
        "payment_method": order.payment_method,
        "total": float(to_decimal(order.total)),
        "discount_amount": float(to_decimal(order.discount_amount)),
        "items": [
            {"name": item.get("name"), "quantity": item.get("quantity")}
            for item in (order.items or [])
        ],
    }


def emit_order_created(order: Order, business_slug: str | None = None, business_name: str | None = None) -> None:
    payload = build_order_payload(order, business_slug=business_slug, business_name=business_name)
    event_bus.emit(ORDER_CREATED, payload)


def emit_order_status_changed(order: Order, previous_status: str | None) -> None:
    if previous_status and previous_status == order.status:
        return
    payload = build_order_payload(order, previous_status=previous_status)
    event_bus.emit(ORDER_STATUS_CHANGED, payload)
