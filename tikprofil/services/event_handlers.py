from __future__ import annotations

import logging

from tikprofil.core.metrics import checkout_events
from tikprofil.services.event_bus import ORDER_CREATED, ORDER_STATUS_CHANGED, event_bus
from tikprofil.services.notifications import send_new_order_notification

logger = logging.getLogger(__name__)


def handle_order_created(payload: dict) -> None:
    checkout_events.record("notification_attempted")
    send_new_order_notification(payload)


def handle_order_status_changed(payload: dict) -> None:
    logger.info(
        "Order status changed order_id=%s %s -> %s",
        payload.get("order_id"),
        payload.get("previous_status"),
        payload.get("status"),
        extra={"event": "order.status.changed", "order_id": payload.get("order_id")},
    )


event_bus.subscribe(ORDER_CREATED, handle_order_created)
event_bus.subscribe(ORDER_STATUS_CHANGED, handle_order_status_changed)
