from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from tikprofil.core.config import NOTIFY_TIMEOUT_SECONDS, NOTIFY_WEBHOOK_URL
from tikprofil.core.request_context import get_request_id

logger = logging.getLogger(__name__)


def send_new_order_notification(
    payload: dict[str, Any],
    *,
    url: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> bool:
    """POST the order summary to the notify webhook. Single attempt, no retry."""
    target = url if url is not None else NOTIFY_WEBHOOK_URL
    if not target:
        logger.debug("Notify webhook not configured; skipping order_id=%s", payload.get("order_id"))
        return False

    headers = {"Content-Type": "application/json"}
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id

    body = {
        "type": "new_order",
        "orderId": payload.get("order_id"),
        "businessId": payload.get("business_id"),
        "businessSlug": payload.get("business_slug"),
        "businessName": payload.get("business_name"),
        "customerName": payload.get("customer_name"),
        "customerPhone": payload.get("customer_phone"),
        "total": payload.get("total"),
        "items": payload.get("items", []),
    }

    owns_client = client is None
    http = client or httpx.Client(timeout=NOTIFY_TIMEOUT_SECONDS)
    try:
        response = http.post(target, json=body, headers=headers)
        response.raise_for_status()
    finally:
        if owns_client:
            http.close()

    logger.info(
        "Order notification sent order_id=%s status=%s",
        payload.get("order_id"),
        response.status_code,
        extra={"event": "order.created", "order_id": payload.get("order_id")},
    )
    return True
