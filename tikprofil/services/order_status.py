from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from tikprofil.models.order import Order
from tikprofil.utils.dates import utcnow

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    ON_WAY = "on_way"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    # the panel may skip "confirmed"
    OrderStatus.PENDING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.CANCELLED, OrderStatus.REJECTED}
    ),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED, OrderStatus.REJECTED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    # pickup and table orders skip "on_way"
    OrderStatus.READY: frozenset({OrderStatus.ON_WAY, OrderStatus.DELIVERED, OrderStatus.COMPLETED}),
    OrderStatus.ON_WAY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}


class UnknownOrderStatus(ValueError):
    def __init__(self, status: str) -> None:
        super().__init__(f"Geçersiz sipariş durumu: {status}")
        self.status = status


class InvalidStatusTransition(Exception):
    def __init__(self, current: OrderStatus, target: OrderStatus) -> None:
        super().__init__(f"Sipariş durumu {current.value} -> {target.value} olarak değiştirilemez")
        self.current = current
        self.target = target


def parse_status(value: str | None) -> OrderStatus:
    normalized = (value or "").strip().lower()
    try:
        return OrderStatus(normalized)
    except ValueError as exc:
        raise UnknownOrderStatus(value or "") from exc


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def history_entry(status: OrderStatus, note: Optional[str] = None) -> dict:
    entry = {"status": status.value, "timestamp": utcnow().isoformat()}
    if note:
        entry["note"] = note
    return entry


def apply_transition(order: Order, target: str, note: Optional[str] = None) -> Optional[str]:
    """Move the order to `target`, appending to its status history.

    Returns the previous status, or None when `target` is already the current
    status (no-op). Raises InvalidStatusTransition for illegal moves.
    """
    target_status = parse_status(target)
    current_status = parse_status(order.status)
    if target_status == current_status:
        return None
    if not can_transition(current_status, target_status):
        logger.warning(
            "Illegal status transition order_id=%s from=%s to=%s",
            order.id,
            current_status.value,
            target_status.value,
        )
        raise InvalidStatusTransition(current_status, target_status)

    # reassign so the JSON column is flagged dirty
    order.status_history = [*(order.status_history or []), history_entry(target_status, note)]
    order.status = target_status.value
    return current_status.value
