from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List


Handler = Callable[[dict[str, Any]], None]

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status.changed"

logger = logging.getLogger(__name__)


class EventBus:
    """In-process pub/sub for order events. Handler failures are logged, never raised."""

    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[Handler]] = defaultdict(list)

    def emit(self, event_name: str, payload: dict[str, Any]) -> int:
        """Run every handler for `event_name`; returns how many succeeded."""
        handlers = list(self._handlers.get(event_name, []))
        if not handlers:
            logger.debug("No handlers for %s order_id=%s", event_name, payload.get("order_id"))
            return 0

        succeeded = 0
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception(
                    "Order event handler %s failed for %s",
                    getattr(handler, "__name__", repr(handler)),
                    event_name,
                    extra={"event": event_name, "order_id": payload.get("order_id")},
                )
                continue
            succeeded += 1
        return succeeded

    def subscribe(self, event_name: str, handler: Handler) -> None:
        if handler not in self._handlers[event_name]:
            self._handlers[event_name].append(handler)

    def unsubscribe(self, event_name: str, handler: Handler) -> None:
        if handler in self._handlers.get(event_name, []):
            self._handlers[event_name].remove(handler)


event_bus = EventBus()
