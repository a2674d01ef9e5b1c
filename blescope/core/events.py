"""Publish/subscribe bus shared by the service and presentation surfaces."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

CATALOG_UPDATED = "catalog-updated"
SCAN_COMPLETED = "scan-completed"
SCAN_ERROR = "scan-error"
CONNECTION_CHANGED = "connection-changed"
SETTINGS_CHANGED = "settings-changed"

Handler = Callable[[Any], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``topic``; returns a function that unsubscribes it."""
        self._handlers[topic].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def publish(self, topic: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(topic, ())):
            try:
                handler(payload)
            except Exception:
                # Remaining handlers still run.
                LOGGER.exception("Handler for '%s' failed", topic)
