"""In-process publish/subscribe channel for cross-view notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    STOCK_CHANGED = "stockChanged"
    SALE_COMPLETED = "saleCompleted"
    DRAWER_CHANGED = "drawerChanged"
    LOW_STOCK = "lowStock"


@dataclass(frozen=True)
class Event:
    type: EventType
    detail: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Event], None]


class EventBus:
    """Fire-and-forget bus: publishers never wait for or see subscriber results.

    A failing subscriber is logged and skipped so that one broken consumer
    cannot block the others or the publisher.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventType, list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        """Register *handler* for *event_type*. Returns an unsubscribe callable."""
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[event_type]:
                self._handlers[event_type].remove(handler)

        return _unsubscribe

    def publish(self, event_type: EventType, detail: dict[str, Any] | None = None) -> Event:
        event = Event(type=event_type, detail=detail or {})
        for handler in list(self._handlers[event_type]):
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber for %s failed", event_type.value)
        return event
