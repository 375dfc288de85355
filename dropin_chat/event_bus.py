from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from dropin_chat.events import AppEvent

logger = logging.getLogger(__name__)


@dataclass
class EventBusMetrics:
    published: int = 0
    delivered: int = 0
    retried: int = 0
    handler_failures: int = 0
    unhandled: int = 0


class Subscription:
    """Handle for one registered handler; releasing it twice is a no-op."""

    def __init__(
        self,
        bus: "EventBus",
        event_type: type[AppEvent],
        handler: Callable[[Any], None],
    ):
        self._bus = bus
        self.event_type = event_type
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._bus._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class EventBus:
    """Typed publish/subscribe channel dispatching on the caller's event loop.

    Every handler runs synchronously inside ``publish``. A failing handler is
    logged and counted; it never breaks delivery to the remaining handlers.
    """

    def __init__(self, critical_handler_retries: int = 1):
        self._critical_handler_retries = max(0, critical_handler_retries)
        self._subscriptions: dict[type[AppEvent], list[Subscription]] = defaultdict(
            list
        )
        self.metrics = EventBusMetrics()

    def subscribe(
        self, event_type: type[AppEvent], handler: Callable[[Any], None]
    ) -> Subscription:
        subscription = Subscription(self, event_type, handler)
        self._subscriptions[event_type].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        handlers = self._subscriptions.get(subscription.event_type, [])
        if subscription in handlers:
            handlers.remove(subscription)

    def handler_count(self, event_type: type[AppEvent]) -> int:
        return len(self._subscriptions.get(event_type, []))

    def publish(self, event: AppEvent, *, critical: bool = False) -> int:
        event.critical = event.critical or critical
        self.metrics.published += 1
        snapshot = [
            subscription
            for event_type, subscriptions in list(self._subscriptions.items())
            if isinstance(event, event_type)
            for subscription in list(subscriptions)
        ]
        delivered = 0
        for subscription in snapshot:
            # A handler earlier in this dispatch may have released a later one.
            if not subscription.active:
                continue
            if self._dispatch_to_handler(event, subscription.handler):
                delivered += 1
        if not snapshot:
            self.metrics.unhandled += 1
        return delivered

    def _dispatch_to_handler(
        self, event: AppEvent, handler: Callable[[Any], None]
    ) -> bool:
        max_attempts = 1 + (self._critical_handler_retries if event.critical else 0)
        for attempt in range(max_attempts):
            try:
                handler(event)
                self.metrics.delivered += 1
                return True
            except Exception:
                self.metrics.handler_failures += 1
                if attempt + 1 < max_attempts:
                    event.retry_count += 1
                    self.metrics.retried += 1
                    continue
                logger.exception(
                    "Event handler failed topic=%s source=%s critical=%s retries=%s",
                    event.topic,
                    event.source,
                    event.critical,
                    event.retry_count,
                )
        return False

    def snapshot_metrics(self) -> EventBusMetrics:
        return EventBusMetrics(
            published=self.metrics.published,
            delivered=self.metrics.delivered,
            retried=self.metrics.retried,
            handler_failures=self.metrics.handler_failures,
            unhandled=self.metrics.unhandled,
        )
