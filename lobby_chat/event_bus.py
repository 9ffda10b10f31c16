from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from lobby_chat.constants import EVENT_BUS_CRITICAL_HANDLER_RETRIES
from lobby_chat.events import AppEvent

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


@dataclass
class EventBusMetrics:
    published: int = 0
    delivered: int = 0
    retried: int = 0
    dropped: int = 0
    handler_failures: int = 0
    fallback_executed: int = 0


class EventBus:
    """In-loop publish/subscribe for the rendering layer.

    The engine is single-threaded, so handlers run synchronously inside
    ``publish`` and finish before the publisher continues. Subscribing to a
    base class receives every subclass event. A handler that raises is
    logged and counted; critical events give it another attempt.
    """

    def __init__(
        self,
        critical_handler_retries: int = EVENT_BUS_CRITICAL_HANDLER_RETRIES,
    ):
        self._critical_handler_retries = max(0, critical_handler_retries)
        self._subscriptions: list[tuple[type[AppEvent], Handler]] = []
        self._closed = False

        self.metrics = EventBusMetrics()

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, event_type: type[AppEvent], handler: Handler) -> None:
        self._subscriptions.append((event_type, handler))

    def unsubscribe(self, event_type: type[AppEvent], handler: Handler) -> None:
        entry = (event_type, handler)
        if entry in self._subscriptions:
            self._subscriptions.remove(entry)

    def publish(self, event: AppEvent, *, critical: bool = False) -> bool:
        if critical:
            event.critical = True
        if self._closed:
            self.metrics.dropped += 1
            logger.debug("Bus closed; dropped %s from %s", event.topic, event.source)
            return False
        self.metrics.published += 1
        for event_type, handler in list(self._subscriptions):
            if isinstance(event, event_type):
                self._deliver(event, handler)
        return True

    def close(self) -> None:
        self._closed = True

    def _deliver(self, event: AppEvent, handler: Handler) -> None:
        attempts = 1
        if event.critical:
            attempts += self._critical_handler_retries
        while attempts:
            attempts -= 1
            try:
                handler(event)
            except Exception:
                self.metrics.handler_failures += 1
                if attempts:
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
                return
            self.metrics.delivered += 1
            return

    def increment_fallback_executed(self) -> None:
        self.metrics.fallback_executed += 1

    def snapshot_metrics(self) -> EventBusMetrics:
        return dataclasses.replace(self.metrics)
