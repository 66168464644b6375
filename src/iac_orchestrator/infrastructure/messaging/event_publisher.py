"""Event publisher implementations."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from iac_orchestrator.domain.ports.services import EventPublisher


logger = structlog.get_logger(__name__)

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


class InMemoryEventPublisher(EventPublisher):
    """Publishes events to in-process subscribers and the structured log.

    Keeps a bounded history so the API can show recent activity.
    """

    def __init__(self, history_size: int = 1000) -> None:
        self._events: list[tuple[str, dict[str, Any]]] = []
        self._handlers: dict[str, list[EventHandler]] = {}
        self._history_size = history_size

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        self._events.append((event_type, payload))
        if len(self._events) > self._history_size:
            del self._events[: len(self._events) - self._history_size]
        logger.info("event_published", event_type=event_type, payload_keys=sorted(payload))

        for handler in self._handlers.get(event_type, []):
            await handler(payload)

    async def publish_batch(self, events: list[tuple[str, dict[str, Any]]]) -> None:
        for event_type, payload in events:
            await self.publish(event_type, payload)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    @property
    def published_events(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._events)

    def event_types(self) -> list[str]:
        return [event_type for event_type, _ in self._events]

    def clear(self) -> None:
        self._events.clear()
