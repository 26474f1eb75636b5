"""
Intent lifecycle events.

Listeners are notified after an intent changes status. Delivery is
fire-and-forget: a failing listener is logged and never affects the
transition that triggered it.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from flowpay.core.logging import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class IntentEvent:
    """A status change of one intent."""

    intent_id: str
    user_id: str
    status: str
    previous_status: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[IntentEvent], Union[None, Awaitable[None]]]


class EventDispatcher:
    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """
        Register a listener (sync or async).

        Returns:
            A function that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def publish(self, event: IntentEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Event listener failed for {event.intent_id} ({event.status}): {e}")
