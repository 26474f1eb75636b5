"""
Handoff collaborators.

The coordinator does not know how the host app opens URLs or how it learns
that it went to the background and came back. Both are injected.
"""

from __future__ import annotations

import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol

from flowpay.core.logging import get_logger

logger = get_logger("handoff")

ForegroundCallback = Callable[[bool], None]


class HandoffState(str, Enum):
    IDLE = "idle"
    READY = "ready"
    HANDED_OFF = "handed_off"  # user is in the wallet app
    RETURNED = "returned"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"  # user reported the payment did not go through


class HandoffMethod(str, Enum):
    DEEPLINK = "deeplink"
    WEB = "web"
    NONE = "none"


@dataclass(frozen=True)
class HandoffContext:
    """One round trip to an external app."""

    rail: str
    amount: Decimal
    merchant: str | None = None
    reference: str | None = None
    intent_id: str | None = None
    plan_id: str | None = None


@dataclass(frozen=True)
class HandoffOutcome:
    attempted: bool
    method: HandoffMethod

    def to_dict(self) -> dict[str, Any]:
        return {"attempted": self.attempted, "method": self.method.value}


class ForegroundEventSource(Protocol):
    """Reports when the host app moves between foreground and background."""

    def subscribe(self, callback: ForegroundCallback) -> Callable[[], None]:
        """
        Register `callback(is_foreground)`.

        Returns:
            A function that unsubscribes the callback
        """
        ...


class AppLauncher(Protocol):
    def open_url(self, url: str) -> bool:
        """Open a deep link or web page. Returns False (or raises) on failure."""
        ...


class ManualForegroundSource:
    """
    Foreground source driven by explicit calls.

    For hosts that push lifecycle events themselves, and for tests.
    """

    def __init__(self) -> None:
        self._callbacks: list[ForegroundCallback] = []

    def subscribe(self, callback: ForegroundCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _emit(self, is_foreground: bool) -> None:
        for callback in list(self._callbacks):
            callback(is_foreground)

    def went_to_background(self) -> None:
        self._emit(False)

    def came_to_foreground(self) -> None:
        self._emit(True)


class WebBrowserLauncher:
    """Opens URLs with the platform's registered handler."""

    def open_url(self, url: str) -> bool:
        opened = webbrowser.open(url)
        if not opened:
            logger.debug(f"No handler opened {url}")
        return opened
