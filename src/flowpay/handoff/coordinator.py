"""
Handoff Coordinator.

Opens the wallet app for a plan's rail and tracks the round trip:

    idle -> ready -> handed_off -> returned -> confirming -> confirmed | cancelled

The outcome is reported by the user. The coordinator never inspects the
external app's result.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from flowpay.core.exceptions import HandoffError, HandoffStateError
from flowpay.core.logging import get_logger
from flowpay.handoff.events import (
    AppLauncher,
    ForegroundEventSource,
    HandoffContext,
    HandoffMethod,
    HandoffOutcome,
    HandoffState,
    ManualForegroundSource,
    WebBrowserLauncher,
)
from flowpay.handoff.rails import (
    RAIL_DEEP_LINKS,
    RailLink,
    RailRegistry,
    build_deep_link,
    get_rail_display_name,
    supports_app_handoff,
)

logger = get_logger("handoff")

StateListener = Callable[[HandoffState, HandoffContext | None], None]

_USER_DECISION_STATES = frozenset({HandoffState.RETURNED, HandoffState.CONFIRMING})


class HandoffCoordinator:
    """
    Round-trip state machine for one user session.

    Only one handoff is active at a time; initiating a new one discards any
    pending one. Timers run on `loop` when one is given, otherwise on the
    event loop that is running when `initiate` is called. Foreground events
    delivered from another thread are handed to that loop.

    Each coordinator works on its own copy of the rail registry.

    Example:
        >>> events = ManualForegroundSource()
        >>> # inside a coroutine
        >>> coordinator = HandoffCoordinator(foreground_events=events)
        >>> outcome = coordinator.initiate("TouchNGo", Decimal("20"), merchant="Cafe")
        >>> events.went_to_background(); events.came_to_foreground()
        >>> # ... after return_delay the state is CONFIRMING
        >>> coordinator.confirm()
    """

    def __init__(
        self,
        launcher: AppLauncher | None = None,
        foreground_events: ForegroundEventSource | None = None,
        timeout: float = 300.0,
        return_delay: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
        rails: RailRegistry | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self._launcher = launcher or WebBrowserLauncher()
        self._foreground = foreground_events or ManualForegroundSource()
        self._timeout = timeout
        self._return_delay = return_delay
        self._clock = clock
        self._rails: dict[str, RailLink] = dict(RAIL_DEEP_LINKS if rails is None else rails)
        self._loop = loop
        self._active_loop: asyncio.AbstractEventLoop | None = None

        self._state = HandoffState.IDLE
        self._context: HandoffContext | None = None
        self._handoff_time: datetime | None = None
        self._started_at: float | None = None
        self._was_hidden = False

        self._timeout_handle: asyncio.TimerHandle | None = None
        self._return_handle: asyncio.TimerHandle | None = None
        self._listeners: list[StateListener] = []

        self._unsubscribe = self._foreground.subscribe(self._on_foreground_change)

    @property
    def state(self) -> HandoffState:
        return self._state

    @property
    def context(self) -> HandoffContext | None:
        return self._context

    @property
    def handoff_time(self) -> datetime | None:
        return self._handoff_time

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        """Register a listener called with (state, context) after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def can_handoff(self, rail: str) -> bool:
        return supports_app_handoff(rail, self._rails)

    def register_rail(self, rail: str, link: RailLink) -> None:
        """Register (or replace) a rail for this coordinator only."""
        self._rails[rail] = link

    def initiate(
        self,
        rail: str,
        amount: Decimal,
        merchant: str | None = None,
        reference: str | None = None,
        intent_id: str | None = None,
        plan_id: str | None = None,
    ) -> HandoffOutcome:
        """
        Open the wallet app for `rail`.

        Tries the app deep link first and the web fallback when the rail has
        no scheme or the deep link cannot be opened.

        Raises:
            HandoffError: If no event loop is available for the handoff timers
        """
        loop = self._timer_loop(rail)
        self.reset()

        if not supports_app_handoff(rail, self._rails):
            logger.warning(f"{self._display_name(rail)} does not support app handoff")
            return HandoffOutcome(attempted=False, method=HandoffMethod.NONE)

        self._context = HandoffContext(
            rail=rail,
            amount=amount,
            merchant=merchant,
            reference=reference,
            intent_id=intent_id,
            plan_id=plan_id,
        )
        self._set_state(HandoffState.READY)

        method = self._open(rail, amount, merchant, reference)
        if method == HandoffMethod.NONE:
            logger.warning(f"Couldn't open {self._display_name(rail)}; open it manually")
            self._context = None
            self._set_state(HandoffState.IDLE)
            return HandoffOutcome(attempted=False, method=HandoffMethod.NONE)

        self._handoff_time = datetime.now()
        self._started_at = self._clock()
        self._was_hidden = False
        self._active_loop = loop
        self._timeout_handle = loop.call_later(self._timeout, self._on_timeout)
        self._set_state(HandoffState.HANDED_OFF)

        logger.info(f"Opened {self._display_name(rail)} via {method.value}")
        return HandoffOutcome(attempted=True, method=method)

    def confirm(self) -> None:
        """The user reports the payment went through."""
        self._finish(HandoffState.CONFIRMED)

    def cancel(self) -> None:
        """The user reports the payment did not go through."""
        self._finish(HandoffState.CANCELLED)

    def reset(self) -> None:
        self._clear_timers()
        self._active_loop = None
        self._context = None
        self._handoff_time = None
        self._started_at = None
        self._was_hidden = False
        if self._state != HandoffState.IDLE:
            self._set_state(HandoffState.IDLE)

    def get_elapsed_time(self) -> float:
        """Seconds since the user was handed off (0 if no handoff is active)."""
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def close(self) -> None:
        """Stop listening for foreground changes and cancel timers."""
        self._clear_timers()
        self._unsubscribe()

    def _open(
        self,
        rail: str,
        amount: Decimal,
        merchant: str | None,
        reference: str | None,
    ) -> HandoffMethod:
        deep_link = build_deep_link(rail, amount, merchant, reference, self._rails)
        if deep_link:
            try:
                if self._launcher.open_url(deep_link):
                    return HandoffMethod.DEEPLINK
            except Exception as e:
                logger.debug(f"Deep link failed for {rail}, trying web fallback: {e}")

        fallback_url = self._rails[rail].fallback_url
        if fallback_url:
            try:
                if self._launcher.open_url(fallback_url):
                    return HandoffMethod.WEB
            except Exception as e:
                logger.debug(f"Web fallback failed for {rail}: {e}")

        return HandoffMethod.NONE

    def _finish(self, target: HandoffState) -> None:
        if self._state not in _USER_DECISION_STATES:
            raise HandoffStateError(
                f"Cannot move handoff to {target.value}",
                state=self._state.value,
                rail=self._context.rail if self._context else None,
            )
        self._clear_timers()
        self._set_state(target)

    def _on_foreground_change(self, is_foreground: bool) -> None:
        loop = self._active_loop
        if loop is not None and not _is_running_in(loop):
            loop.call_soon_threadsafe(self._on_foreground_change, is_foreground)
            return

        if self._state != HandoffState.HANDED_OFF:
            return

        if not is_foreground:
            self._was_hidden = True
            return

        if not self._was_hidden:
            return

        self._was_hidden = False
        self._return_handle = loop.call_later(self._return_delay, self._on_return_delay)
        self._set_state(HandoffState.RETURNED)

    def _on_return_delay(self) -> None:
        self._return_handle = None
        if self._state == HandoffState.RETURNED:
            self._set_state(HandoffState.CONFIRMING)

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        if self._state == HandoffState.HANDED_OFF:
            logger.info("No return detected from wallet app; asking user to confirm")
            self._set_state(HandoffState.CONFIRMING)

    def _timer_loop(self, rail: str) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError as e:
            raise HandoffError(
                "Handoff needs a running event loop or an explicit loop for its timers",
                rail=rail,
            ) from e

    def _display_name(self, rail: str) -> str:
        return get_rail_display_name(rail, self._rails)

    def _clear_timers(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None
        if self._return_handle is not None:
            self._return_handle.cancel()
            self._return_handle = None

    def _set_state(self, state: HandoffState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state, self._context)
            except Exception as e:
                logger.warning(f"Handoff state listener failed: {e}")


def _is_running_in(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False
