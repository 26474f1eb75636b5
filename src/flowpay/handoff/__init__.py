"""
Wallet handoff for FlowPay.

Bridges a resolved plan to the external wallet or bank app that completes
the payment.
"""

from flowpay.handoff.coordinator import HandoffCoordinator
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
    get_rail,
    get_rail_display_name,
    register_rail,
    supports_app_handoff,
)

__all__ = [
    "HandoffCoordinator",
    "AppLauncher",
    "ForegroundEventSource",
    "HandoffContext",
    "HandoffMethod",
    "HandoffOutcome",
    "HandoffState",
    "ManualForegroundSource",
    "WebBrowserLauncher",
    "RAIL_DEEP_LINKS",
    "RailLink",
    "RailRegistry",
    "build_deep_link",
    "get_rail",
    "get_rail_display_name",
    "register_rail",
    "supports_app_handoff",
]
