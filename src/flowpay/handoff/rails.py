"""
Payment rails and their app deep links.

A rail is the external app or network a plan hands the user off to. Each
rail may have a native-app scheme, a web fallback, both, or neither. The
registry is keyed by the rail key used in resolution plans.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeAlias
from urllib.parse import urlencode

from flowpay.core.exceptions import HandoffUnsupportedError


@dataclass(frozen=True)
class RailLink:
    scheme: str
    fallback_url: str
    display_name: str

    @property
    def supports_handoff(self) -> bool:
        return bool(self.scheme or self.fallback_url)


# Known Malaysian wallet and bank app schemes; availability depends on the device
RAIL_DEEP_LINKS: dict[str, RailLink] = {
    "TouchNGo": RailLink("tngew://", "https://www.tngdigital.com.my/wallet", "Touch 'n Go"),
    "GrabPay": RailLink("grab://", "https://www.grab.com/my/pay/", "GrabPay"),
    "Boost": RailLink("boostapp://", "https://www.myboost.com.my/", "Boost"),
    "DuitNow": RailLink("duitnow://", "https://www.duitnow.my/", "DuitNow"),
    "Maybank": RailLink("maybank2u://", "https://www.maybank2u.com.my/", "Maybank"),
    "BankTransfer": RailLink("", "https://www.duitnow.my/", "Bank Transfer"),
    "VisaMastercard": RailLink("", "", "Card"),
    "Atome": RailLink("atome://", "https://www.atome.my/", "Atome"),
    "ShopeePay": RailLink("shopeepay://", "https://shopee.com.my/", "ShopeePay"),
    "BigPay": RailLink("bigpay://", "https://www.bigpayme.com/", "BigPay"),
}


RailRegistry: TypeAlias = Mapping[str, RailLink]


def register_rail(rail: str, link: RailLink) -> None:
    """
    Register (or replace) a rail in the default registry.

    Coordinators copy the default registry when they are created, so this
    affects coordinators created afterwards. Use
    `HandoffCoordinator.register_rail` to change a single coordinator.
    """
    RAIL_DEEP_LINKS[rail] = link


def get_rail(rail: str, registry: RailRegistry | None = None) -> RailLink:
    """
    Look up a rail.

    Raises:
        HandoffUnsupportedError: If the rail is not registered
    """
    links = RAIL_DEEP_LINKS if registry is None else registry
    link = links.get(rail)
    if link is None:
        raise HandoffUnsupportedError(f"No deep link configuration for rail: {rail}", rail=rail)
    return link


def build_deep_link(
    rail: str,
    amount: Decimal | None = None,
    merchant: str | None = None,
    reference: str | None = None,
    registry: RailRegistry | None = None,
) -> str | None:
    """
    App deep link for a rail with optional payment hints.

    Returns:
        The deep link, or None when the rail has no app scheme

    Raises:
        HandoffUnsupportedError: If the rail is not registered
    """
    link = get_rail(rail, registry)
    if not link.scheme:
        return None

    params: dict[str, str] = {}
    if amount:
        params["amount"] = str(amount)
    if merchant:
        params["merchant"] = merchant
    if reference:
        params["ref"] = reference

    if not params:
        return link.scheme
    return f"{link.scheme}?{urlencode(params)}"


def supports_app_handoff(rail: str, registry: RailRegistry | None = None) -> bool:
    link = (RAIL_DEEP_LINKS if registry is None else registry).get(rail)
    return link is not None and link.supports_handoff


def get_rail_display_name(rail: str, registry: RailRegistry | None = None) -> str:
    link = (RAIL_DEEP_LINKS if registry is None else registry).get(rail)
    return link.display_name if link else rail
