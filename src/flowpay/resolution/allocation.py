"""
Funding allocation.

Pure functions that pick which sources pay for an amount. No guardrail or
risk judgement happens here; the engine hands the resulting candidate to the
guardrail policy.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from flowpay.core.exceptions import InsufficientFundsError
from flowpay.core.types import ZERO, FundingSource
from flowpay.guardrails.base import GuardrailConfig


class CandidateKind(str, Enum):
    DIRECT = "direct"
    TOP_UP = "top_up"
    FALLBACK = "fallback"
    SPLIT = "split"


@dataclass(frozen=True)
class Allocation:
    """The share of a payment taken from one source."""

    source: FundingSource
    pay_amount: Decimal
    topup_amount: Decimal = ZERO

    @property
    def funded_amount(self) -> Decimal:
        """What this source can actually put towards the payment."""
        return min(self.pay_amount, self.source.balance + self.topup_amount)


@dataclass(frozen=True)
class FundingCandidate:
    kind: CandidateKind
    allocations: tuple[Allocation, ...]

    @property
    def sources(self) -> list[FundingSource]:
        return [a.source for a in self.allocations]

    @property
    def total_pay(self) -> Decimal:
        return sum((a.pay_amount for a in self.allocations), ZERO)

    @property
    def total_funded(self) -> Decimal:
        return sum((a.funded_amount for a in self.allocations), ZERO)

    @property
    def topup_amount(self) -> Decimal:
        return sum((a.topup_amount for a in self.allocations), ZERO)

    @property
    def is_single_source(self) -> bool:
        return len(self.allocations) == 1


def order_sources(sources: Iterable[FundingSource]) -> list[FundingSource]:
    """Sort by ascending priority, ties broken by highest balance."""
    return sorted(sources, key=lambda s: (s.priority, -s.balance))


def eligible_sources(sources: Iterable[FundingSource]) -> list[FundingSource]:
    """Linked and available sources in preference order."""
    return order_sources(s for s in sources if s.is_eligible)


def sources_in_currency(sources: Iterable[FundingSource], currency: str) -> list[FundingSource]:
    currency = currency.upper()
    return [s for s in sources if s.currency.upper() == currency]


def build_candidate(
    amount: Decimal,
    sources: list[FundingSource],
    config: GuardrailConfig,
) -> FundingCandidate:
    """
    Choose how to fund `amount` from `sources` (already ordered and filtered).

    In order of preference:
    1. The preferred source pays directly.
    2. The preferred source is topped up by the shortfall and pays.
    3. The first other source that can pay alone.
    4. A greedy split across sources, when split payments are allowed.

    Raises:
        InsufficientFundsError: If no option covers the amount
    """
    if not sources:
        raise InsufficientFundsError("No funding source available for this currency")

    primary = sources[0]

    if primary.balance >= amount:
        return FundingCandidate(CandidateKind.DIRECT, (Allocation(primary, amount),))

    shortfall = amount - primary.balance
    if shortfall <= config.max_auto_top_up_amount:
        return FundingCandidate(
            CandidateKind.TOP_UP,
            (Allocation(primary, amount, topup_amount=shortfall),),
        )

    for source in sources[1:]:
        if source.balance >= amount:
            return FundingCandidate(CandidateKind.FALLBACK, (Allocation(source, amount),))

    total_available = sum((s.balance for s in sources), ZERO)

    if not config.allow_split_payments:
        raise InsufficientFundsError(
            f"No single source can cover {amount} and split payments are disabled",
            details={"amount": str(amount), "total_available": str(total_available)},
        )

    if total_available < amount:
        raise InsufficientFundsError(
            f"Combined balance {total_available} cannot cover {amount}",
            details={"amount": str(amount), "total_available": str(total_available)},
        )

    allocations: list[Allocation] = []
    remaining = amount
    for source in sources:
        if remaining <= 0:
            break
        if source.balance <= 0:
            continue
        share = min(source.balance, remaining)
        allocations.append(Allocation(source, share))
        remaining -= share

    return FundingCandidate(CandidateKind.SPLIT, tuple(allocations))
