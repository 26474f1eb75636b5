"""
Risk assessment for resolution plans.

Risk never blocks a plan on its own; it labels the plan so the app can
present it accordingly. Thresholds are policy inputs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from flowpay.core.types import FundingSource, ReasonCode, RiskLevel


@dataclass(frozen=True)
class RiskSignals:
    """
    Facts about the user gathered outside the engine.

    Attributes:
        typical_amount: The user's usual payment size, None without history
    """

    typical_amount: Decimal | None = None


@dataclass
class RiskContext:
    amount: Decimal
    paying_sources: list[FundingSource]
    signals: RiskSignals
    now: datetime = field(default_factory=datetime.now)


class RiskFactor(ABC):
    """
    Abstract base class for risk factors.

    A factor inspects a plan and returns a reason code when it marks the
    plan as high risk.
    """

    @abstractmethod
    def evaluate(self, context: RiskContext) -> str | None:
        ...


class AmountSpikeFactor(RiskFactor):
    """High risk when the amount is far above what the user usually pays."""

    def __init__(self, multiplier: Decimal = Decimal("3")) -> None:
        self.multiplier = multiplier

    def evaluate(self, context: RiskContext) -> str | None:
        typical = context.signals.typical_amount
        if typical is None or typical <= 0:
            return None
        if context.amount > typical * self.multiplier:
            return ReasonCode.HIGH_VALUE.value
        return None


class NewSourceFactor(RiskFactor):
    """High risk when paying from a source linked very recently."""

    def __init__(self, window: timedelta = timedelta(hours=24)) -> None:
        self.window = window

    def evaluate(self, context: RiskContext) -> str | None:
        for source in context.paying_sources:
            if source.linked_at is None:
                continue
            linked_at, now = _comparable(source.linked_at, context.now)
            if now - linked_at < self.window:
                return ReasonCode.NEW_SOURCE.value
        return None


def _comparable(first: datetime, second: datetime) -> tuple[datetime, datetime]:
    """Bring an aware and a naive datetime onto naive local time."""
    if (first.tzinfo is None) == (second.tzinfo is None):
        return first, second
    return _local_naive(first), _local_naive(second)


def _local_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class RiskPolicy:
    """
    Combines risk factors into a plan risk level.

    - high: any factor fires
    - medium: the plan needs user confirmation
    - low: otherwise

    `history_size` is how many recent completed payments make up the
    user's typical amount.
    """

    def __init__(
        self,
        high_value_multiplier: Decimal = Decimal("3"),
        recent_link_window: timedelta = timedelta(hours=24),
        history_size: int = 20,
        factors: list[RiskFactor] | None = None,
    ) -> None:
        if history_size < 1:
            raise ValueError("history_size must be at least 1")
        self.high_value_multiplier = high_value_multiplier
        self.recent_link_window = recent_link_window
        self.history_size = history_size
        self._factors = factors if factors is not None else [
            AmountSpikeFactor(high_value_multiplier),
            NewSourceFactor(recent_link_window),
        ]

    def assess(
        self,
        amount: Decimal,
        paying_sources: list[FundingSource],
        signals: RiskSignals,
        requires_confirmation: bool,
        now: datetime | None = None,
    ) -> tuple[RiskLevel, list[str]]:
        """
        Returns:
            The risk level and the reason codes of the factors that fired
        """
        context = RiskContext(
            amount=amount,
            paying_sources=paying_sources,
            signals=signals,
            now=now or datetime.now(),
        )
        reasons = [code for f in self._factors if (code := f.evaluate(context))]

        if reasons:
            return RiskLevel.HIGH, reasons
        if requires_confirmation:
            return RiskLevel.MEDIUM, []
        return RiskLevel.LOW, []
