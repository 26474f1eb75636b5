"""
Guardrail base types and rule chain.

Guardrails decide whether a candidate plan can run without the user, needs
an explicit confirmation, or must not run at all.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from flowpay.core.types import ZERO, to_decimal

if TYPE_CHECKING:
    from flowpay.resolution.allocation import FundingCandidate


@dataclass(frozen=True)
class GuardrailConfig:
    """
    Per-user guardrail settings.

    Attributes:
        max_auto_top_up_amount: Largest top-up added to a source without asking
        max_single_payment_auto: Largest single payment approved automatically
        require_confirmation_above: Payments above this always need confirmation
        daily_auto_limit: Total auto-approved spend allowed per calendar day
        allow_split_payments: Whether one payment may be spread over sources
        hard_block_multiplier: Amounts above require_confirmation_above times
            this multiplier are blocked outright
    """

    max_auto_top_up_amount: Decimal = Decimal("100")
    max_single_payment_auto: Decimal = Decimal("50")
    require_confirmation_above: Decimal = Decimal("500")
    daily_auto_limit: Decimal = Decimal("200")
    allow_split_payments: bool = False
    hard_block_multiplier: Decimal = Decimal("10")

    def __post_init__(self) -> None:
        for name in (
            "max_auto_top_up_amount",
            "max_single_payment_auto",
            "require_confirmation_above",
            "daily_auto_limit",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.hard_block_multiplier < 1:
            raise ValueError("hard_block_multiplier must be at least 1")

    @property
    def hard_block_limit(self) -> Decimal:
        return self.require_confirmation_above * self.hard_block_multiplier

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GuardrailConfig:
        """Build settings from a stored record; missing keys keep their defaults."""
        if not data:
            return cls()

        defaults = cls()

        def amount(camel: str, snake: str) -> Decimal:
            value = data.get(camel, data.get(snake))
            return to_decimal(value, default=getattr(defaults, snake))

        split = data.get("allowSplitPayments", data.get("allow_split_payments"))

        return cls(
            max_auto_top_up_amount=amount("maxAutoTopUpAmount", "max_auto_top_up_amount"),
            max_single_payment_auto=amount("maxSinglePaymentAuto", "max_single_payment_auto"),
            require_confirmation_above=amount(
                "requireConfirmationAbove", "require_confirmation_above"
            ),
            daily_auto_limit=amount("dailyAutoLimit", "daily_auto_limit"),
            allow_split_payments=bool(split) if split is not None else defaults.allow_split_payments,
            hard_block_multiplier=amount("hardBlockMultiplier", "hard_block_multiplier"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_auto_top_up_amount": str(self.max_auto_top_up_amount),
            "max_single_payment_auto": str(self.max_single_payment_auto),
            "require_confirmation_above": str(self.require_confirmation_above),
            "daily_auto_limit": str(self.daily_auto_limit),
            "allow_split_payments": self.allow_split_payments,
            "hard_block_multiplier": str(self.hard_block_multiplier),
        }


@dataclass(frozen=True)
class UserPaymentState:
    """Running total of today's auto-approved spend for one user."""

    daily_auto_approved: Decimal = ZERO
    last_reset_date: date = field(default_factory=date.today)

    def reset_if_stale(self, today: date | None = None) -> UserPaymentState:
        """Return a zeroed state when the stored date is not today."""
        today = today or date.today()
        if self.last_reset_date == today:
            return self
        return UserPaymentState(daily_auto_approved=ZERO, last_reset_date=today)

    def with_auto_approval(self, amount: Decimal, today: date | None = None) -> UserPaymentState:
        current = self.reset_if_stale(today)
        return replace(current, daily_auto_approved=current.daily_auto_approved + amount)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> UserPaymentState:
        if not data:
            return cls()
        raw_date = data.get("last_reset_date") or data.get("lastResetDate")
        return cls(
            daily_auto_approved=to_decimal(
                data.get("daily_auto_approved", data.get("dailyAutoApproved"))
            ),
            last_reset_date=date.fromisoformat(raw_date) if raw_date else date.today(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "daily_auto_approved": str(self.daily_auto_approved),
            "last_reset_date": self.last_reset_date.isoformat(),
        }


@dataclass
class GuardrailContext:
    """Everything a rule needs to judge one candidate plan."""

    candidate: FundingCandidate
    amount: Decimal
    state: UserPaymentState
    config: GuardrailConfig


@dataclass
class RuleResult:
    """
    Result of a single rule.

    Attributes:
        rule_name: Name of the rule that produced this result
        blocked: The candidate must not run
        requires_confirmation: The candidate may only run after user approval
        reason_code: Machine-readable reason when not passed
        reason: Human-readable explanation
    """

    rule_name: str
    blocked: bool = False
    requires_confirmation: bool = False
    reason_code: str | None = None
    reason: str | None = None

    @property
    def passed(self) -> bool:
        return not (self.blocked or self.requires_confirmation)

    def __bool__(self) -> bool:
        return self.passed


@dataclass(frozen=True)
class GuardrailDecision:
    requires_confirmation: bool = False
    blocked: bool = False
    blocked_reason: str | None = None
    reason_codes: tuple[str, ...] = ()
    confirmation_reasons: tuple[str, ...] = ()

    @property
    def auto_approved(self) -> bool:
        return not (self.blocked or self.requires_confirmation)


class GuardrailRule(ABC):
    """A single guardrail check over a candidate plan."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this rule."""
        ...

    @abstractmethod
    def check(self, context: GuardrailContext) -> RuleResult:
        ...

    def _pass(self) -> RuleResult:
        return RuleResult(rule_name=self.name)


class RuleChain:
    """
    Ordered chain of guardrail rules.

    Evaluation stops at the first blocking rule. Confirmation rules do not
    short-circuit so that every reason for asking the user is reported.
    """

    def __init__(self, rules: list[GuardrailRule] | None = None) -> None:
        self._rules: list[GuardrailRule] = rules or []

    def add(self, rule: GuardrailRule) -> RuleChain:
        self._rules.append(rule)
        return self

    def remove(self, name: str) -> bool:
        """Remove a rule by name."""
        for i, rule in enumerate(self._rules):
            if rule.name == name:
                del self._rules[i]
                return True
        return False

    def get(self, name: str) -> GuardrailRule | None:
        for rule in self._rules:
            if rule.name == name:
                return rule
        return None

    @property
    def rules(self) -> list[GuardrailRule]:
        return list(self._rules)

    def evaluate(self, context: GuardrailContext) -> GuardrailDecision:
        reason_codes: list[str] = []
        confirmation_reasons: list[str] = []

        for rule in self._rules:
            result = rule.check(context)
            if result.passed:
                continue

            if result.reason_code and result.reason_code not in reason_codes:
                reason_codes.append(result.reason_code)

            if result.blocked:
                return GuardrailDecision(
                    blocked=True,
                    blocked_reason=result.reason,
                    reason_codes=tuple(reason_codes),
                )

            if result.reason:
                confirmation_reasons.append(result.reason)

        return GuardrailDecision(
            requires_confirmation=bool(confirmation_reasons) or bool(reason_codes),
            reason_codes=tuple(reason_codes),
            confirmation_reasons=tuple(confirmation_reasons),
        )

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[GuardrailRule]:
        return iter(self._rules)
