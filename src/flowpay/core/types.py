"""
Type definitions for FlowPay.

This module contains the enums, data classes, and type definitions shared by
the resolution engine, the guardrails and the handoff coordinator. Intent
types live in `flowpay.intents.models`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeAlias

# Type alias for flexible amount input
AmountType: TypeAlias = Decimal | int | float | str

ZERO = Decimal("0")


def to_decimal(value: AmountType | None, default: Decimal = ZERO) -> Decimal:
    """
    Convert an amount from an external payload to Decimal.

    Floats go through str() so that 12.5 becomes Decimal("12.5") rather than
    its binary expansion. Unparseable values, NaN and infinities raise
    ValueError.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def _parse_dt(val: str | datetime | None) -> datetime | None:
    if val is None:
        return None
    if isinstance(val, datetime):
        return val
    return datetime.fromisoformat(val.replace("Z", "+00:00"))


class FundingRailType(str, Enum):
    """Kinds of funding source a user can pay from."""

    WALLET = "wallet"
    BANK = "bank"
    CARD = "card"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    BNPL = "bnpl"


class StepAction(str, Enum):
    """Action performed by a resolution step."""

    TOP_UP = "TOP_UP"
    PAY = "PAY"


class ExecutionMode(str, Enum):
    """Whether a plan can run straight away or waits on the user."""

    SYNC = "sync"
    ASYNC = "async"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReasonCode(str, Enum):
    """Machine-readable explanations attached to plans and failures."""

    # Failures
    NO_FUNDING_SOURCE = "NO_FUNDING_SOURCE"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    BLOCKED_BY_GUARDRAIL = "BLOCKED_BY_GUARDRAIL"
    CURRENCY_MISMATCH = "CURRENCY_MISMATCH"

    # Plan shape
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    TOPUP_REQUIRED = "TOPUP_REQUIRED"
    FALLBACK_SOURCE = "FALLBACK_SOURCE"
    SPLIT_PAYMENT = "SPLIT_PAYMENT"

    # Guardrails
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    OVER_CONFIRMATION_THRESHOLD = "OVER_CONFIRMATION_THRESHOLD"
    OVER_AUTO_LIMIT = "OVER_AUTO_LIMIT"
    OVER_DAILY_LIMIT = "OVER_DAILY_LIMIT"
    OVER_SOURCE_THRESHOLD = "OVER_SOURCE_THRESHOLD"
    TOPUP_OVER_SOURCE_LIMIT = "TOPUP_OVER_SOURCE_LIMIT"
    OVER_HARD_LIMIT = "OVER_HARD_LIMIT"
    CANNOT_COVER_AMOUNT = "CANNOT_COVER_AMOUNT"

    # Risk
    HIGH_VALUE = "HIGH_VALUE"
    NEW_SOURCE = "NEW_SOURCE"


AWAITING_USER_CONFIRMATION = "AWAITING_USER_CONFIRMATION"


@dataclass(frozen=True)
class FundingSource:
    """A wallet, bank account or card the user can pay from."""

    id: str
    type: FundingRailType
    name: str
    balance: Decimal
    is_linked: bool = True
    is_available: bool = True
    priority: int = 0
    max_auto_top_up: Decimal | None = None
    require_confirm_above: Decimal | None = None
    currency: str = "USD"
    rail: str | None = None
    linked_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError(f"Funding source {self.id} has a negative balance")

    @property
    def is_eligible(self) -> bool:
        """Only linked and available sources take part in resolution."""
        return self.is_linked and self.is_available

    @property
    def rail_key(self) -> str:
        """Handoff rail for this source (defaults to its display name)."""
        return self.rail or self.name

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_currency: str = "USD") -> FundingSource:
        """
        Build a source from an external record.

        Accepts both the camelCase shape used by the app data store
        (`isLinked`, `maxAutoTopUp`, ...) and snake_case keys.
        """

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        max_top_up = pick("maxAutoTopUp", "max_auto_top_up")
        confirm_above = pick("requireConfirmAbove", "require_confirm_above")
        currency = pick("currency", default=default_currency)

        return cls(
            id=str(data["id"]),
            type=FundingRailType(data["type"]),
            name=data.get("name") or str(data["id"]),
            balance=to_decimal(data.get("balance")),
            is_linked=bool(pick("isLinked", "is_linked", default=False)),
            is_available=bool(pick("isAvailable", "is_available", default=False)),
            priority=int(pick("priority", default=0)),
            max_auto_top_up=to_decimal(max_top_up) if max_top_up is not None else None,
            require_confirm_above=to_decimal(confirm_above) if confirm_above is not None else None,
            currency=str(currency).upper(),
            rail=pick("rail"),
            linked_at=_parse_dt(pick("linkedAt", "linked_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "balance": str(self.balance),
            "is_linked": self.is_linked,
            "is_available": self.is_available,
            "priority": self.priority,
            "max_auto_top_up": str(self.max_auto_top_up) if self.max_auto_top_up is not None else None,
            "require_confirm_above": (
                str(self.require_confirm_above) if self.require_confirm_above is not None else None
            ),
            "currency": self.currency,
            "rail": self.rail,
            "linked_at": self.linked_at.isoformat() if self.linked_at else None,
        }


@dataclass(frozen=True)
class ResolutionStep:
    """One ordered step of a resolution plan."""

    action: StepAction
    description: str
    source_id: str | None = None
    source_type: FundingRailType | None = None
    amount: Decimal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "description": self.description,
            "source_id": self.source_id,
            "source_type": self.source_type.value if self.source_type else None,
            "amount": str(self.amount) if self.amount is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolutionStep:
        return cls(
            action=StepAction(data["action"]),
            description=data.get("description", ""),
            source_id=data.get("source_id"),
            source_type=FundingRailType(data["source_type"]) if data.get("source_type") else None,
            amount=Decimal(data["amount"]) if data.get("amount") is not None else None,
        )


@dataclass(frozen=True)
class ResolutionPlan:
    """
    Concrete, ordered set of funding steps chosen to satisfy an intent.

    Plans are immutable: a changed intent needs a new resolution, and
    superseded plans are simply not referenced again.
    """

    intent_id: str
    amount: Decimal
    currency: str
    chosen_rail: str
    steps: tuple[ResolutionStep, ...]
    fallback_rail: str | None = None
    topup_needed: bool = False
    topup_amount: Decimal = ZERO
    execution_mode: ExecutionMode = ExecutionMode.SYNC
    pending_reason: str | None = None
    reason_codes: tuple[str, ...] = ()
    confirmation_reasons: tuple[str, ...] = ()
    risk_level: RiskLevel = RiskLevel.LOW
    plan_id: str | None = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def requires_confirmation(self) -> bool:
        return self.pending_reason == AWAITING_USER_CONFIRMATION

    @property
    def auto_approved(self) -> bool:
        """True when the plan can run without an explicit user confirmation."""
        return not self.requires_confirmation

    @property
    def pay_steps(self) -> list[ResolutionStep]:
        return [s for s in self.steps if s.action == StepAction.PAY]

    def with_plan_id(self, plan_id: str) -> ResolutionPlan:
        return replace(self, plan_id=plan_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "intent_id": self.intent_id,
            "amount": str(self.amount),
            "currency": self.currency,
            "chosen_rail": self.chosen_rail,
            "fallback_rail": self.fallback_rail,
            "topup_needed": self.topup_needed,
            "topup_amount": str(self.topup_amount),
            "execution_mode": self.execution_mode.value,
            "pending_reason": self.pending_reason,
            "steps": [s.to_dict() for s in self.steps],
            "reason_codes": list(self.reason_codes),
            "confirmation_reasons": list(self.confirmation_reasons),
            "risk_level": self.risk_level.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResolutionPlan:
        return cls(
            plan_id=data.get("plan_id"),
            intent_id=data["intent_id"],
            amount=Decimal(data["amount"]),
            currency=data["currency"],
            chosen_rail=data["chosen_rail"],
            fallback_rail=data.get("fallback_rail"),
            topup_needed=bool(data.get("topup_needed", False)),
            topup_amount=Decimal(data.get("topup_amount", "0")),
            execution_mode=ExecutionMode(data.get("execution_mode", ExecutionMode.SYNC.value)),
            pending_reason=data.get("pending_reason"),
            steps=tuple(ResolutionStep.from_dict(s) for s in data.get("steps", [])),
            reason_codes=tuple(data.get("reason_codes", [])),
            confirmation_reasons=tuple(data.get("confirmation_reasons", [])),
            risk_level=RiskLevel(data.get("risk_level", RiskLevel.LOW.value)),
            created_at=_parse_dt(data.get("created_at")) or datetime.now(),
        )


@dataclass
class ResolveResult:
    """Result of a resolution attempt."""

    success: bool
    plan: ResolutionPlan | None = None
    plan_id: str | None = None
    reason_code: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def requires_confirmation(self) -> bool:
        return self.plan is not None and self.plan.requires_confirmation

    @classmethod
    def failure(cls, reason_code: str, error: str, **metadata: Any) -> ResolveResult:
        return cls(success=False, reason_code=reason_code, error=error, metadata=metadata)
