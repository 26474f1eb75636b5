"""
Intent model.

FlowPay has exactly three intents and every user action maps to one of them.
Each is its own dataclass so that an intent always has exactly one of the
three shapes; `Intent` is their union.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, TypeAlias


class IntentType(str, Enum):
    PAY_MERCHANT = "PAY_MERCHANT"
    SEND_MONEY = "SEND_MONEY"
    RECEIVE_MONEY = "RECEIVE_MONEY"


class IntentTrigger(str, Enum):
    """Where an intent came from."""

    QR_SCAN = "QR_SCAN"
    CONTACT_SELECT = "CONTACT_SELECT"
    PAYMENT_LINK = "PAYMENT_LINK"
    MANUAL = "MANUAL"


class IntentStatus(str, Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {IntentStatus.COMPLETED, IntentStatus.CANCELLED, IntentStatus.FAILED}
)

# One-directional lifecycle: target -> statuses it may be entered from
ALLOWED_TRANSITIONS: dict[IntentStatus, frozenset[IntentStatus]] = {
    IntentStatus.AUTHORIZED: frozenset({IntentStatus.PENDING}),
    IntentStatus.COMPLETED: frozenset({IntentStatus.AUTHORIZED}),
    IntentStatus.CANCELLED: frozenset({IntentStatus.PENDING}),
    IntentStatus.FAILED: frozenset({IntentStatus.PENDING, IntentStatus.AUTHORIZED}),
}


def can_transition(current: IntentStatus, target: IntentStatus) -> bool:
    return current in ALLOWED_TRANSITIONS.get(target, frozenset())


def generate_intent_id() -> str:
    return f"intent_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Money:
    value: Decimal
    currency: str

    def to_dict(self) -> dict[str, str]:
        return {"value": str(self.value), "currency": self.currency}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Money:
        return cls(value=Decimal(str(data["value"])), currency=data["currency"])

    def __str__(self) -> str:
        return f"{self.currency} {self.value:.2f}"


@dataclass(frozen=True)
class Merchant:
    id: str
    name: str
    logo: str | None = None


@dataclass(frozen=True)
class Recipient:
    name: str
    id: str | None = None
    phone: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class Counterparty:
    name: str
    phone: str | None = None


@dataclass
class BaseIntent:
    """Fields shared by every intent."""

    trigger: IntentTrigger
    id: str = field(default_factory=generate_intent_id, kw_only=True)
    created_at: datetime = field(default_factory=datetime.now, kw_only=True)
    status: IntentStatus = field(default=IntentStatus.PENDING, kw_only=True)

    type: IntentType = field(init=False)

    @property
    def money(self) -> Money | None:
        """Amount to move, if the intent carries one."""
        return None

    def _base_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "trigger": self.trigger.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PayMerchantIntent(BaseIntent):
    """Pay a business or merchant."""

    merchant: Merchant
    amount: Money
    reference: str | None = None
    available_rails: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.type = IntentType.PAY_MERCHANT
        self.available_rails = tuple(self.available_rails)

    @property
    def money(self) -> Money:
        return self.amount

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data.update(
            merchant={"id": self.merchant.id, "name": self.merchant.name, "logo": self.merchant.logo},
            amount=self.amount.to_dict(),
            reference=self.reference,
            available_rails=list(self.available_rails),
        )
        return data


@dataclass
class SendMoneyIntent(BaseIntent):
    """Send money to a person."""

    recipient: Recipient
    amount: Money
    note: str | None = None

    def __post_init__(self) -> None:
        self.type = IntentType.SEND_MONEY

    @property
    def money(self) -> Money:
        return self.amount

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data.update(
            recipient={
                "id": self.recipient.id,
                "name": self.recipient.name,
                "phone": self.recipient.phone,
                "email": self.recipient.email,
            },
            amount=self.amount.to_dict(),
            note=self.note,
        )
        return data


@dataclass
class ReceiveMoneyIntent(BaseIntent):
    """Request money from someone."""

    amount: Money | None = None
    counterparty: Counterparty | None = None
    note: str | None = None

    def __post_init__(self) -> None:
        self.type = IntentType.RECEIVE_MONEY

    @property
    def money(self) -> Money | None:
        return self.amount

    def to_dict(self) -> dict[str, Any]:
        data = self._base_dict()
        data.update(
            amount=self.amount.to_dict() if self.amount else None,
            counterparty=(
                {"name": self.counterparty.name, "phone": self.counterparty.phone}
                if self.counterparty
                else None
            ),
            note=self.note,
        )
        return data


Intent: TypeAlias = PayMerchantIntent | SendMoneyIntent | ReceiveMoneyIntent


def intent_from_dict(data: dict[str, Any]) -> Intent:
    """Rebuild an intent from its persisted form."""
    common = {
        "id": data["id"],
        "trigger": IntentTrigger(data["trigger"]),
        "status": IntentStatus(data["status"]),
        "created_at": datetime.fromisoformat(data["created_at"]),
    }
    intent_type = IntentType(data["type"])

    if intent_type == IntentType.PAY_MERCHANT:
        m = data["merchant"]
        return PayMerchantIntent(
            merchant=Merchant(id=m["id"], name=m["name"], logo=m.get("logo")),
            amount=Money.from_dict(data["amount"]),
            reference=data.get("reference"),
            available_rails=tuple(data.get("available_rails") or ()),
            **common,
        )

    if intent_type == IntentType.SEND_MONEY:
        r = data["recipient"]
        return SendMoneyIntent(
            recipient=Recipient(
                name=r["name"], id=r.get("id"), phone=r.get("phone"), email=r.get("email")
            ),
            amount=Money.from_dict(data["amount"]),
            note=data.get("note"),
            **common,
        )

    cp = data.get("counterparty")
    return ReceiveMoneyIntent(
        amount=Money.from_dict(data["amount"]) if data.get("amount") else None,
        counterparty=Counterparty(name=cp["name"], phone=cp.get("phone")) if cp else None,
        note=data.get("note"),
        **common,
    )
