from datetime import date
from decimal import Decimal

import pytest

from flowpay.core.types import FundingRailType, FundingSource
from flowpay.guardrails.base import GuardrailConfig, UserPaymentState
from flowpay.intents.parser import create_pay_intent
from flowpay.storage.memory import InMemoryStorage

TODAY = date(2026, 10, 19)


def make_source(
    source_id: str = "w1",
    balance: str = "100",
    priority: int = 1,
    currency: str = "MYR",
    **kwargs,
) -> FundingSource:
    """Linked, available wallet unless overridden."""
    kwargs.setdefault("type", FundingRailType.WALLET)
    kwargs.setdefault("name", f"Wallet {source_id}")
    return FundingSource(
        id=source_id,
        balance=Decimal(balance),
        priority=priority,
        currency=currency,
        **kwargs,
    )


def make_intent(amount: str = "20", currency: str = "MYR"):
    return create_pay_intent({"id": "m1", "name": "Cafe"}, Decimal(amount), currency)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def config() -> GuardrailConfig:
    return GuardrailConfig()


@pytest.fixture
def state() -> UserPaymentState:
    return UserPaymentState(last_reset_date=TODAY)
