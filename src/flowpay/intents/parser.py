"""
Intent Parser.

Parses trigger inputs and maps them to intents. Every trigger maps to exactly
one intent type:

- Merchant QR (JSON or EMVCo) → PAY_MERCHANT
- Personal QR → SEND_MONEY
- Contact selection → SEND_MONEY
- Pay link → PAY_MERCHANT, request link → RECEIVE_MONEY

Unrecognized payloads return None ("code not recognized"); parsing never
raises on bad input.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import parse_qs, unquote

from flowpay.core.logging import get_logger
from flowpay.core.types import AmountType, to_decimal
from flowpay.intents.emvco import is_emvco_qr, parse_emvco
from flowpay.intents.models import (
    Counterparty,
    Intent,
    IntentTrigger,
    Merchant,
    Money,
    PayMerchantIntent,
    ReceiveMoneyIntent,
    Recipient,
    SendMoneyIntent,
)

logger = get_logger("parser")

DEFAULT_CURRENCY = "USD"

PAY_URI_PREFIX = "flow://pay/"
SEND_URI_PREFIX = "flow://send/"


def _money(amount: Any, currency: str | None) -> Money:
    return Money(value=to_decimal(amount), currency=(currency or DEFAULT_CURRENCY).upper())


def _split_uri(raw: str, prefix: str) -> tuple[str, dict[str, str]]:
    """Return the decoded path name and first value of each query parameter."""
    rest = raw[len(prefix):]
    path, _, query = rest.partition("?")
    params = {k: v[0] for k, v in parse_qs(query).items() if v}
    return unquote(path), params


def parse_qr_code(raw_data: str) -> Intent | None:
    """
    Parse scanned QR content into an intent.

    EMVCo merchant QRs (`000201...`) are decoded first, then JSON payloads;
    anything else is retried against the lightweight `flow://pay/...` and
    `flow://send/...` URIs.
    """
    if isinstance(raw_data, str) and is_emvco_qr(raw_data.strip()):
        return _parse_emvco_qr(raw_data)

    try:
        payload = json.loads(raw_data)
    except (TypeError, ValueError):
        return _parse_simple_qr(raw_data)

    if not isinstance(payload, dict):
        return None

    try:
        if payload.get("type") == "merchant":
            return PayMerchantIntent(
                trigger=IntentTrigger.QR_SCAN,
                merchant=Merchant(id=str(payload["merchantId"]), name=payload["merchantName"]),
                amount=_money(payload["amount"], payload["currency"]),
                reference=payload.get("reference"),
            )

        if payload.get("type") == "personal":
            return SendMoneyIntent(
                trigger=IntentTrigger.QR_SCAN,
                recipient=Recipient(
                    id=payload.get("userId"),
                    name=payload["name"],
                    phone=payload.get("phone"),
                ),
                amount=_money(payload.get("amount"), payload.get("currency")),
            )
    except (KeyError, ValueError) as e:
        logger.debug(f"QR payload missing or invalid field: {e}")
        return None

    return None


def _parse_emvco_qr(raw_data: str) -> PayMerchantIntent | None:
    data = parse_emvco(raw_data)
    if data is None:
        return None

    merchant_id = (
        data.reference_label
        or data.terminal_label
        or re.sub(r"\s+", "_", data.merchant_name.lower())
    )
    try:
        return PayMerchantIntent(
            trigger=IntentTrigger.QR_SCAN,
            merchant=Merchant(id=merchant_id, name=data.merchant_name),
            amount=_money(data.amount, data.currency),
            reference=data.reference_label or data.bill_number,
            available_rails=data.available_rails,
        )
    except ValueError as e:
        logger.debug(f"Invalid EMVCo amount: {e}")
        return None


def _parse_simple_qr(raw_data: Any) -> Intent | None:
    """Parse `flow://` URI QR formats."""
    if not isinstance(raw_data, str):
        return None

    try:
        if raw_data.startswith(PAY_URI_PREFIX):
            merchant_name, params = _split_uri(raw_data, PAY_URI_PREFIX)
            merchant_id = params.get("id") or re.sub(r"\s", "_", merchant_name.lower())
            return PayMerchantIntent(
                trigger=IntentTrigger.QR_SCAN,
                merchant=Merchant(id=merchant_id, name=merchant_name),
                amount=_money(params.get("amount"), params.get("currency")),
                reference=params.get("ref"),
            )

        if raw_data.startswith(SEND_URI_PREFIX):
            recipient_name, params = _split_uri(raw_data, SEND_URI_PREFIX)
            return SendMoneyIntent(
                trigger=IntentTrigger.QR_SCAN,
                recipient=Recipient(
                    id=params.get("id"),
                    name=recipient_name,
                    phone=params.get("phone"),
                ),
                amount=_money(params.get("amount"), params.get("currency")),
                note=params.get("note"),
            )
    except ValueError as e:
        logger.debug(f"Invalid flow:// QR content: {e}")
        return None

    return None


def create_intent_from_contact(contact: dict[str, Any]) -> SendMoneyIntent:
    """Contact selection always becomes SEND_MONEY with the amount left at zero."""
    return SendMoneyIntent(
        trigger=IntentTrigger.CONTACT_SELECT,
        recipient=Recipient(
            id=contact.get("id"),
            name=contact["name"],
            phone=contact.get("phone"),
            email=contact.get("email"),
        ),
        amount=_money(0, DEFAULT_CURRENCY),
    )


def parse_payment_link(payload: dict[str, Any]) -> Intent:
    """
    Parse a payment link payload.

    Pay links → PAY_MERCHANT; request links → RECEIVE_MONEY.
    """
    if payload.get("direction") == "pay":
        return PayMerchantIntent(
            trigger=IntentTrigger.PAYMENT_LINK,
            merchant=Merchant(
                id=payload.get("merchantId") or "unknown",
                name=payload.get("merchantName") or "Unknown Merchant",
            ),
            amount=_money(payload.get("amount"), payload.get("currency")),
            reference=payload.get("reference"),
        )

    # A request link means someone wants to receive money from the user
    amount = payload.get("amount")
    name = payload.get("recipientName")
    return ReceiveMoneyIntent(
        trigger=IntentTrigger.PAYMENT_LINK,
        amount=_money(amount, payload.get("currency")) if amount else None,
        counterparty=Counterparty(name=name) if name else None,
    )


def create_pay_intent(
    merchant: dict[str, Any],
    amount: AmountType,
    currency: str = DEFAULT_CURRENCY,
    reference: str | None = None,
) -> PayMerchantIntent:
    """Create a manual PAY_MERCHANT intent."""
    return PayMerchantIntent(
        trigger=IntentTrigger.MANUAL,
        merchant=Merchant(id=merchant["id"], name=merchant["name"], logo=merchant.get("logo")),
        amount=_money(amount, currency),
        reference=reference,
    )


def create_send_intent(
    recipient: dict[str, Any],
    amount: AmountType,
    currency: str = DEFAULT_CURRENCY,
    note: str | None = None,
) -> SendMoneyIntent:
    """Create a manual SEND_MONEY intent."""
    return SendMoneyIntent(
        trigger=IntentTrigger.MANUAL,
        recipient=Recipient(
            id=recipient.get("id"),
            name=recipient["name"],
            phone=recipient.get("phone"),
            email=recipient.get("email"),
        ),
        amount=_money(amount, currency),
        note=note,
    )


def create_receive_intent(
    amount: AmountType | None = None,
    currency: str | None = None,
    note: str | None = None,
    counterparty: dict[str, Any] | None = None,
) -> ReceiveMoneyIntent:
    """Create a manual RECEIVE_MONEY intent (the user requests money)."""
    return ReceiveMoneyIntent(
        trigger=IntentTrigger.MANUAL,
        amount=_money(amount, currency) if amount else None,
        counterparty=(
            Counterparty(name=counterparty["name"], phone=counterparty.get("phone"))
            if counterparty
            else None
        ),
        note=note,
    )


class TriggerKind(str, Enum):
    QR = "qr"
    CONTACT = "contact"
    PAYMENT_LINK = "payment_link"


@dataclass
class TriggerPayload:
    """
    Raw trigger input.

    `data` is the raw QR text for QR triggers and a dict for contact
    selections and payment links.
    """

    kind: TriggerKind
    data: Any
    metadata: dict[str, Any] = field(default_factory=dict)


class IntentParser:
    """Dispatches trigger payloads to the matching parse function."""

    def parse(self, trigger: TriggerPayload) -> Intent | None:
        if trigger.kind == TriggerKind.QR:
            return parse_qr_code(trigger.data)

        if not isinstance(trigger.data, dict):
            logger.debug(f"Ignoring {trigger.kind.value} trigger with non-object payload")
            return None

        try:
            if trigger.kind == TriggerKind.CONTACT:
                return create_intent_from_contact(trigger.data)
            return parse_payment_link(trigger.data)
        except (KeyError, ValueError) as e:
            logger.debug(f"Unrecognized {trigger.kind.value} payload: {e}")
            return None
