"""
Intents for FlowPay.

An intent is the user's declared payment goal before any funding decision:
pay a merchant, send money to a person, or request money.
"""

from flowpay.intents.models import (
    Counterparty,
    Intent,
    IntentStatus,
    IntentTrigger,
    IntentType,
    Merchant,
    Money,
    PayMerchantIntent,
    ReceiveMoneyIntent,
    Recipient,
    SendMoneyIntent,
    intent_from_dict,
)
from flowpay.intents.parser import (
    IntentParser,
    TriggerKind,
    TriggerPayload,
    create_intent_from_contact,
    create_pay_intent,
    create_receive_intent,
    create_send_intent,
    parse_payment_link,
    parse_qr_code,
)
from flowpay.intents.service import IntentService

__all__ = [
    "Counterparty",
    "Intent",
    "IntentStatus",
    "IntentTrigger",
    "IntentType",
    "Merchant",
    "Money",
    "PayMerchantIntent",
    "ReceiveMoneyIntent",
    "Recipient",
    "SendMoneyIntent",
    "intent_from_dict",
    "IntentParser",
    "TriggerKind",
    "TriggerPayload",
    "create_intent_from_contact",
    "create_pay_intent",
    "create_receive_intent",
    "create_send_intent",
    "parse_payment_link",
    "parse_qr_code",
    "IntentService",
]
