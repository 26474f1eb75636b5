"""
FlowPay - intent-first payment orchestration.

Turns a payment trigger (QR scan, contact, payment link) into an intent,
resolves it against the user's wallets, banks and cards under spending
guardrails, and hands the user off to the wallet app that completes it.

Usage:
    >>> from flowpay import FlowPay
    >>>
    >>> flow = FlowPay()
    >>> intent = await flow.scan_qr("user-1", raw_qr_text)
    >>> result = await flow.resolve("user-1", intent)
    >>> if result.success and not result.requires_confirmation:
    ...     await flow.start_handoff("user-1", result.plan)
"""

from flowpay.client import FlowPay
from flowpay.core.config import Config
from flowpay.core.exceptions import (
    BlockedByGuardrailError,
    ConfigurationError,
    CurrencyMismatchError,
    FlowPayError,
    HandoffError,
    HandoffStateError,
    HandoffUnsupportedError,
    InsufficientFundsError,
    IntentStateError,
    LockError,
    NoFundingSourceError,
    PlanPersistenceError,
    ResolutionError,
    StorageError,
    ValidationError,
)
from flowpay.core.types import (
    ExecutionMode,
    FundingRailType,
    FundingSource,
    ReasonCode,
    ResolutionPlan,
    ResolutionStep,
    ResolveResult,
    RiskLevel,
    StepAction,
)
from flowpay.guardrails import GuardrailConfig, GuardrailDecision, GuardrailPolicy, UserPaymentState
from flowpay.handoff import HandoffCoordinator, HandoffOutcome, HandoffState, ManualForegroundSource
from flowpay.intents import (
    Intent,
    IntentParser,
    IntentStatus,
    IntentTrigger,
    IntentType,
    PayMerchantIntent,
    ReceiveMoneyIntent,
    SendMoneyIntent,
    TriggerKind,
    TriggerPayload,
    parse_payment_link,
    parse_qr_code,
)
from flowpay.resolution import ResolutionEngine, ResolutionService, RiskPolicy, explain_plan

__version__ = "0.1.0"

__all__ = [
    "FlowPay",
    "Config",
    # Exceptions
    "FlowPayError",
    "ConfigurationError",
    "ValidationError",
    "IntentStateError",
    "StorageError",
    "PlanPersistenceError",
    "LockError",
    "ResolutionError",
    "NoFundingSourceError",
    "InsufficientFundsError",
    "CurrencyMismatchError",
    "BlockedByGuardrailError",
    "HandoffError",
    "HandoffUnsupportedError",
    "HandoffStateError",
    # Types
    "ExecutionMode",
    "FundingRailType",
    "FundingSource",
    "ReasonCode",
    "ResolutionPlan",
    "ResolutionStep",
    "ResolveResult",
    "RiskLevel",
    "StepAction",
    # Guardrails
    "GuardrailConfig",
    "GuardrailDecision",
    "GuardrailPolicy",
    "UserPaymentState",
    # Handoff
    "HandoffCoordinator",
    "HandoffOutcome",
    "HandoffState",
    "ManualForegroundSource",
    # Intents
    "Intent",
    "IntentParser",
    "IntentStatus",
    "IntentTrigger",
    "IntentType",
    "PayMerchantIntent",
    "ReceiveMoneyIntent",
    "SendMoneyIntent",
    "TriggerKind",
    "TriggerPayload",
    "parse_payment_link",
    "parse_qr_code",
    # Resolution
    "ResolutionEngine",
    "ResolutionService",
    "RiskPolicy",
    "explain_plan",
]
