"""
Guardrails for FlowPay.

Spending controls that decide whether a plan runs automatically, needs the
user's confirmation, or is blocked.
"""

from flowpay.guardrails.base import (
    GuardrailConfig,
    GuardrailContext,
    GuardrailDecision,
    GuardrailRule,
    RuleChain,
    RuleResult,
    UserPaymentState,
)
from flowpay.guardrails.daily import DailyApprovalTracker
from flowpay.guardrails.policy import GuardrailConfigStore, GuardrailPolicy
from flowpay.guardrails.rules import (
    ConfirmationThresholdRule,
    CoverageRule,
    DailyLimitRule,
    HardLimitRule,
    SinglePaymentAutoRule,
    SourceThresholdRule,
    SourceTopUpLimitRule,
    default_rule_chain,
)

__all__ = [
    "GuardrailConfig",
    "GuardrailContext",
    "GuardrailDecision",
    "GuardrailRule",
    "RuleChain",
    "RuleResult",
    "UserPaymentState",
    "DailyApprovalTracker",
    "GuardrailConfigStore",
    "GuardrailPolicy",
    "ConfirmationThresholdRule",
    "CoverageRule",
    "DailyLimitRule",
    "HardLimitRule",
    "SinglePaymentAutoRule",
    "SourceThresholdRule",
    "SourceTopUpLimitRule",
    "default_rule_chain",
]
