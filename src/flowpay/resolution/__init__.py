"""
Resolution for FlowPay.

Turns intents into plans: which source pays, which rail to hand off to,
and whether the user must confirm first.
"""

from flowpay.resolution.allocation import (
    Allocation,
    CandidateKind,
    FundingCandidate,
    build_candidate,
    eligible_sources,
    order_sources,
)
from flowpay.resolution.engine import ResolutionEngine, explain_plan
from flowpay.resolution.risk import (
    AmountSpikeFactor,
    NewSourceFactor,
    RiskFactor,
    RiskPolicy,
    RiskSignals,
)
from flowpay.resolution.service import ResolutionService
from flowpay.resolution.store import PlanStatus, PlanStore

__all__ = [
    "Allocation",
    "CandidateKind",
    "FundingCandidate",
    "build_candidate",
    "eligible_sources",
    "order_sources",
    "ResolutionEngine",
    "explain_plan",
    "AmountSpikeFactor",
    "NewSourceFactor",
    "RiskFactor",
    "RiskPolicy",
    "RiskSignals",
    "ResolutionService",
    "PlanStatus",
    "PlanStore",
]
