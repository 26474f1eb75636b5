"""
Resolution Engine.

Turns a pending intent into a concrete, ordered plan: which source pays,
whether it needs a top-up first, which rail the user is handed off to, and
whether the user has to confirm. The engine performs no I/O; everything it
needs is passed in.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from flowpay.core.exceptions import (
    BlockedByGuardrailError,
    CurrencyMismatchError,
    NoFundingSourceError,
    ResolutionError,
    ValidationError,
)
from flowpay.core.logging import get_logger
from flowpay.core.types import (
    AWAITING_USER_CONFIRMATION,
    ExecutionMode,
    FundingSource,
    ReasonCode,
    ResolutionPlan,
    ResolutionStep,
    ResolveResult,
    StepAction,
)
from flowpay.guardrails.base import GuardrailConfig, UserPaymentState
from flowpay.guardrails.policy import GuardrailPolicy
from flowpay.intents.models import Intent, IntentType, Money
from flowpay.resolution.allocation import (
    CandidateKind,
    FundingCandidate,
    build_candidate,
    eligible_sources,
    sources_in_currency,
)
from flowpay.resolution.risk import RiskPolicy, RiskSignals

logger = get_logger("resolution")

_SHAPE_REASONS: dict[CandidateKind, tuple[ReasonCode, ...]] = {
    CandidateKind.DIRECT: (),
    CandidateKind.TOP_UP: (ReasonCode.INSUFFICIENT_BALANCE, ReasonCode.TOPUP_REQUIRED),
    CandidateKind.FALLBACK: (ReasonCode.INSUFFICIENT_BALANCE, ReasonCode.FALLBACK_SOURCE),
    CandidateKind.SPLIT: (ReasonCode.INSUFFICIENT_BALANCE, ReasonCode.SPLIT_PAYMENT),
}


def _format_money(amount: Decimal, currency: str) -> str:
    return str(Money(value=amount, currency=currency))


def explain_plan(plan: ResolutionPlan) -> str:
    """Human-readable summary of a plan's steps."""
    return ". Then ".join(step.description for step in plan.steps)


def _payable_amount(intent: Intent) -> Money:
    if intent.type == IntentType.RECEIVE_MONEY:
        raise ValidationError(
            "Receive intents do not need funding",
            details={"intent_id": intent.id},
        )
    money = intent.money
    if money is None or not money.value.is_finite() or money.value <= 0:
        raise ValidationError(
            "Intent amount must be greater than zero",
            details={"intent_id": intent.id, "amount": str(money.value) if money else None},
        )
    return money


class ResolutionEngine:
    """
    Deterministic planner for payment intents.

    Example:
        >>> engine = ResolutionEngine()
        >>> result = engine.resolve(intent, sources, GuardrailConfig(), UserPaymentState())
        >>> if result.success:
        ...     print(explain_plan(result.plan))
    """

    def __init__(
        self,
        policy: GuardrailPolicy | None = None,
        risk_policy: RiskPolicy | None = None,
    ) -> None:
        self._policy = policy or GuardrailPolicy()
        self._risk = risk_policy or RiskPolicy()

    @property
    def policy(self) -> GuardrailPolicy:
        return self._policy

    @property
    def risk_policy(self) -> RiskPolicy:
        return self._risk

    def resolve(
        self,
        intent: Intent,
        sources: list[FundingSource],
        config: GuardrailConfig,
        state: UserPaymentState,
        signals: RiskSignals | None = None,
        now: datetime | None = None,
        today: date | None = None,
    ) -> ResolveResult:
        """
        Resolve an intent into a plan.

        Resolution failures come back as `ResolveResult(success=False)`
        with a reason code; they are never raised.

        Raises:
            ValidationError: If the intent cannot be funded at all (receive
                intents, zero or negative amounts)
        """
        money = _payable_amount(intent)

        try:
            plan = self.build_plan(intent.id, money, sources, config, state, signals, now, today)
        except ResolutionError as e:
            logger.info(f"Resolution failed for {intent.id}: {e}")
            return ResolveResult.failure(
                e.reason_code,
                e.message,
                intent_id=intent.id,
                **e.details,
            )

        return ResolveResult(success=True, plan=plan)

    def build_plan(
        self,
        intent_id: str,
        money: Money,
        sources: list[FundingSource],
        config: GuardrailConfig,
        state: UserPaymentState,
        signals: RiskSignals | None = None,
        now: datetime | None = None,
        today: date | None = None,
    ) -> ResolutionPlan:
        """
        Build a plan or raise the ResolutionError describing why not.
        """
        amount = money.value
        currency = money.currency.upper()

        eligible = eligible_sources(sources)
        if not eligible:
            raise NoFundingSourceError("No linked funding source available", intent_id=intent_id)

        matching = sources_in_currency(eligible, currency)
        if not matching:
            raise CurrencyMismatchError(
                f"No funding source in {currency}",
                currency=currency,
                available_currencies=sorted({s.currency for s in eligible}),
                intent_id=intent_id,
            )

        candidate = build_candidate(amount, matching, config)

        decision = self._policy.evaluate(candidate, amount, state, config, today)
        if decision.blocked:
            raise BlockedByGuardrailError(
                decision.blocked_reason or "Payment blocked by guardrails",
                blocked_reason=decision.blocked_reason or "",
                intent_id=intent_id,
                details={
                    "blocked_reason": decision.blocked_reason,
                    "reason_codes": list(decision.reason_codes),
                },
            )

        reason_codes = [code.value for code in _SHAPE_REASONS[candidate.kind]]
        reason_codes.extend(c for c in decision.reason_codes if c not in reason_codes)
        if decision.requires_confirmation:
            reason_codes.append(ReasonCode.CONFIRMATION_REQUIRED.value)

        paying = candidate.sources
        risk_level, risk_reasons = self._risk.assess(
            amount,
            paying,
            signals or RiskSignals(),
            decision.requires_confirmation,
            now,
        )
        reason_codes.extend(risk_reasons)

        chosen = paying[0]
        plan = ResolutionPlan(
            intent_id=intent_id,
            amount=amount,
            currency=currency,
            chosen_rail=chosen.rail_key,
            fallback_rail=self._fallback_rail(matching, chosen),
            steps=self._build_steps(candidate, currency),
            topup_needed=candidate.topup_amount > 0,
            topup_amount=candidate.topup_amount,
            execution_mode=ExecutionMode.ASYNC if decision.requires_confirmation else ExecutionMode.SYNC,
            pending_reason=AWAITING_USER_CONFIRMATION if decision.requires_confirmation else None,
            reason_codes=tuple(reason_codes),
            confirmation_reasons=decision.confirmation_reasons,
            risk_level=risk_level,
        )

        logger.debug(f"Resolved {intent_id}: {explain_plan(plan)} [{', '.join(plan.reason_codes)}]")
        return plan

    @staticmethod
    def _fallback_rail(ordered: list[FundingSource], chosen: FundingSource) -> str | None:
        """Rail of the next source after the chosen one."""
        index = next(i for i, s in enumerate(ordered) if s.id == chosen.id)
        if index + 1 < len(ordered):
            return ordered[index + 1].rail_key
        return None

    @staticmethod
    def _build_steps(candidate: FundingCandidate, currency: str) -> tuple[ResolutionStep, ...]:
        steps: list[ResolutionStep] = []
        for allocation in candidate.allocations:
            source = allocation.source
            if allocation.topup_amount > 0:
                steps.append(
                    ResolutionStep(
                        action=StepAction.TOP_UP,
                        description=f"Add {_format_money(allocation.topup_amount, currency)} to {source.name}",
                        source_id=source.id,
                        source_type=source.type,
                        amount=allocation.topup_amount,
                    )
                )
            steps.append(
                ResolutionStep(
                    action=StepAction.PAY,
                    description=f"Pay {_format_money(allocation.pay_amount, currency)} using {source.name}",
                    source_id=source.id,
                    source_type=source.type,
                    amount=allocation.pay_amount,
                )
            )
        return tuple(steps)
