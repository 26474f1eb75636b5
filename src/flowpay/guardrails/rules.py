"""
Built-in guardrail rules.

Blocking rules come first so that a blocked candidate never collects
confirmation reasons.
"""

from __future__ import annotations

from flowpay.core.types import ReasonCode
from flowpay.guardrails.base import GuardrailContext, GuardrailRule, RuleChain, RuleResult


class CoverageRule(GuardrailRule):
    """Blocks candidates whose sources (plus planned top-ups) fall short."""

    @property
    def name(self) -> str:
        return "coverage"

    def check(self, context: GuardrailContext) -> RuleResult:
        candidate = context.candidate
        config = context.config

        if candidate.total_funded < context.amount:
            return RuleResult(
                rule_name=self.name,
                blocked=True,
                reason_code=ReasonCode.CANNOT_COVER_AMOUNT.value,
                reason=(
                    f"Selected sources cover {candidate.total_funded} "
                    f"of {context.amount}"
                ),
            )

        if candidate.is_single_source and not config.allow_split_payments:
            source = candidate.allocations[0].source
            if source.balance + config.max_auto_top_up_amount < context.amount:
                return RuleResult(
                    rule_name=self.name,
                    blocked=True,
                    reason_code=ReasonCode.CANNOT_COVER_AMOUNT.value,
                    reason=f"{source.name} cannot cover {context.amount} even with a top-up",
                )

        return self._pass()


class HardLimitRule(GuardrailRule):
    """Blocks payments far above the confirmation threshold."""

    @property
    def name(self) -> str:
        return "hard_limit"

    def check(self, context: GuardrailContext) -> RuleResult:
        limit = context.config.hard_block_limit
        if context.amount > limit:
            return RuleResult(
                rule_name=self.name,
                blocked=True,
                reason_code=ReasonCode.OVER_HARD_LIMIT.value,
                reason=f"Amount {context.amount} exceeds maximum allowed {limit}",
            )
        return self._pass()


class ConfirmationThresholdRule(GuardrailRule):
    @property
    def name(self) -> str:
        return "confirmation_threshold"

    def check(self, context: GuardrailContext) -> RuleResult:
        threshold = context.config.require_confirmation_above
        if context.amount > threshold:
            return RuleResult(
                rule_name=self.name,
                requires_confirmation=True,
                reason_code=ReasonCode.OVER_CONFIRMATION_THRESHOLD.value,
                reason=f"Amount exceeds {threshold} confirmation threshold",
            )
        return self._pass()


class DailyLimitRule(GuardrailRule):
    """Keeps today's auto-approved total within the daily limit."""

    @property
    def name(self) -> str:
        return "daily_limit"

    def check(self, context: GuardrailContext) -> RuleResult:
        limit = context.config.daily_auto_limit
        projected = context.state.daily_auto_approved + context.amount
        if projected > limit:
            return RuleResult(
                rule_name=self.name,
                requires_confirmation=True,
                reason_code=ReasonCode.OVER_DAILY_LIMIT.value,
                reason=f"Would exceed daily auto-limit of {limit}",
            )
        return self._pass()


class SinglePaymentAutoRule(GuardrailRule):
    @property
    def name(self) -> str:
        return "single_payment_auto"

    def check(self, context: GuardrailContext) -> RuleResult:
        limit = context.config.max_single_payment_auto
        if context.amount > limit:
            return RuleResult(
                rule_name=self.name,
                requires_confirmation=True,
                reason_code=ReasonCode.OVER_AUTO_LIMIT.value,
                reason=f"Amount exceeds auto-approve limit of {limit}",
            )
        return self._pass()


class SourceThresholdRule(GuardrailRule):
    """Honours each source's own confirmation threshold."""

    @property
    def name(self) -> str:
        return "source_threshold"

    def check(self, context: GuardrailContext) -> RuleResult:
        for allocation in context.candidate.allocations:
            threshold = allocation.source.require_confirm_above
            if threshold is not None and allocation.pay_amount > threshold:
                return RuleResult(
                    rule_name=self.name,
                    requires_confirmation=True,
                    reason_code=ReasonCode.OVER_SOURCE_THRESHOLD.value,
                    reason=f"{allocation.source.name} requires confirmation above {threshold}",
                )
        return self._pass()


class SourceTopUpLimitRule(GuardrailRule):
    @property
    def name(self) -> str:
        return "source_topup_limit"

    def check(self, context: GuardrailContext) -> RuleResult:
        for allocation in context.candidate.allocations:
            limit = allocation.source.max_auto_top_up
            if allocation.topup_amount > 0 and limit is not None and allocation.topup_amount > limit:
                return RuleResult(
                    rule_name=self.name,
                    requires_confirmation=True,
                    reason_code=ReasonCode.TOPUP_OVER_SOURCE_LIMIT.value,
                    reason=(
                        f"Top-up of {allocation.topup_amount} exceeds "
                        f"{allocation.source.name} auto top-up limit of {limit}"
                    ),
                )
        return self._pass()


def default_rule_chain() -> RuleChain:
    """The standard rule set, in evaluation order."""
    return RuleChain(
        [
            CoverageRule(),
            HardLimitRule(),
            ConfirmationThresholdRule(),
            DailyLimitRule(),
            SinglePaymentAutoRule(),
            SourceThresholdRule(),
            SourceTopUpLimitRule(),
        ]
    )
