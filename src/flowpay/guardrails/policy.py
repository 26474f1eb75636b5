"""
Guardrail policy.

Evaluates a candidate plan against the user's guardrail settings and
payment state. Evaluation is pure: counters only move when a plan is
committed through DailyApprovalTracker.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from flowpay.core.logging import get_logger
from flowpay.guardrails.base import (
    GuardrailConfig,
    GuardrailContext,
    GuardrailDecision,
    RuleChain,
    UserPaymentState,
)
from flowpay.guardrails.rules import default_rule_chain

if TYPE_CHECKING:
    from flowpay.resolution.allocation import FundingCandidate
    from flowpay.storage.base import StorageBackend

logger = get_logger("guardrails")


class GuardrailPolicy:
    """Runs the guardrail rule chain over candidate plans."""

    def __init__(self, rules: RuleChain | None = None) -> None:
        self._rules = rules if rules is not None else default_rule_chain()

    @property
    def rules(self) -> RuleChain:
        return self._rules

    def evaluate(
        self,
        candidate: FundingCandidate,
        amount: Decimal,
        state: UserPaymentState,
        config: GuardrailConfig,
        today: date | None = None,
    ) -> GuardrailDecision:
        """
        Decide whether a candidate is auto-approved, needs confirmation or is blocked.

        A daily counter stamped with another date counts as zero.
        """
        context = GuardrailContext(
            candidate=candidate,
            amount=amount,
            state=state.reset_if_stale(today),
            config=config,
        )
        decision = self._rules.evaluate(context)

        if decision.blocked:
            logger.info(f"Guardrails blocked payment of {amount}: {decision.blocked_reason}")
        elif decision.requires_confirmation:
            logger.debug(
                f"Guardrails require confirmation for {amount}: {list(decision.reason_codes)}"
            )
        return decision


class GuardrailConfigStore:
    """Per-user guardrail settings persisted in the `guardrail_config` collection."""

    COLLECTION = "guardrail_config"

    def __init__(self, storage: StorageBackend) -> None:
        self._storage = storage

    async def get(self, user_id: str) -> GuardrailConfig:
        """Load a user's settings, falling back to the defaults."""
        data = await self._storage.get(self.COLLECTION, user_id)
        return GuardrailConfig.from_dict(data)

    async def save(self, user_id: str, config: GuardrailConfig) -> None:
        await self._storage.save(self.COLLECTION, user_id, config.to_dict())
