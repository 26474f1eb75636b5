"""
ResolutionService - storage-aware front of the resolution engine.

Loads the user's funding sources, guardrail settings, payment state and
history, runs the engine, and (on commit) persists the plan and counts
auto-approved spend.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, TypeVar

from flowpay.core.config import Config
from flowpay.core.logging import get_logger
from flowpay.core.types import FundingSource, ResolutionPlan, ResolveResult
from flowpay.funding.sources import FundingSourceService
from flowpay.guardrails.base import GuardrailConfig, UserPaymentState
from flowpay.guardrails.daily import DailyApprovalTracker
from flowpay.guardrails.policy import GuardrailConfigStore
from flowpay.intents.models import Intent
from flowpay.ledger.ledger import TransactionLog
from flowpay.ledger.lock import UserLockService
from flowpay.resilience.retry import execute_with_retry
from flowpay.resolution.engine import ResolutionEngine
from flowpay.resolution.risk import RiskSignals
from flowpay.resolution.store import PlanStore

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend

logger = get_logger("resolution.service")

T = TypeVar("T")


@dataclass
class ResolutionInputs:
    sources: list[FundingSource]
    config: GuardrailConfig
    state: UserPaymentState
    signals: RiskSignals


class ResolutionService:
    """
    Preview and commit resolutions for a user.

    `preview` is read-only. `commit` runs under the user's lock so that the
    daily auto-approval counter is read, checked and written atomically.
    """

    def __init__(
        self,
        storage: StorageBackend,
        config: Config | None = None,
        engine: ResolutionEngine | None = None,
        lock_service: UserLockService | None = None,
    ) -> None:
        self._config = config or Config()
        self._engine = engine or ResolutionEngine()
        self._sources = FundingSourceService(storage, self._config.default_currency)
        self._guardrails = GuardrailConfigStore(storage)
        self._tracker = DailyApprovalTracker(storage)
        self._plans = PlanStore(storage)
        self._transactions = TransactionLog(storage)
        self._locks = lock_service or UserLockService(
            storage,
            ttl=self._config.lock_ttl,
            retry_count=self._config.lock_retry_count,
            retry_delay=self._config.lock_retry_delay,
        )

    @property
    def engine(self) -> ResolutionEngine:
        return self._engine

    @property
    def plans(self) -> PlanStore:
        return self._plans

    @property
    def tracker(self) -> DailyApprovalTracker:
        return self._tracker

    async def _read(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        return await execute_with_retry(func, *args, attempts=self._config.read_retry_attempts)

    async def _load_inputs(self, user_id: str, intent: Intent, today: date | None) -> ResolutionInputs:
        money = intent.money
        currency = money.currency if money else None

        sources = await self._read(self._sources.list_sources, user_id)
        config = await self._read(self._guardrails.get, user_id)
        state = await self._read(self._tracker.load, user_id, today)
        typical = await self._read(
            self._transactions.typical_amount,
            user_id,
            currency,
            self._engine.risk_policy.history_size,
        )

        return ResolutionInputs(
            sources=sources,
            config=config,
            state=state,
            signals=RiskSignals(typical_amount=typical),
        )

    def _run(
        self,
        intent: Intent,
        inputs: ResolutionInputs,
        now: datetime | None,
        today: date | None,
    ) -> ResolveResult:
        return self._engine.resolve(
            intent,
            inputs.sources,
            inputs.config,
            inputs.state,
            signals=inputs.signals,
            now=now,
            today=today,
        )

    async def preview(
        self,
        user_id: str,
        intent: Intent,
        now: datetime | None = None,
        today: date | None = None,
    ) -> ResolveResult:
        """Resolve without persisting anything or touching counters."""
        inputs = await self._load_inputs(user_id, intent, today)
        return self._run(intent, inputs, now, today)

    async def commit(
        self,
        user_id: str,
        intent: Intent,
        now: datetime | None = None,
        today: date | None = None,
    ) -> ResolveResult:
        """
        Resolve, persist the plan, and count it if it was auto-approved.

        Committing the same intent again replaces its earlier approval
        rather than counting it twice.

        Raises:
            PlanPersistenceError: If the plan cannot be stored
            LockError: If the user's lock cannot be acquired
        """
        async with self._locks.hold(user_id):
            inputs = await self._load_inputs(user_id, intent, today)

            # An earlier commit of this intent must not count against itself
            previous = await self._tracker.approved_amount(user_id, intent.id, today)
            if previous > 0:
                inputs.state = replace(
                    inputs.state,
                    daily_auto_approved=inputs.state.daily_auto_approved - previous,
                )

            result = self._run(intent, inputs, now, today)
            if not result.success or result.plan is None:
                return result

            plan = await self._plans.save(user_id, result.plan)

            if plan.auto_approved:
                await self._tracker.commit(
                    user_id,
                    intent.id,
                    plan.amount,
                    inputs.config.daily_auto_limit,
                    today,
                )
            elif previous > 0:
                await self._tracker.release(user_id, intent.id, today)

            logger.info(
                f"Committed plan {plan.plan_id} for intent {intent.id} "
                f"({'auto-approved' if plan.auto_approved else 'awaiting confirmation'})"
            )
            return ResolveResult(success=True, plan=plan, plan_id=plan.plan_id)

    async def confirm(self, plan_id: str) -> ResolutionPlan:
        """
        Record the user's acceptance of a plan.

        Confirmed plans do not count against the daily auto-approval total.

        Raises:
            ValidationError: If the plan does not exist
        """
        plan = await self._plans.mark_confirmed(plan_id)
        logger.info(f"Plan {plan_id} confirmed by user")
        return plan

    async def release(self, user_id: str, intent_id: str, today: date | None = None) -> Decimal:
        """Undo the auto-approval of an intent that was cancelled or failed."""
        async with self._locks.hold(user_id):
            return await self._tracker.release(user_id, intent_id, today)
