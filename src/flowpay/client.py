"""FlowPay - main entry point."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from flowpay.core.config import Config
from flowpay.core.events import EventDispatcher
from flowpay.core.exceptions import ValidationError
from flowpay.core.logging import configure_logging, get_logger
from flowpay.core.types import AmountType, ResolutionPlan, ResolveResult
from flowpay.funding.sources import FundingSourceService
from flowpay.guardrails.policy import GuardrailConfigStore
from flowpay.handoff.coordinator import HandoffCoordinator
from flowpay.handoff.events import AppLauncher, ForegroundEventSource, HandoffOutcome
from flowpay.intents.models import (
    Intent,
    IntentStatus,
    PayMerchantIntent,
    ReceiveMoneyIntent,
    SendMoneyIntent,
)
from flowpay.intents.parser import (
    IntentParser,
    TriggerKind,
    TriggerPayload,
    create_pay_intent,
    create_receive_intent,
    create_send_intent,
)
from flowpay.intents.service import IntentService
from flowpay.ledger.ledger import TransactionLog, TransactionRecord, TransactionStatus
from flowpay.resolution.engine import ResolutionEngine
from flowpay.resolution.service import ResolutionService
from flowpay.resolution.store import PlanStatus
from flowpay.storage import get_storage
from flowpay.storage.base import StorageBackend


def _counterparty_name(intent: Intent) -> str | None:
    if isinstance(intent, PayMerchantIntent):
        return intent.merchant.name
    if isinstance(intent, SendMoneyIntent):
        return intent.recipient.name
    if isinstance(intent, ReceiveMoneyIntent) and intent.counterparty:
        return intent.counterparty.name
    return None


class FlowPay:
    """
    Main client for FlowPay.

    Ties the pieces together for one user session: triggers become intents,
    intents are resolved into plans, plans are handed off to wallet apps,
    and the user's report closes the intent.

    Example:
        >>> flow = FlowPay()
        >>> await flow.sources.save_source("u1", {"id": "w1", "type": "wallet", ...})
        >>> intent = await flow.scan_qr("u1", raw_qr_text)
        >>> result = await flow.resolve("u1", intent)
        >>> outcome = await flow.start_handoff("u1", result.plan)
    """

    def __init__(
        self,
        config: Config | None = None,
        storage: StorageBackend | None = None,
        launcher: AppLauncher | None = None,
        foreground_events: ForegroundEventSource | None = None,
        engine: ResolutionEngine | None = None,
        log_level: int | str | None = None,
    ) -> None:
        """
        Initialize FlowPay.

        Args:
            config: Configuration (default: Config.from_env())
            storage: Storage backend (default: selected by config.storage_backend)
            launcher: Opens wallet deep links (default: the system web browser)
            foreground_events: Source of app foreground/background changes
            engine: Resolution engine with custom guardrail or risk policies
            log_level: Overrides config.log_level
        """
        self._config = config or Config.from_env()

        configure_logging(level=log_level or self._config.log_level)
        self._logger = get_logger("client")
        self._logger.info(f"Initializing FlowPay (storage: {self._config.storage_backend})")

        if storage is None:
            kwargs: dict[str, Any] = {}
            if self._config.storage_backend == "redis" and self._config.redis_url:
                kwargs["redis_url"] = self._config.redis_url
            storage = get_storage(self._config.storage_backend, **kwargs)
        self._storage = storage

        self._events = EventDispatcher()
        self._parser = IntentParser()
        self._intents = IntentService(self._storage, self._events)
        self._resolution = ResolutionService(self._storage, self._config, engine=engine)
        self._sources = FundingSourceService(self._storage, self._config.default_currency)
        self._guardrails = GuardrailConfigStore(self._storage)
        self._transactions = TransactionLog(self._storage)
        self._handoff = HandoffCoordinator(
            launcher=launcher,
            foreground_events=foreground_events,
            timeout=self._config.handoff_timeout,
            return_delay=self._config.handoff_return_delay,
        )

    @property
    def config(self) -> Config:
        return self._config

    @property
    def storage(self) -> StorageBackend:
        return self._storage

    @property
    def events(self) -> EventDispatcher:
        """Intent lifecycle events."""
        return self._events

    @property
    def intents(self) -> IntentService:
        return self._intents

    @property
    def resolution(self) -> ResolutionService:
        return self._resolution

    @property
    def sources(self) -> FundingSourceService:
        """The user's funding sources."""
        return self._sources

    @property
    def guardrails(self) -> GuardrailConfigStore:
        """Per-user guardrail settings."""
        return self._guardrails

    @property
    def transactions(self) -> TransactionLog:
        return self._transactions

    @property
    def handoff(self) -> HandoffCoordinator:
        return self._handoff

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    async def handle_trigger(self, user_id: str, trigger: TriggerPayload) -> Intent | None:
        """
        Turn a trigger into the user's current intent.

        Returns:
            The new intent, or None when the payload is not recognized
        """
        intent = self._parser.parse(trigger)
        if intent is None:
            self._logger.info(f"Unrecognized {trigger.kind.value} trigger for {user_id}")
            return None
        return await self._intents.activate(user_id, intent)

    async def scan_qr(self, user_id: str, raw_data: str) -> Intent | None:
        return await self.handle_trigger(user_id, TriggerPayload(TriggerKind.QR, raw_data))

    async def select_contact(self, user_id: str, contact: dict[str, Any]) -> Intent | None:
        return await self.handle_trigger(user_id, TriggerPayload(TriggerKind.CONTACT, contact))

    async def open_payment_link(self, user_id: str, payload: dict[str, Any]) -> Intent | None:
        return await self.handle_trigger(
            user_id, TriggerPayload(TriggerKind.PAYMENT_LINK, payload)
        )

    async def pay_merchant(
        self,
        user_id: str,
        merchant: dict[str, Any],
        amount: AmountType,
        currency: str | None = None,
        reference: str | None = None,
    ) -> Intent:
        intent = create_pay_intent(
            merchant, amount, currency or self._config.default_currency, reference
        )
        return await self._intents.activate(user_id, intent)

    async def send_money(
        self,
        user_id: str,
        recipient: dict[str, Any],
        amount: AmountType,
        currency: str | None = None,
        note: str | None = None,
    ) -> Intent:
        intent = create_send_intent(
            recipient, amount, currency or self._config.default_currency, note
        )
        return await self._intents.activate(user_id, intent)

    async def request_money(
        self,
        user_id: str,
        amount: AmountType | None = None,
        currency: str | None = None,
        note: str | None = None,
    ) -> Intent:
        intent = create_receive_intent(amount, currency or self._config.default_currency, note)
        return await self._intents.activate(user_id, intent)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    async def preview(self, user_id: str, intent: Intent) -> ResolveResult:
        """Show what a resolution would do without committing to it."""
        return await self._resolution.preview(user_id, intent)

    async def resolve(self, user_id: str, intent: Intent) -> ResolveResult:
        """
        Resolve and commit a plan for an intent.

        Auto-approved plans authorize the intent straight away; plans that
        need confirmation wait for `confirm_plan`.
        """
        result = await self._resolution.commit(user_id, intent)
        if result.success and result.plan and result.plan.auto_approved:
            await self._authorize_if_pending(user_id, intent.id)
        return result

    async def confirm_plan(self, user_id: str, plan_id: str) -> ResolutionPlan:
        """The user accepts a plan that needed confirmation."""
        owner = await self._resolution.plans.get_owner(plan_id)
        if owner != user_id:
            raise ValidationError(f"Plan not found: {plan_id}")

        plan = await self._resolution.confirm(plan_id)
        await self._authorize_if_pending(user_id, plan.intent_id)
        return plan

    async def _authorize_if_pending(self, user_id: str, intent_id: str) -> None:
        intent = await self._intents.get(user_id, intent_id)
        if intent is not None and intent.status == IntentStatus.PENDING:
            await self._intents.authorize(user_id, intent_id)

    # -------------------------------------------------------------------------
    # Handoff
    # -------------------------------------------------------------------------

    async def start_handoff(
        self,
        user_id: str,
        plan: ResolutionPlan,
        merchant: str | None = None,
        reference: str | None = None,
    ) -> HandoffOutcome:
        """
        Hand the user off to the plan's rail.

        Raises:
            ValidationError: If the plan was never committed or still awaits confirmation
        """
        if plan.plan_id is None:
            raise ValidationError("Plan has not been committed")

        status = await self._resolution.plans.get_status(plan.plan_id)
        if status is None:
            raise ValidationError(f"Plan not found: {plan.plan_id}")
        if status == PlanStatus.AWAITING_CONFIRMATION:
            raise ValidationError(
                "Plan requires user confirmation before handoff",
                details={"plan_id": plan.plan_id},
            )

        if merchant is None:
            intent = await self._intents.get(user_id, plan.intent_id)
            merchant = _counterparty_name(intent) if intent else None

        return self._handoff.initiate(
            plan.chosen_rail,
            plan.amount,
            merchant=merchant,
            reference=reference,
            intent_id=plan.intent_id,
            plan_id=plan.plan_id,
        )

    async def confirm_handoff(self, user_id: str) -> Intent | None:
        """The user reports the payment went through; completes the intent."""
        context = self._handoff.context
        self._handoff.confirm()
        if context is None or context.intent_id is None:
            return None
        return await self.complete(user_id, context.intent_id)

    async def cancel_handoff(self, user_id: str, reason: str | None = None) -> Intent | None:
        """The user reports the payment did not go through; fails the intent."""
        context = self._handoff.context
        self._handoff.cancel()
        if context is None or context.intent_id is None:
            return None
        return await self.fail(user_id, context.intent_id, reason or "Payment not completed")

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def complete(self, user_id: str, intent_id: str) -> Intent:
        intent = await self._intents.complete(user_id, intent_id)
        await self._record(user_id, intent, TransactionStatus.COMPLETED)
        return intent

    async def cancel(self, user_id: str, intent_id: str, reason: str | None = None) -> Intent:
        intent = await self._intents.cancel(user_id, intent_id, reason)
        await self._resolution.release(user_id, intent_id)
        await self._record(user_id, intent, TransactionStatus.CANCELLED, reason)
        return intent

    async def fail(self, user_id: str, intent_id: str, reason: str | None = None) -> Intent:
        intent = await self._intents.fail(user_id, intent_id, reason)
        await self._resolution.release(user_id, intent_id)
        await self._record(user_id, intent, TransactionStatus.FAILED, reason)
        return intent

    async def _record(
        self,
        user_id: str,
        intent: Intent,
        status: TransactionStatus,
        reason: str | None = None,
    ) -> None:
        plan = await self._resolution.plans.latest_for_intent(intent.id)
        money = intent.money
        plan_status = None
        if plan is not None and plan.plan_id:
            plan_status = await self._resolution.plans.get_status(plan.plan_id)

        record = TransactionRecord(
            user_id=user_id,
            intent_id=intent.id,
            intent_type=intent.type.value,
            counterparty=_counterparty_name(intent),
            amount=money.value if money else Decimal("0"),
            currency=money.currency if money else self._config.default_currency,
            status=status,
            rail=plan.chosen_rail if plan else None,
            plan_id=plan.plan_id if plan else None,
            auto_approved=plan_status == PlanStatus.APPROVED,
            metadata={"reason": reason} if reason else {},
        )
        await self._transactions.record(record)

    # -------------------------------------------------------------------------
    # Housekeeping
    # -------------------------------------------------------------------------

    async def health_check(self) -> bool:
        return await self._storage.health_check()

    async def close(self) -> None:
        self._handoff.close()
        close = getattr(self._storage, "close", None)
        if close is not None:
            await close()
