"""
Tests for ResolutionService: preview vs commit, persistence and the
daily auto-approval counter.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from conftest import TODAY, make_intent, make_source
from flowpay.core.config import Config
from flowpay.core.exceptions import LockError, PlanPersistenceError
from flowpay.core.types import ExecutionMode, ReasonCode, RiskLevel
from flowpay.funding.sources import FundingSourceService
from flowpay.guardrails.base import GuardrailConfig
from flowpay.guardrails.policy import GuardrailConfigStore
from flowpay.ledger.ledger import TransactionLog, TransactionRecord
from flowpay.ledger.lock import UserLockService
from flowpay.resolution.engine import ResolutionEngine
from flowpay.resolution.risk import RiskPolicy
from flowpay.resolution.service import ResolutionService
from flowpay.resolution.store import PlanStatus, PlanStore
from flowpay.storage.memory import InMemoryStorage

USER = "u1"


class FailingPlanStorage(InMemoryStorage):
    async def save(self, collection: str, key: str, data: dict[str, Any]) -> None:
        if collection == PlanStore.COLLECTION:
            raise RuntimeError("disk full")
        await super().save(collection, key, data)


class FlakyStorage(InMemoryStorage):
    """Fails the next query with a transient error once armed."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_next = False
        self.query_calls = 0

    async def query(self, collection: str, filters=None, limit=None, offset: int = 0):
        self.query_calls += 1
        if self.fail_next:
            self.fail_next = False
            raise ConnectionError("connection reset by peer")
        return await super().query(collection, filters, limit, offset)


async def seed(storage, sources=None, config: GuardrailConfig | None = None) -> None:
    if sources is None:
        sources = [
            make_source("w1", "5", priority=1, rail="TouchNGo"),
            make_source("w2", "50", priority=2, rail="GrabPay"),
        ]
    await FundingSourceService(storage).set_sources(USER, sources)
    if config is not None:
        await GuardrailConfigStore(storage).save(USER, config)


@pytest.fixture
def service(storage) -> ResolutionService:
    return ResolutionService(storage, Config(read_retry_attempts=2))


async def daily_total(service: ResolutionService) -> Decimal:
    return (await service.tracker.load(USER, TODAY)).daily_auto_approved


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_does_not_touch_state(self, storage, service):
        await seed(storage)

        result = await service.preview(USER, make_intent("20"), today=TODAY)

        assert result.success
        assert result.plan.plan_id is None
        assert await daily_total(service) == 0
        assert await storage.count(PlanStore.COLLECTION) == 0

    @pytest.mark.asyncio
    async def test_preview_reads_sources_from_storage(self, storage, service):
        await FundingSourceService(storage).save_source(
            USER,
            {
                "id": "tng",
                "type": "wallet",
                "name": "Touch n Go",
                "balance": 80,
                "isLinked": True,
                "isAvailable": True,
                "priority": 1,
                "currency": "MYR",
                "rail": "TouchNGo",
            },
        )
        result = await service.preview(USER, make_intent("20"), today=TODAY)

        assert result.plan.chosen_rail == "TouchNGo"
        assert result.plan.steps[0].source_id == "tng"

    @pytest.mark.asyncio
    async def test_history_feeds_risk(self, storage, service):
        await seed(storage)
        log = TransactionLog(storage)
        for _ in range(3):
            await log.record(
                TransactionRecord(user_id=USER, amount=Decimal("4"), currency="MYR")
            )

        result = await service.preview(USER, make_intent("20"), today=TODAY)

        assert result.plan.risk_level == RiskLevel.HIGH
        assert ReasonCode.HIGH_VALUE.value in result.plan.reason_codes

    @pytest.mark.parametrize(
        ("history_size", "expected"), [(1, RiskLevel.HIGH), (20, RiskLevel.LOW)]
    )
    @pytest.mark.asyncio
    async def test_risk_history_size(self, storage, history_size, expected):
        await seed(storage)
        log = TransactionLog(storage)
        now = datetime(2026, 10, 19, 12, 0)
        await log.record(TransactionRecord(user_id=USER, amount=Decimal("4"), currency="MYR", timestamp=now))
        for hours in (1, 2):
            await log.record(
                TransactionRecord(
                    user_id=USER,
                    amount=Decimal("100"),
                    currency="MYR",
                    timestamp=now - timedelta(hours=hours),
                )
            )
        engine = ResolutionEngine(risk_policy=RiskPolicy(history_size=history_size))
        service = ResolutionService(storage, Config(), engine=engine)

        result = await service.preview(USER, make_intent("20"), today=TODAY)

        assert result.plan.risk_level == expected

    @pytest.mark.asyncio
    async def test_transient_read_errors_are_retried(self):
        storage = FlakyStorage()
        await seed(storage)
        storage.fail_next = True
        storage.query_calls = 0
        service = ResolutionService(storage, Config(read_retry_attempts=2))

        result = await service.preview(USER, make_intent("20"), today=TODAY)

        assert result.success
        assert storage.query_calls >= 2


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_persists_and_counts(self, storage, service):
        await seed(storage)
        intent = make_intent("20")

        result = await service.commit(USER, intent, today=TODAY)

        assert result.success
        assert result.plan_id is not None
        assert result.plan_id.startswith("plan_")
        assert await daily_total(service) == Decimal("20")
        assert await service.plans.get_status(result.plan_id) == PlanStatus.APPROVED
        assert await service.plans.get_owner(result.plan_id) == USER

        stored = await service.plans.get(result.plan_id)
        assert stored.steps == result.plan.steps

    @pytest.mark.asyncio
    async def test_recommitting_same_intent_counts_once(self, storage, service):
        await seed(storage, config=GuardrailConfig(daily_auto_limit=Decimal("30")))
        intent = make_intent("20")

        first = await service.commit(USER, intent, today=TODAY)
        second = await service.commit(USER, intent, today=TODAY)

        assert first.plan.auto_approved
        assert second.plan.auto_approved
        assert first.plan_id != second.plan_id
        assert await daily_total(service) == Decimal("20")

        latest = await service.plans.latest_for_intent(intent.id)
        assert latest.intent_id == intent.id

    @pytest.mark.asyncio
    async def test_daily_cap_forces_confirmation(self, storage, service):
        await seed(storage, config=GuardrailConfig(daily_auto_limit=Decimal("30")))

        first = await service.commit(USER, make_intent("20"), today=TODAY)
        second = await service.commit(USER, make_intent("20"), today=TODAY)

        assert first.plan.auto_approved
        assert second.requires_confirmation
        assert ReasonCode.OVER_DAILY_LIMIT.value in second.plan.reason_codes
        assert await daily_total(service) == Decimal("20")
        assert await service.plans.get_status(second.plan_id) == PlanStatus.AWAITING_CONFIRMATION

    @pytest.mark.asyncio
    async def test_confirmation_plan_is_not_counted(self, storage, service):
        await seed(storage, config=GuardrailConfig(require_confirmation_above=Decimal("10")))

        result = await service.commit(USER, make_intent("20"), today=TODAY)

        assert result.plan.execution_mode == ExecutionMode.ASYNC
        assert await daily_total(service) == 0

        await service.confirm(result.plan_id)
        assert await service.plans.get_status(result.plan_id) == PlanStatus.CONFIRMED
        assert await daily_total(service) == 0

    @pytest.mark.asyncio
    async def test_recommit_needing_confirmation_releases_earlier_approval(self, storage, service):
        await seed(storage)
        intent = make_intent("20")
        await service.commit(USER, intent, today=TODAY)
        assert await daily_total(service) == Decimal("20")

        await GuardrailConfigStore(storage).save(
            USER, GuardrailConfig(require_confirmation_above=Decimal("10"))
        )
        result = await service.commit(USER, intent, today=TODAY)

        assert result.requires_confirmation
        assert await daily_total(service) == 0

    @pytest.mark.asyncio
    async def test_no_sources_persists_nothing(self, storage, service):
        result = await service.commit(USER, make_intent("20"), today=TODAY)

        assert not result.success
        assert result.reason_code == ReasonCode.NO_FUNDING_SOURCE.value
        assert result.plan_id is None
        assert await storage.count(PlanStore.COLLECTION) == 0
        assert await daily_total(service) == 0

    @pytest.mark.asyncio
    async def test_persistence_failure_is_raised(self):
        storage = FailingPlanStorage()
        await seed(storage)
        service = ResolutionService(storage)

        with pytest.raises(PlanPersistenceError) as exc:
            await service.commit(USER, make_intent("20"), today=TODAY)

        assert exc.value.intent_id is not None
        assert await daily_total(service) == 0

    @pytest.mark.asyncio
    async def test_release_after_cancel(self, storage, service):
        await seed(storage)
        intent = make_intent("20")
        await service.commit(USER, intent, today=TODAY)

        released = await service.release(USER, intent.id, today=TODAY)

        assert released == Decimal("20")
        assert await daily_total(service) == 0

    @pytest.mark.asyncio
    async def test_lock_contention(self, storage):
        await seed(storage)
        locks = UserLockService(storage, retry_count=1, retry_delay=0.01)
        service = ResolutionService(storage, lock_service=locks)

        token = await locks.acquire(USER)
        assert token is not None

        with pytest.raises(LockError):
            await service.commit(USER, make_intent("20"), today=TODAY)

        await locks.release(USER, token)
        result = await service.commit(USER, make_intent("20"), today=TODAY)
        assert result.success
