"""Tests for daily auto-approval tracking."""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import TODAY
from flowpay.core.exceptions import BlockedByGuardrailError
from flowpay.core.types import ReasonCode
from flowpay.guardrails.daily import DailyApprovalTracker
from flowpay.storage.memory import InMemoryStorage

LIMIT = Decimal("200")


class RacingStorage(InMemoryStorage):
    """Lets another writer add `racing_amount` just before the first counter update."""

    def __init__(self, racing_amount: str) -> None:
        super().__init__()
        self.racing_amount = racing_amount

    async def atomic_add(self, collection, key, amount):
        if self.racing_amount:
            racing, self.racing_amount = self.racing_amount, ""
            await super().atomic_add(collection, key, racing)
        return await super().atomic_add(collection, key, amount)


@pytest.fixture
def tracker(storage) -> DailyApprovalTracker:
    return DailyApprovalTracker(storage)


class TestDailyApprovalTracker:
    @pytest.mark.asyncio
    async def test_fresh_user_starts_at_zero(self, tracker):
        state = await tracker.load("u1", TODAY)
        assert state.daily_auto_approved == 0
        assert state.last_reset_date == TODAY

    @pytest.mark.asyncio
    async def test_commit_increments(self, tracker):
        state = await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)

        assert state.daily_auto_approved == Decimal("20")
        assert (await tracker.load("u1", TODAY)).daily_auto_approved == Decimal("20")
        assert await tracker.approved_amount("u1", "i1", TODAY) == Decimal("20")

    @pytest.mark.asyncio
    async def test_recommit_same_intent_is_idempotent(self, tracker):
        await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)
        state = await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)

        assert state.daily_auto_approved == Decimal("20")

    @pytest.mark.asyncio
    async def test_recommit_applies_difference(self, tracker):
        await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)
        state = await tracker.commit("u1", "i1", Decimal("35"), LIMIT, TODAY)

        assert state.daily_auto_approved == Decimal("35")

    @pytest.mark.asyncio
    async def test_separate_intents_add_up(self, tracker):
        await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)
        state = await tracker.commit("u1", "i2", Decimal("30"), LIMIT, TODAY)

        assert state.daily_auto_approved == Decimal("50")

    @pytest.mark.asyncio
    async def test_commit_over_limit_raises(self, tracker):
        await tracker.commit("u1", "i1", Decimal("190"), LIMIT, TODAY)

        with pytest.raises(BlockedByGuardrailError) as exc:
            await tracker.commit("u1", "i2", Decimal("20"), LIMIT, TODAY)

        assert exc.value.blocked_reason == ReasonCode.OVER_DAILY_LIMIT.value
        assert (await tracker.load("u1", TODAY)).daily_auto_approved == Decimal("190")

    @pytest.mark.asyncio
    async def test_commit_up_to_limit_is_allowed(self, tracker):
        state = await tracker.commit("u1", "i1", LIMIT, LIMIT, TODAY)
        assert state.daily_auto_approved == LIMIT

    @pytest.mark.asyncio
    async def test_counter_resets_next_day(self, tracker):
        await tracker.commit("u1", "i1", Decimal("190"), LIMIT, TODAY)
        tomorrow = TODAY + timedelta(days=1)

        assert (await tracker.load("u1", tomorrow)).daily_auto_approved == 0
        # Yesterday's approval of the same intent no longer counts
        assert await tracker.approved_amount("u1", "i1", tomorrow) == 0

        state = await tracker.commit("u1", "i2", Decimal("20"), LIMIT, tomorrow)
        assert state.daily_auto_approved == Decimal("20")
        assert state.last_reset_date == tomorrow

    @pytest.mark.asyncio
    async def test_release(self, tracker):
        await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)
        await tracker.commit("u1", "i2", Decimal("30"), LIMIT, TODAY)

        released = await tracker.release("u1", "i1", TODAY)

        assert released == Decimal("20")
        assert (await tracker.load("u1", TODAY)).daily_auto_approved == Decimal("30")
        assert await tracker.approved_amount("u1", "i1", TODAY) == 0

    @pytest.mark.asyncio
    async def test_release_unknown_intent(self, tracker):
        assert await tracker.release("u1", "missing", TODAY) == 0

    @pytest.mark.asyncio
    async def test_users_are_independent(self, tracker):
        await tracker.commit("u1", "i1", Decimal("150"), LIMIT, TODAY)
        state = await tracker.commit("u2", "i1", Decimal("150"), LIMIT, TODAY)

        assert state.daily_auto_approved == Decimal("150")

    @pytest.mark.asyncio
    async def test_total_is_a_per_day_counter(self, tracker, storage):
        await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)
        await tracker.commit("u1", "i2", Decimal("5.5"), LIMIT, TODAY)

        counter = await storage.get(DailyApprovalTracker.STATE_COLLECTION, f"u1:{TODAY.isoformat()}")
        assert Decimal(counter["value"]) == Decimal("25.5")

    @pytest.mark.asyncio
    async def test_concurrent_writer_pushing_over_limit_rolls_back(self):
        storage = RacingStorage(racing_amount="100")
        tracker = DailyApprovalTracker(storage)

        with pytest.raises(BlockedByGuardrailError) as exc:
            await tracker.commit("u1", "i1", Decimal("150"), LIMIT, TODAY)

        assert exc.value.details["daily_auto_approved"] == "100"
        assert (await tracker.load("u1", TODAY)).daily_auto_approved == Decimal("100")
        assert await tracker.approved_amount("u1", "i1", TODAY) == 0

    @pytest.mark.asyncio
    async def test_concurrent_writer_within_limit(self):
        storage = RacingStorage(racing_amount="30")
        tracker = DailyApprovalTracker(storage)

        state = await tracker.commit("u1", "i1", Decimal("20"), LIMIT, TODAY)

        assert state.daily_auto_approved == Decimal("50")
