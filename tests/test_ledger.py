"""Tests for the transaction log."""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from flowpay.ledger.ledger import TransactionLog, TransactionRecord, TransactionStatus


@pytest.fixture
def log(storage) -> TransactionLog:
    return TransactionLog(storage)


def record(amount: str, **kwargs) -> TransactionRecord:
    kwargs.setdefault("user_id", "u1")
    kwargs.setdefault("currency", "MYR")
    kwargs.setdefault("intent_type", "PAY_MERCHANT")
    return TransactionRecord(amount=Decimal(amount), **kwargs)


class TestTransactionRecord:
    def test_dict_round_trip(self):
        original = record("12.30", counterparty="Cafe", rail="TouchNGo", auto_approved=True)
        restored = TransactionRecord.from_dict(original.to_dict())

        assert restored == original

    def test_from_sparse_dict(self):
        restored = TransactionRecord.from_dict({"amount": 5})
        assert restored.amount == Decimal("5")
        assert restored.status == TransactionStatus.COMPLETED


class TestTransactionLog:
    @pytest.mark.asyncio
    async def test_record_and_get(self, log):
        entry = record("20", intent_id="intent_1")
        await log.record(entry)

        fetched = await log.get(entry.id)
        assert fetched.intent_id == "intent_1"
        assert fetched.amount == Decimal("20")
        assert await log.get("missing") is None

    @pytest.mark.asyncio
    async def test_query_newest_first(self, log):
        now = datetime(2026, 10, 19, 12, 0)
        for minutes in (30, 10, 20):
            await log.record(record(str(minutes), timestamp=now - timedelta(minutes=minutes)))

        results = await log.query(user_id="u1")
        assert [r.amount for r in results] == [Decimal("10"), Decimal("20"), Decimal("30")]

    @pytest.mark.asyncio
    async def test_query_filters(self, log):
        now = datetime(2026, 10, 19, 12, 0)
        await log.record(record("1", status=TransactionStatus.FAILED, timestamp=now))
        await log.record(record("2", intent_type="SEND_MONEY", timestamp=now))
        await log.record(record("3", currency="USD", timestamp=now))
        await log.record(record("4", user_id="u2", timestamp=now))
        await log.record(record("5", timestamp=now - timedelta(days=2)))

        assert len(await log.query(user_id="u1")) == 4
        assert [r.amount for r in await log.query(status=TransactionStatus.FAILED)] == [Decimal("1")]
        assert len(await log.query(intent_type="SEND_MONEY")) == 1
        assert len(await log.query(user_id="u1", currency="USD")) == 1
        assert len(await log.query(user_id="u1", from_date=now - timedelta(days=1))) == 3
        assert len(await log.query(user_id="u1", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_typical_amount_is_median_of_completed(self, log):
        for amount in ("10", "12", "100"):
            await log.record(record(amount))
        await log.record(record("5000", status=TransactionStatus.FAILED))
        await log.record(record("0"))

        assert await log.typical_amount("u1") == Decimal("12")

    @pytest.mark.asyncio
    async def test_typical_amount_per_currency(self, log):
        await log.record(record("10", currency="MYR"))
        await log.record(record("90", currency="USD"))

        assert await log.typical_amount("u1", "USD") == Decimal("90")

    @pytest.mark.asyncio
    async def test_typical_amount_without_history(self, log):
        assert await log.typical_amount("u1") is None

    @pytest.mark.asyncio
    async def test_clear(self, log):
        await log.record(record("1"))
        assert await log.clear() == 1
        assert await log.query() == []
