"""Tests for funding sources and their repository."""

from datetime import datetime
from decimal import Decimal

import pytest

from conftest import make_source
from flowpay.core.types import FundingRailType, FundingSource
from flowpay.funding.sources import FundingSourceService


class TestFundingSource:
    def test_from_app_record(self):
        source = FundingSource.from_dict(
            {
                "id": "tng",
                "type": "wallet",
                "name": "Touch n Go",
                "balance": 12.5,
                "isLinked": True,
                "isAvailable": True,
                "priority": 1,
                "maxAutoTopUp": 50,
                "requireConfirmAbove": "100",
                "currency": "myr",
                "linkedAt": "2026-10-01T09:00:00",
            }
        )

        assert source.type == FundingRailType.WALLET
        assert source.balance == Decimal("12.5")
        assert source.max_auto_top_up == Decimal("50")
        assert source.require_confirm_above == Decimal("100")
        assert source.currency == "MYR"
        assert source.linked_at == datetime(2026, 10, 1, 9, 0)
        assert source.is_eligible

    def test_missing_flags_mean_not_eligible(self):
        source = FundingSource.from_dict({"id": "b1", "type": "bank", "balance": 10})

        assert not source.is_linked
        assert not source.is_available
        assert not source.is_eligible
        assert source.name == "b1"

    def test_missing_currency_uses_default(self):
        source = FundingSource.from_dict(
            {"id": "c1", "type": "card", "balance": 0}, default_currency="MYR"
        )
        assert source.currency == "MYR"

    def test_rail_key_defaults_to_name(self):
        assert make_source("w1", name="GrabPay").rail_key == "GrabPay"
        assert make_source("w1", name="My Grab", rail="GrabPay").rail_key == "GrabPay"

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            make_source("w1", "-1")

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            FundingSource.from_dict({"id": "x", "type": "crypto", "balance": 1})

    def test_snake_case_round_trip(self):
        source = make_source("w1", "7.25", max_auto_top_up=Decimal("20"), rail="Boost")
        assert FundingSource.from_dict(source.to_dict()) == source


class TestFundingSourceService:
    @pytest.mark.asyncio
    async def test_save_and_list(self, storage):
        service = FundingSourceService(storage, default_currency="MYR")
        await service.save_source("u1", make_source("w1"))
        await service.save_source(
            "u1", {"id": "b1", "type": "bank", "balance": 300, "isLinked": True, "isAvailable": True}
        )
        await service.save_source("u2", make_source("w9"))

        sources = await service.list_sources("u1")

        assert sorted(s.id for s in sources) == ["b1", "w1"]
        bank = await service.get_source("u1", "b1")
        assert bank.currency == "MYR"
        assert bank.type == FundingRailType.BANK

    @pytest.mark.asyncio
    async def test_set_sources_replaces(self, storage):
        service = FundingSourceService(storage)
        await service.set_sources("u1", [make_source("w1"), make_source("w2")])
        await service.set_sources("u1", [make_source("w3")])

        assert [s.id for s in await service.list_sources("u1")] == ["w3"]

    @pytest.mark.asyncio
    async def test_remove(self, storage):
        service = FundingSourceService(storage)
        await service.save_source("u1", make_source("w1"))

        assert await service.remove_source("u1", "w1")
        assert await service.get_source("u1", "w1") is None
        assert not await service.remove_source("u1", "w1")
