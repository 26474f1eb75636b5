"""Tests for EMVCo merchant QR decoding."""

from decimal import Decimal

import pytest

from flowpay.intents.emvco import detect_network, is_emvco_qr, parse_emvco, parse_tlv
from flowpay.intents.models import IntentTrigger, PayMerchantIntent, intent_from_dict
from flowpay.intents.parser import parse_qr_code


def tlv(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def duitnow_qr(amount: str | None = "12.50", **overrides: str) -> str:
    tags = {
        "00": "01",
        "01": "12",
        "26": tlv("00", "my.com.tngdigital.ewallet") + tlv("01", "M12345"),
        "52": "5812",
        "53": "458",
        "54": amount,
        "58": "MY",
        "59": "Kopi Tiam",
        "60": "Kuala Lumpur",
        "62": tlv("05", "R001"),
        "63": "ABCD",
    }
    tags.update(overrides)
    return "".join(tlv(tag, value) for tag, value in tags.items() if value is not None)


class TestParseTLV:
    def test_flat_fields(self):
        assert parse_tlv("000201" + tlv("59", "Cafe")) == {"00": "01", "59": "Cafe"}

    def test_stops_at_truncated_field(self):
        assert parse_tlv("0002015910Cafe") == {"00": "01"}

    def test_stops_at_bad_length(self):
        assert parse_tlv("0002015XAB") == {"00": "01"}


class TestParseEMVCo:
    def test_dynamic_duitnow_qr(self):
        data = parse_emvco(duitnow_qr())

        assert data.merchant_name == "Kopi Tiam"
        assert data.merchant_city == "Kuala Lumpur"
        assert data.currency == "MYR"
        assert data.amount == "12.50"
        assert data.dynamic
        assert data.reference_label == "R001"
        assert data.accounts[0].network == "TouchNGo"
        assert data.accounts[0].merchant_id == "M12345"
        assert data.crc == "ABCD"

    def test_malaysian_rails(self):
        data = parse_emvco(duitnow_qr())

        assert data.primary_rail == "TouchNGo"
        assert data.available_rails == ("TouchNGo", "DuitNow", "GrabPay", "Boost")

    def test_singapore_paynow(self):
        raw = duitnow_qr(
            **{"26": tlv("00", "SG.PAYNOW"), "53": "702", "58": "SG", "62": None}
        )
        data = parse_emvco(raw)

        assert data.currency == "SGD"
        assert data.primary_rail == "PayNow"
        assert data.available_rails == ("PayNow",)

    def test_country_default_rail(self):
        data = parse_emvco(duitnow_qr(**{"26": tlv("00", "A000000615")}))
        assert data.accounts[0].network is None
        assert data.primary_rail == "DuitNow"

    def test_missing_merchant_name(self):
        assert parse_emvco(duitnow_qr(**{"59": None})) is None

    def test_unknown_currency_defaults_to_myr(self):
        assert parse_emvco(duitnow_qr(**{"53": "999"})).currency == "MYR"

    def test_detect_network(self):
        assert detect_network("COM.DUITNOW") == "DuitNow"
        assert detect_network("my.paynet.x") == "DuitNow"
        assert detect_network("my.com.grabpay") == "GrabPay"
        assert detect_network("other") is None

    def test_is_emvco_qr(self):
        assert is_emvco_qr(duitnow_qr())
        assert not is_emvco_qr("flow://pay/Cafe")


class TestEMVCoIntent:
    def test_becomes_pay_merchant(self):
        intent = parse_qr_code(duitnow_qr())

        assert isinstance(intent, PayMerchantIntent)
        assert intent.trigger == IntentTrigger.QR_SCAN
        assert intent.merchant.name == "Kopi Tiam"
        assert intent.merchant.id == "R001"
        assert intent.reference == "R001"
        assert intent.amount.value == Decimal("12.50")
        assert intent.amount.currency == "MYR"
        assert "DuitNow" in intent.available_rails

    def test_static_qr_has_zero_amount(self):
        intent = parse_qr_code(duitnow_qr(amount=None, **{"01": "11", "62": None}))

        assert intent.amount.value == Decimal("0")
        assert intent.merchant.id == "kopi_tiam"
        assert intent.reference is None

    def test_surrounding_whitespace(self):
        assert parse_qr_code(f"  {duitnow_qr()}\n") is not None

    @pytest.mark.parametrize("amount", ["abc", "NaN"])
    def test_invalid_amount_returns_none(self, amount):
        assert parse_qr_code(duitnow_qr(amount=amount)) is None

    def test_incomplete_payload_returns_none(self):
        assert parse_qr_code("000201" + tlv("59", "Cafe")) is None

    def test_rails_survive_round_trip(self):
        intent = parse_qr_code(duitnow_qr())
        restored = intent_from_dict(intent.to_dict())

        assert restored.available_rails == intent.available_rails
