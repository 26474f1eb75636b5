"""
EMVCo merchant QR decoding.

DuitNow, PayNow, PromptPay and most Southeast Asian wallet QRs share the
EMVCo merchant-presented format: a flat string of tag/length/value fields
where each tag and length is two digits. Merchant account templates
(tags 26-51) and additional data (tag 62) hold nested TLV strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flowpay.core.logging import get_logger

logger = get_logger("emvco")

EMVCO_PREFIX = "000201"

MERCHANT_ACCOUNT_TAGS = range(26, 52)

# ISO 4217 numeric codes seen on regional QRs
CURRENCY_CODES: dict[str, str] = {
    "458": "MYR",
    "702": "SGD",
    "764": "THB",
    "360": "IDR",
    "608": "PHP",
    "840": "USD",
}

KNOWN_NETWORKS: dict[str, str] = {
    "com.duitnow": "DuitNow",
    "my.com.tngdigital.ewallet": "TouchNGo",
    "my.com.grabpay": "GrabPay",
    "my.com.boost": "Boost",
    "sg.com.nets": "NETS",
    "sg.paynow": "PayNow",
}

# Wallets that accept any Malaysian DuitNow QR
MY_WALLET_RAILS = ("DuitNow", "TouchNGo", "GrabPay", "Boost")


@dataclass(frozen=True)
class MerchantAccount:
    tag: str
    guid: str
    network: str | None = None
    merchant_id: str | None = None


@dataclass(frozen=True)
class EMVCoData:
    """Decoded fields of a merchant-presented QR."""

    merchant_name: str
    country_code: str
    currency: str
    currency_numeric: str
    dynamic: bool = False
    amount: str | None = None
    merchant_city: str | None = None
    merchant_category_code: str | None = None
    accounts: tuple[MerchantAccount, ...] = ()
    bill_number: str | None = None
    reference_label: str | None = None
    terminal_label: str | None = None
    crc: str = ""
    fields: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @property
    def primary_rail(self) -> str:
        for account in self.accounts:
            if account.network:
                return account.network
        if self.country_code == "MY":
            return "DuitNow"
        if self.country_code == "SG":
            return "PayNow"
        return "Unknown"

    @property
    def available_rails(self) -> tuple[str, ...]:
        rails = [a.network for a in self.accounts if a.network]
        if self.country_code == "MY":
            rails.extend(r for r in MY_WALLET_RAILS if r not in rails)
        return tuple(dict.fromkeys(rails))


def is_emvco_qr(data: str) -> bool:
    return data.startswith(EMVCO_PREFIX)


def parse_tlv(data: str) -> dict[str, str]:
    """
    Split a TLV string into {tag: value}.

    Parsing stops at the first malformed length or at a field that runs past
    the end of the data; fields read so far are kept.
    """
    result: dict[str, str] = {}
    pos = 0
    while pos + 4 <= len(data):
        tag = data[pos:pos + 2]
        length_str = data[pos + 2:pos + 4]
        if not length_str.isdigit():
            break
        length = int(length_str)
        pos += 4
        if pos + length > len(data):
            break
        result[tag] = data[pos:pos + length]
        pos += length
    return result


def detect_network(guid: str) -> str | None:
    guid = guid.lower()
    for key, name in KNOWN_NETWORKS.items():
        if key in guid:
            return name
    if "duitnow" in guid or "my.paynet" in guid:
        return "DuitNow"
    return None


def parse_emvco(data: str) -> EMVCoData | None:
    """Decode an EMVCo QR, or return None when required tags are missing."""
    raw = parse_tlv(data.strip())

    if not all(tag in raw for tag in ("00", "53", "58", "59")):
        logger.debug("EMVCo payload missing a required tag")
        return None

    accounts = []
    for number in MERCHANT_ACCOUNT_TAGS:
        tag = f"{number:02d}"
        if tag not in raw:
            continue
        nested = parse_tlv(raw[tag])
        guid = nested.get("00", "")
        accounts.append(
            MerchantAccount(
                tag=tag,
                guid=guid,
                network=detect_network(guid),
                merchant_id=nested.get("01") or nested.get("02"),
            )
        )

    extra = parse_tlv(raw["62"]) if "62" in raw else {}

    return EMVCoData(
        merchant_name=raw["59"],
        country_code=raw["58"],
        currency=CURRENCY_CODES.get(raw["53"], "MYR"),
        currency_numeric=raw["53"],
        dynamic=raw.get("01") == "12",
        amount=raw.get("54"),
        merchant_city=raw.get("60"),
        merchant_category_code=raw.get("52"),
        accounts=tuple(accounts),
        bill_number=extra.get("01"),
        reference_label=extra.get("05"),
        terminal_label=extra.get("07"),
        crc=raw.get("63", ""),
        fields=raw,
    )
