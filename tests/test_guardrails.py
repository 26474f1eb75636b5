"""Tests for guardrail settings, rules and the rule chain."""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import TODAY, make_source
from flowpay.core.types import ReasonCode
from flowpay.guardrails.base import (
    GuardrailConfig,
    GuardrailContext,
    GuardrailRule,
    RuleChain,
    RuleResult,
    UserPaymentState,
)
from flowpay.guardrails.policy import GuardrailConfigStore, GuardrailPolicy
from flowpay.guardrails.rules import (
    CoverageRule,
    DailyLimitRule,
    HardLimitRule,
    SinglePaymentAutoRule,
    default_rule_chain,
)
from flowpay.resolution.allocation import Allocation, CandidateKind, FundingCandidate


def direct(amount: str, balance: str = "1000", **source_kwargs) -> FundingCandidate:
    source = make_source("w1", balance, **source_kwargs)
    return FundingCandidate(CandidateKind.DIRECT, (Allocation(source, Decimal(amount)),))


def context(amount: str, config=None, state=None, candidate=None) -> GuardrailContext:
    return GuardrailContext(
        candidate=candidate or direct(amount),
        amount=Decimal(amount),
        state=state or UserPaymentState(last_reset_date=TODAY),
        config=config or GuardrailConfig(),
    )


class TestGuardrailConfig:
    def test_defaults(self):
        config = GuardrailConfig()
        assert config.max_auto_top_up_amount == Decimal("100")
        assert config.max_single_payment_auto == Decimal("50")
        assert config.require_confirmation_above == Decimal("500")
        assert config.daily_auto_limit == Decimal("200")
        assert config.allow_split_payments is False
        assert config.hard_block_limit == Decimal("5000")

    def test_from_camel_case_record(self):
        config = GuardrailConfig.from_dict(
            {
                "maxAutoTopUpAmount": 20,
                "maxSinglePaymentAuto": "30.5",
                "requireConfirmationAbove": 100,
                "dailyAutoLimit": 150,
                "allowSplitPayments": True,
            }
        )
        assert config.max_auto_top_up_amount == Decimal("20")
        assert config.max_single_payment_auto == Decimal("30.5")
        assert config.allow_split_payments is True
        assert config.hard_block_limit == Decimal("1000")

    def test_missing_record_uses_defaults(self):
        assert GuardrailConfig.from_dict(None) == GuardrailConfig()
        assert GuardrailConfig.from_dict({"dailyAutoLimit": 10}).max_single_payment_auto == Decimal("50")

    def test_snake_case_round_trip(self):
        config = GuardrailConfig(daily_auto_limit=Decimal("75"), allow_split_payments=True)
        assert GuardrailConfig.from_dict(config.to_dict()) == config

    def test_negative_limit_rejected(self):
        with pytest.raises(ValueError):
            GuardrailConfig(daily_auto_limit=Decimal("-1"))

    def test_multiplier_below_one_rejected(self):
        with pytest.raises(ValueError):
            GuardrailConfig(hard_block_multiplier=Decimal("0.5"))


class TestUserPaymentState:
    def test_reset_on_new_day(self):
        state = UserPaymentState(daily_auto_approved=Decimal("80"), last_reset_date=TODAY)
        tomorrow = TODAY + timedelta(days=1)

        reset = state.reset_if_stale(tomorrow)
        assert reset.daily_auto_approved == 0
        assert reset.last_reset_date == tomorrow

    def test_same_day_is_unchanged(self):
        state = UserPaymentState(daily_auto_approved=Decimal("80"), last_reset_date=TODAY)
        assert state.reset_if_stale(TODAY) is state

    def test_with_auto_approval_returns_new_state(self):
        state = UserPaymentState(daily_auto_approved=Decimal("10"), last_reset_date=TODAY)
        updated = state.with_auto_approval(Decimal("5"), TODAY)

        assert updated.daily_auto_approved == Decimal("15")
        assert state.daily_auto_approved == Decimal("10")

    def test_dict_forms(self):
        state = UserPaymentState.from_dict({"dailyAutoApproved": "12.5", "lastResetDate": "2026-10-19"})
        assert state.daily_auto_approved == Decimal("12.5")
        assert state.last_reset_date == TODAY
        assert UserPaymentState.from_dict(state.to_dict()) == state


class TestRules:
    def test_coverage_blocks_underfunded_candidate(self):
        source = make_source("w1", "5")
        candidate = FundingCandidate(CandidateKind.DIRECT, (Allocation(source, Decimal("20")),))
        result = CoverageRule().check(context("20", candidate=candidate))

        assert result.blocked
        assert result.reason_code == ReasonCode.CANNOT_COVER_AMOUNT.value

    def test_coverage_counts_top_up(self):
        source = make_source("w1", "5")
        candidate = FundingCandidate(
            CandidateKind.TOP_UP,
            (Allocation(source, Decimal("20"), topup_amount=Decimal("15")),),
        )
        assert CoverageRule().check(context("20", candidate=candidate)).passed

    def test_hard_limit(self):
        assert HardLimitRule().check(context("5000")).passed
        result = HardLimitRule().check(context("5000.01"))
        assert result.blocked
        assert result.reason_code == ReasonCode.OVER_HARD_LIMIT.value

    def test_daily_limit_is_inclusive(self):
        state = UserPaymentState(daily_auto_approved=Decimal("180"), last_reset_date=TODAY)
        assert DailyLimitRule().check(context("20", state=state)).passed

        result = DailyLimitRule().check(context("21", state=state))
        assert result.requires_confirmation
        assert not result.blocked

    def test_single_payment_auto(self):
        assert SinglePaymentAutoRule().check(context("50")).passed
        result = SinglePaymentAutoRule().check(context("51"))
        assert result.reason_code == ReasonCode.OVER_AUTO_LIMIT.value
        assert not result

    def test_result_truthiness(self):
        assert RuleResult(rule_name="x")
        assert not RuleResult(rule_name="x", requires_confirmation=True)


class AlwaysConfirm(GuardrailRule):
    @property
    def name(self) -> str:
        return "always_confirm"

    def check(self, context: GuardrailContext) -> RuleResult:
        return RuleResult(
            rule_name=self.name,
            requires_confirmation=True,
            reason_code="CUSTOM",
            reason="Always ask",
        )


class TestRuleChain:
    def test_default_chain_order(self):
        names = [rule.name for rule in default_rule_chain()]
        assert names[:2] == ["coverage", "hard_limit"]
        assert len(names) == 7

    def test_block_stops_evaluation(self):
        chain = RuleChain([HardLimitRule(), AlwaysConfirm()])
        decision = chain.evaluate(context("6000"))

        assert decision.blocked
        assert not decision.requires_confirmation
        assert decision.reason_codes == (ReasonCode.OVER_HARD_LIMIT.value,)

    def test_confirmations_accumulate(self):
        chain = RuleChain([SinglePaymentAutoRule(), AlwaysConfirm()])
        decision = chain.evaluate(context("60"))

        assert decision.requires_confirmation
        assert decision.reason_codes == (ReasonCode.OVER_AUTO_LIMIT.value, "CUSTOM")
        assert len(decision.confirmation_reasons) == 2

    def test_add_get_remove(self):
        chain = RuleChain().add(AlwaysConfirm())
        assert chain.get("always_confirm") is not None
        assert chain.remove("always_confirm")
        assert not chain.remove("always_confirm")
        assert len(chain) == 0

    def test_empty_chain_auto_approves(self):
        assert RuleChain().evaluate(context("10")).auto_approved


class TestGuardrailPolicy:
    def test_stale_state_is_reset_before_rules(self):
        policy = GuardrailPolicy()
        state = UserPaymentState(
            daily_auto_approved=Decimal("200"),
            last_reset_date=TODAY - timedelta(days=2),
        )
        decision = policy.evaluate(direct("20"), Decimal("20"), state, GuardrailConfig(), TODAY)
        assert decision.auto_approved

    def test_custom_chain(self):
        policy = GuardrailPolicy(RuleChain([AlwaysConfirm()]))
        decision = policy.evaluate(
            direct("1"), Decimal("1"), UserPaymentState(last_reset_date=TODAY), GuardrailConfig()
        )
        assert decision.requires_confirmation
        assert policy.rules.get("always_confirm") is not None


class TestGuardrailConfigStore:
    @pytest.mark.asyncio
    async def test_defaults_when_absent(self, storage):
        store = GuardrailConfigStore(storage)
        assert await store.get("u1") == GuardrailConfig()

    @pytest.mark.asyncio
    async def test_save_and_get(self, storage):
        store = GuardrailConfigStore(storage)
        config = GuardrailConfig(max_single_payment_auto=Decimal("25"))
        await store.save("u1", config)

        assert await store.get("u1") == config
        assert await store.get("u2") == GuardrailConfig()
