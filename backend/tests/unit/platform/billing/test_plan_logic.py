"""Unit tests for the pure plan logic."""

from datetime import date

import pytest

from tierbill.platform.billing.plan_logic import (
    DOWNGRADE_DELAY_MONTHS,
    PLAN_ORDER,
    PLAN_TIERS,
    ChangeType,
    compare_plans,
    compute_extra_clients_amount,
    compute_invoice_total,
    compute_tenant_limits,
    decide_tier_adjustment,
    first_of_month,
    format_plan_price,
    get_next_plan,
    get_plan_base_limits,
    get_plan_tier,
    get_recommended_plan,
    initial_due_date,
    is_fixed_price_plan,
    is_valid_extra_clients_quantity,
    next_competence,
    plan_index,
    recurring_due_date,
)
from tierbill.schemas.results import TierAction


class TestCatalog:
    def test_order_is_cheapest_first(self):
        assert PLAN_ORDER == ("free", "starter", "growth", "scale", "enterprise")

    def test_exactly_one_unlimited_tier(self):
        unlimited = [key for key, tier in PLAN_TIERS.items() if tier.is_unlimited]
        assert unlimited == ["enterprise"]

    def test_unknown_plan_resolves_to_free(self):
        assert get_plan_tier("platinum").key.value == "free"
        assert get_plan_tier(None).key.value == "free"

    def test_trial_has_free_limits(self):
        trial = get_plan_base_limits("trial")
        assert trial.max_users == 3
        assert trial.max_clients == 20

    def test_plan_index_of_unknown_key(self):
        assert plan_index("trial") == -1
        assert plan_index("growth") == 2

    @pytest.mark.parametrize(
        "current, target, expected",
        [
            ("free", "starter", ChangeType.UPGRADE),
            ("scale", "growth", ChangeType.DOWNGRADE),
            ("growth", "growth", ChangeType.SAME),
        ],
    )
    def test_compare_plans(self, current, target, expected):
        assert compare_plans(current, target) == expected

    def test_fixed_price_plans(self):
        assert is_fixed_price_plan("starter")
        assert not is_fixed_price_plan("free")
        assert not is_fixed_price_plan("enterprise")
        assert not is_fixed_price_plan("nope")

    @pytest.mark.parametrize(
        "plan, expected",
        [
            ("enterprise", "Sob consulta"),
            ("free", "R$ 0"),
            ("starter", "R$ 99/mês"),
            ("unknown", "—"),
        ],
    )
    def test_format_plan_price(self, plan, expected):
        assert format_plan_price(plan) == expected

    def test_next_plan(self):
        assert get_next_plan("free") == "starter"
        assert get_next_plan("enterprise") is None


class TestRecommendation:
    @pytest.mark.parametrize(
        "count, expected",
        [
            (0, "free"),
            (20, "free"),
            (21, "starter"),
            (100, "starter"),
            (101, "growth"),
            (2000, "scale"),
            (2001, "enterprise"),
            (1_000_000, "enterprise"),
        ],
    )
    def test_boundaries(self, count, expected):
        assert get_recommended_plan(count) == expected

    def test_monotonic(self):
        previous = 0
        for count in range(0, 2600, 7):
            index = plan_index(get_recommended_plan(count))
            assert index >= previous
            previous = index


class TestMoney:
    def test_extra_clients_amount(self):
        assert compute_extra_clients_amount(1) == 0.2
        assert compute_extra_clients_amount(150) == 30.0
        assert compute_extra_clients_amount(3) == 0.6

    def test_quantity_range(self):
        assert is_valid_extra_clients_quantity(1)
        assert is_valid_extra_clients_quantity(10_000)
        assert not is_valid_extra_clients_quantity(0)
        assert not is_valid_extra_clients_quantity(10_001)

    def test_invoice_total_never_negative(self):
        assert compute_invoice_total(99, discount=150) == 0
        assert compute_invoice_total(10.005, tax=0.1) == pytest.approx(10.11, abs=0.01)


class TestLimits:
    def test_free_plan_near_limit(self):
        limits = compute_tenant_limits("free", 0, active_clients=17, total_clients=30, user_count=1)
        assert limits.effective_max_clients == 20
        assert limits.available_slots == 3
        assert limits.usage_percent == pytest.approx(85.0)
        assert limits.is_near_limit
        assert not limits.is_at_limit
        assert limits.suggested_upgrade == "starter"

    def test_extras_raise_the_cap(self):
        limits = compute_tenant_limits("starter", 50, active_clients=100, total_clients=120, user_count=9)
        assert limits.effective_max_clients == 150
        assert limits.available_slots == 50
        assert limits.max_users is None
        assert not limits.is_user_at_limit
        assert limits.suggested_upgrade is None

    def test_at_limit_is_not_near_limit(self):
        limits = compute_tenant_limits("free", 0, active_clients=25, total_clients=25, user_count=0)
        assert limits.is_at_limit
        assert not limits.is_near_limit
        assert limits.available_slots == 0
        assert limits.usage_percent == 100.0

    def test_unlimited_tier(self):
        limits = compute_tenant_limits("enterprise", 0, active_clients=9000, total_clients=9000, user_count=40)
        assert limits.effective_max_clients is None
        assert limits.available_slots is None
        assert limits.usage_percent == 0
        assert not limits.is_at_limit
        assert limits.suggested_upgrade is None

    def test_user_limit_only_on_free(self):
        limits = compute_tenant_limits("trial", 0, active_clients=0, total_clients=0, user_count=3)
        assert limits.max_users == 3
        assert limits.is_user_at_limit
        assert limits.suggested_upgrade == "starter"


class TestBillingPeriods:
    def test_first_of_month(self):
        assert first_of_month(date(2026, 10, 18)) == date(2026, 10, 1)

    def test_initial_due_date(self):
        assert initial_due_date(date(2026, 10, 30)) == date(2026, 11, 2)

    def test_next_competence_rolls_over_december(self):
        assert next_competence("2026-12-01", date(2026, 12, 20)) == date(2027, 1, 1)

    def test_next_competence_mid_year(self):
        assert next_competence("2026-06-01", date(2030, 1, 1)) == date(2026, 7, 1)

    def test_next_competence_falls_back_to_today(self):
        assert next_competence("garbage", date(2026, 10, 18)) == date(2026, 11, 1)
        assert next_competence(None, date(2026, 12, 3)) == date(2027, 1, 1)

    def test_recurring_due_date(self):
        assert recurring_due_date(date(2027, 1, 1)) == date(2027, 1, 5)


class TestTierDecision:
    def test_upgrade_is_immediate_and_keeps_counter(self):
        decision = decide_tier_adjustment("free", "starter", 1)
        assert decision.action == TierAction.UPGRADE
        assert decision.new_plan == "starter"
        assert not decision.persist_counter

    def test_first_month_below_only_counts(self):
        decision = decide_tier_adjustment("growth", "starter", 0)
        assert decision.action == TierAction.NONE
        assert decision.new_plan is None
        assert decision.consecutive_months_below == 1
        assert decision.persist_counter

    def test_downgrade_after_delay(self):
        decision = decide_tier_adjustment("growth", "starter", DOWNGRADE_DELAY_MONTHS - 1)
        assert decision.action == TierAction.DOWNGRADE
        assert decision.new_plan == "starter"
        assert decision.consecutive_months_below == 0

    def test_recovered_month_resets_counter(self):
        decision = decide_tier_adjustment("growth", "growth", 1)
        assert decision.action == TierAction.NONE
        assert decision.consecutive_months_below == 0
        assert decision.persist_counter

    def test_nothing_to_persist_when_counter_is_zero(self):
        decision = decide_tier_adjustment("growth", "growth", 0)
        assert not decision.persist_counter

    def test_free_is_never_downgraded(self):
        decision = decide_tier_adjustment("free", "free", 5)
        assert decision.action == TierAction.NONE

    def test_negotiated_target_is_not_an_upgrade(self):
        decision = decide_tier_adjustment("scale", "enterprise", 1)
        assert decision.action == TierAction.NONE
        assert decision.consecutive_months_below == 0

    def test_two_month_sequence(self):
        first = decide_tier_adjustment("scale", "starter", 0)
        second = decide_tier_adjustment("scale", "starter", first.consecutive_months_below)
        assert first.action == TierAction.NONE
        assert second.action == TierAction.DOWNGRADE
