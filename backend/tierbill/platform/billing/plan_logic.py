"""Pure business logic for tier billing.

This module contains the plan catalog and every rule that can be decided
without I/O: plan ordering and recommendation, limit arithmetic, billing
period dates and the monthly tier adjustment state machine. The services
in this package feed it data from the record store.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

from tierbill.schemas.plan import PlanBaseLimits, PlanKey, PlanTier
from tierbill.schemas.results import TenantLimits, TierAction

ACTIVE_CLIENT_WINDOW_DAYS = 90
DOWNGRADE_DELAY_MONTHS = 2
PRICE_PER_EXTRA_CLIENT = 0.20
EXTRA_CLIENTS_MIN = 1
EXTRA_CLIENTS_MAX = 10_000
NEAR_LIMIT_PERCENT = 80
INITIAL_DUE_DAYS = 3
RECURRING_DUE_DAY = 5

# Plan configuration
PLAN_TIERS: Mapping[str, PlanTier] = MappingProxyType(
    {
        PlanKey.FREE.value: PlanTier(
            key=PlanKey.FREE,
            label="Gratis",
            max_active_clients=20,
            max_users=3,
            monthly_price=0,
            min_clients_for_tier=0,
        ),
        PlanKey.STARTER.value: PlanTier(
            key=PlanKey.STARTER,
            label="Starter",
            max_active_clients=100,
            max_users=None,
            monthly_price=99,
            min_clients_for_tier=21,
        ),
        PlanKey.GROWTH.value: PlanTier(
            key=PlanKey.GROWTH,
            label="Growth",
            max_active_clients=500,
            max_users=None,
            monthly_price=249,
            min_clients_for_tier=101,
        ),
        PlanKey.SCALE.value: PlanTier(
            key=PlanKey.SCALE,
            label="Scale",
            max_active_clients=2000,
            max_users=None,
            monthly_price=499,
            min_clients_for_tier=501,
        ),
        PlanKey.ENTERPRISE.value: PlanTier(
            key=PlanKey.ENTERPRISE,
            label="Enterprise",
            max_active_clients=None,
            max_users=None,
            monthly_price=None,
            min_clients_for_tier=2001,
        ),
    }
)

# Cheapest to most expensive
PLAN_ORDER: tuple[str, ...] = tuple(key.value for key in PlanKey)

# Includes the legacy 'trial' key, which is limited like free
PLAN_BASE_LIMITS: Mapping[str, PlanBaseLimits] = MappingProxyType(
    {
        "trial": PlanBaseLimits(max_users=3, max_clients=20),
        **{
            key: PlanBaseLimits(max_users=tier.max_users, max_clients=tier.max_active_clients)
            for key, tier in PLAN_TIERS.items()
        },
    }
)


class ChangeType(Enum):
    """Type of plan change."""

    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    SAME = "same"


def get_plan_tier(plan: Optional[str]) -> PlanTier:
    """Return the tier for a plan key. Unknown keys resolve to free."""
    return PLAN_TIERS.get(plan or "", PLAN_TIERS[PlanKey.FREE.value])


def get_plan_base_limits(plan: Optional[str]) -> PlanBaseLimits:
    """Return base user/client limits for a plan key, including legacy keys."""
    return PLAN_BASE_LIMITS.get(plan or "", PLAN_BASE_LIMITS[PlanKey.FREE.value])


def plan_index(plan: Optional[str]) -> int:
    """Position of a plan in PLAN_ORDER, or -1 for unknown keys."""
    try:
        return PLAN_ORDER.index(plan)
    except ValueError:
        return -1


def compare_plans(current: str, target: str) -> ChangeType:
    """Compare two plans to determine change type."""
    current_rank = plan_index(current)
    target_rank = plan_index(target)

    if target_rank > current_rank:
        return ChangeType.UPGRADE
    elif target_rank < current_rank:
        return ChangeType.DOWNGRADE
    else:
        return ChangeType.SAME


def is_fixed_price_plan(plan: str) -> bool:
    """Check if a plan can be bought at a fixed positive price."""
    tier = PLAN_TIERS.get(plan)
    return tier is not None and tier.has_fixed_price


def get_recommended_plan(client_count: int) -> str:
    """Get the cheapest plan that fits ``client_count`` active clients.

    Scans PLAN_ORDER ascending, so the result never gets cheaper as the count
    grows. The unlimited top tier is the catch-all.
    """
    for plan in PLAN_ORDER:
        tier = PLAN_TIERS[plan]
        if tier.max_active_clients is None or client_count <= tier.max_active_clients:
            return plan
    return PLAN_ORDER[-1]


def get_next_plan(plan: str) -> Optional[str]:
    """The next tier above ``plan``, or None on the top tier or an unknown key."""
    index = plan_index(plan)
    if 0 <= index < len(PLAN_ORDER) - 1:
        return PLAN_ORDER[index + 1]
    return None


def format_plan_price(plan: str) -> str:
    """Format plan price for display."""
    tier = PLAN_TIERS.get(plan)
    if tier is None:
        return "—"
    if tier.monthly_price is None:
        return "Sob consulta"
    if tier.monthly_price == 0:
        return "R$ 0"
    return f"R$ {tier.monthly_price:g}/mês"


def round_money(amount: float) -> float:
    """Round a currency amount to cents."""
    return round(amount + 0.0, 2)


def compute_invoice_total(subtotal: float, discount: float = 0, tax: float = 0) -> float:
    """Invoice total, never negative."""
    return max(0.0, round_money(subtotal - discount + tax))


def compute_extra_clients_amount(quantity: int) -> float:
    """Monthly price of ``quantity`` extra client slots."""
    return round_money(PRICE_PER_EXTRA_CLIENT * quantity)


def is_valid_extra_clients_quantity(quantity: int) -> bool:
    """Extra client purchases must stay within [1, 10000]."""
    return EXTRA_CLIENTS_MIN <= quantity <= EXTRA_CLIENTS_MAX


# ------------------------------ Limits ------------------------------ #


def _usage_percent(used: int, limit: Optional[int]) -> float:
    if limit is None or limit <= 0:
        return 0.0
    return min(used / limit * 100, 100.0)


def compute_tenant_limits(
    plan: str,
    extra_clients: int,
    active_clients: int,
    total_clients: int,
    user_count: int,
) -> TenantLimits:
    """Build the usage/limits report from raw counts.

    Client and user limits are independent axes. Only plans with a base user
    limit (free and legacy trial) restrict users.
    """
    tier = get_plan_tier(plan)
    base_limits = get_plan_base_limits(plan)
    extra_clients = max(0, extra_clients)

    if tier.max_active_clients is not None:
        effective_max_clients: Optional[int] = tier.max_active_clients + extra_clients
    else:
        effective_max_clients = None

    available_slots = (
        max(0, effective_max_clients - active_clients) if effective_max_clients is not None else None
    )
    is_at_limit = effective_max_clients is not None and active_clients >= effective_max_clients
    usage_percent = _usage_percent(active_clients, effective_max_clients)
    is_near_limit = usage_percent >= NEAR_LIMIT_PERCENT and not is_at_limit

    max_users = base_limits.max_users
    is_user_at_limit = max_users is not None and user_count >= max_users
    user_usage_percent = _usage_percent(user_count, max_users)
    is_user_near_limit = user_usage_percent >= NEAR_LIMIT_PERCENT and not is_user_at_limit

    suggested_upgrade = None
    if is_at_limit or is_near_limit or is_user_at_limit or is_user_near_limit:
        suggested_upgrade = get_next_plan(tier.key.value)

    return TenantLimits(
        plan=plan,
        plan_tier=tier,
        plan_base_clients=base_limits.max_clients,
        extra_clients_purchased=extra_clients,
        effective_max_clients=effective_max_clients,
        current_clients=active_clients,
        total_stored_clients=total_clients,
        available_slots=available_slots,
        is_at_limit=is_at_limit,
        is_near_limit=is_near_limit,
        usage_percent=usage_percent,
        monthly_price=tier.monthly_price,
        current_users=user_count,
        max_users=max_users,
        is_user_at_limit=is_user_at_limit,
        is_user_near_limit=is_user_near_limit,
        user_usage_percent=user_usage_percent,
        price_per_extra_client=PRICE_PER_EXTRA_CLIENT,
        suggested_upgrade=suggested_upgrade,
    )


# ------------------------------ Billing periods ------------------------------ #

_COMPETENCE_RE = re.compile(r"^(\d{4})-(\d{2})")


def first_of_month(day: date) -> date:
    """First day of the month containing ``day``."""
    return day.replace(day=1)


def initial_due_date(today: date) -> date:
    """Due date of a first-period charge."""
    return today + timedelta(days=INITIAL_DUE_DAYS)


def next_competence(competence: Optional[str], today: date) -> date:
    """First day of the month after ``competence`` (``YYYY-MM...``).

    An unparsable competence is treated as the current month.
    """
    match = _COMPETENCE_RE.match(competence or "")
    if match and 1 <= int(match.group(2)) <= 12:
        year, month = int(match.group(1)), int(match.group(2))
    else:
        year, month = today.year, today.month

    month += 1
    if month > 12:
        month = 1
        year += 1
    return date(year, month, 1)


def recurring_due_date(competence: date) -> date:
    """Due date of a recurring charge: the 5th of its competence month."""
    return competence.replace(day=RECURRING_DUE_DAY)


# ------------------------------ Monthly tier adjustment ------------------------------ #


@dataclass
class TierDecision:
    """Result of the monthly tier decision."""

    action: TierAction
    new_plan: Optional[str]
    consecutive_months_below: int
    persist_counter: bool


def decide_tier_adjustment(
    current_plan: str, recommended_plan: str, consecutive_months_below: int
) -> TierDecision:
    """Decide the monthly tier adjustment for one tenant.

    Upgrades apply immediately and leave the counter alone. Downgrades need
    DOWNGRADE_DELAY_MONTHS consecutive qualifying months, and the free tier is
    never downgraded. A month that qualifies for neither resets the counter.
    """
    counter = max(0, consecutive_months_below)
    change = compare_plans(current_plan, recommended_plan)

    if change == ChangeType.UPGRADE and is_fixed_price_plan(recommended_plan):
        return TierDecision(
            action=TierAction.UPGRADE,
            new_plan=recommended_plan,
            consecutive_months_below=counter,
            persist_counter=False,
        )

    if change == ChangeType.DOWNGRADE and current_plan != PlanKey.FREE.value:
        counter += 1
        if counter >= DOWNGRADE_DELAY_MONTHS:
            return TierDecision(
                action=TierAction.DOWNGRADE,
                new_plan=recommended_plan,
                consecutive_months_below=0,
                persist_counter=True,
            )
        return TierDecision(
            action=TierAction.NONE,
            new_plan=None,
            consecutive_months_below=counter,
            persist_counter=True,
        )

    return TierDecision(
        action=TierAction.NONE,
        new_plan=None,
        consecutive_months_below=0,
        persist_counter=counter > 0,
    )
