"""Unit tests for tenant limits resolution."""

import pytest

from tests.fixtures.common import BUYER_ID, FIXED_NOW
from tierbill.platform.usage.active_clients import ActiveClientCalculator
from tierbill.platform.usage.limits import (
    TenantLimitsResolver,
    can_add_client,
    can_add_user,
    get_tenant_limits,
)

RECENT = "2026-10-10T00:00:00+00:00"


def _seed_customers(store, count, tenant_id=BUYER_ID):
    store.seed(
        "customers",
        *(
            {"id": f"c-{n}", "tenant_id": tenant_id, "last_interaction_at": RECENT}
            for n in range(count)
        ),
    )


def _seed_users(store, count, tenant_id=BUYER_ID):
    store.seed(
        "user_tenants",
        *({"id": f"u-{n}", "tenant_id": tenant_id} for n in range(count)),
    )


@pytest.fixture
def resolver(seeded_store):
    return TenantLimitsResolver(
        seeded_store, ActiveClientCalculator(seeded_store, clock=lambda: FIXED_NOW)
    )


@pytest.mark.asyncio
class TestTenantLimits:
    async def test_free_tenant_usage(self, seeded_store, resolver):
        _seed_customers(seeded_store, 17)
        _seed_users(seeded_store, 2)

        limits = await resolver.get_tenant_limits(BUYER_ID)

        assert limits.plan == "free"
        assert limits.effective_max_clients == 20
        assert limits.current_clients == 17
        assert limits.available_slots == 3
        assert limits.is_near_limit is True
        assert limits.is_at_limit is False
        assert limits.current_users == 2
        assert limits.max_users == 3
        assert limits.suggested_upgrade == "starter"

    async def test_extra_clients_raise_the_limit(self, seeded_store, resolver):
        seeded_store.get("tenants", BUYER_ID).update(plan="starter", extra_users_purchased=30)
        _seed_customers(seeded_store, 120)

        limits = await resolver.get_tenant_limits(BUYER_ID)

        assert limits.effective_max_clients == 130
        assert limits.available_slots == 10
        assert limits.is_at_limit is False
        assert limits.is_near_limit is True
        assert limits.max_users is None
        assert limits.suggested_upgrade == "growth"

    async def test_enterprise_is_unlimited(self, seeded_store, resolver):
        seeded_store.get("tenants", BUYER_ID)["plan"] = "enterprise"
        _seed_customers(seeded_store, 40)

        limits = await resolver.get_tenant_limits(BUYER_ID)

        assert limits.effective_max_clients is None
        assert limits.available_slots is None
        assert limits.usage_percent == 0
        assert limits.suggested_upgrade is None

    async def test_missing_tenant_is_free(self, store):
        limits = await get_tenant_limits(store, "missing")

        assert limits.plan == "free"
        assert limits.extra_clients_purchased == 0
        assert limits.current_clients == 0

    async def test_tenant_failure_is_free(self, seeded_store, resolver):
        seeded_store.get("tenants", BUYER_ID)["plan"] = "growth"
        seeded_store.fail("list", "tenants")

        limits = await resolver.get_tenant_limits(BUYER_ID)

        assert limits.plan == "free"

    async def test_user_count_failure_is_zero(self, seeded_store, resolver):
        _seed_users(seeded_store, 3)
        seeded_store.fail("count", "user_tenants")

        limits = await resolver.get_tenant_limits(BUYER_ID)

        assert limits.current_users == 0
        assert limits.is_user_at_limit is False


@pytest.mark.asyncio
class TestGates:
    async def test_client_gate_closes_at_limit(self, seeded_store):
        _seed_customers(seeded_store, 19)
        assert await can_add_client(seeded_store, BUYER_ID) is True

        seeded_store.seed("customers", {"id": "c-20", "tenant_id": BUYER_ID})
        assert await can_add_client(seeded_store, BUYER_ID) is False

    async def test_user_gate(self, seeded_store):
        _seed_users(seeded_store, 2)
        assert await can_add_user(seeded_store, BUYER_ID) is True

        seeded_store.seed("user_tenants", {"id": "u-3", "tenant_id": BUYER_ID})
        assert await can_add_user(seeded_store, BUYER_ID) is False

    async def test_paid_plans_have_unlimited_users(self, seeded_store):
        seeded_store.get("tenants", BUYER_ID)["plan"] = "starter"
        _seed_users(seeded_store, 50)

        assert await can_add_user(seeded_store, BUYER_ID) is True
