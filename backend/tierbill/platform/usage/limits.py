"""Tenant limits resolution.

Fetches the raw counts for a tenant and hands them to the pure limit
computation in plan_logic. Read-only.
"""

import asyncio
from typing import Optional

from tierbill.core.logging import logger
from tierbill.integrations.record_store import BaseRecordStore
from tierbill.platform.billing.billing_data_access import BillingRepository
from tierbill.platform.billing.plan_logic import compute_tenant_limits
from tierbill.platform.usage.active_clients import ActiveClientCalculator
from tierbill.schemas.plan import PlanKey
from tierbill.schemas.results import TenantLimits
from tierbill.schemas.tenant import Tenant


class TenantLimitsResolver:
    """Resolves usage and limits per tenant."""

    def __init__(
        self,
        store: BaseRecordStore,
        calculator: Optional[ActiveClientCalculator] = None,
    ):
        """Initialize the resolver."""
        self.repository = BillingRepository(store)
        self.calculator = calculator or ActiveClientCalculator(store)

    async def _get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        try:
            return await self.repository.get_tenant(tenant_id)
        except Exception as e:
            logger.with_context(tenant_id=tenant_id).warning(f"Failed to load tenant: {e}")
            return None

    async def _count_users(self, tenant_id: str) -> int:
        try:
            return await self.repository.count_tenant_users(tenant_id)
        except Exception as e:
            logger.with_context(tenant_id=tenant_id).warning(f"Failed to count users: {e}")
            return 0

    async def get_tenant_limits(self, tenant_id: str) -> TenantLimits:
        """Get the usage/limits report of a tenant.

        A tenant that cannot be loaded is reported on the free plan without
        extras.
        """
        tenant, user_count, counts = await asyncio.gather(
            self._get_tenant(tenant_id),
            self._count_users(tenant_id),
            self.calculator.get_active_customer_count(tenant_id),
        )
        return compute_tenant_limits(
            plan=tenant.plan_key if tenant else PlanKey.FREE.value,
            extra_clients=tenant.extra_users_purchased if tenant else 0,
            active_clients=counts.active,
            total_clients=counts.total,
            user_count=user_count,
        )

    async def can_add_client(self, tenant_id: str) -> bool:
        """Whether the tenant is below its active client limit."""
        limits = await self.get_tenant_limits(tenant_id)
        return not limits.is_at_limit

    async def can_add_user(self, tenant_id: str) -> bool:
        """Whether the tenant is below its user limit."""
        limits = await self.get_tenant_limits(tenant_id)
        return not limits.is_user_at_limit


async def get_tenant_limits(store: BaseRecordStore, tenant_id: str) -> TenantLimits:
    """Resolve the limits of ``tenant_id`` against ``store``."""
    return await TenantLimitsResolver(store).get_tenant_limits(tenant_id)


async def can_add_client(store: BaseRecordStore, tenant_id: str) -> bool:
    """Whether ``tenant_id`` can register another active client."""
    return await TenantLimitsResolver(store).can_add_client(tenant_id)


async def can_add_user(store: BaseRecordStore, tenant_id: str) -> bool:
    """Whether ``tenant_id`` can add another user."""
    return await TenantLimitsResolver(store).can_add_user(tenant_id)
