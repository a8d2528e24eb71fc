"""Monthly tier adjustment.

Runs at month end for each tenant. Upgrades are immediate and bill the new
plan right away; downgrades wait for DOWNGRADE_DELAY_MONTHS consecutive
months below the current tier, tracked in
``tenants.config.consecutive_months_below``.
"""

import asyncio
from typing import List, Optional, Sequence

from tierbill.core.config import settings
from tierbill.core.exceptions import NotFoundException, get_error_message
from tierbill.core.logging import ContextualLogger, logger
from tierbill.integrations.record_store import BaseRecordStore
from tierbill.platform.billing.billing_data_access import BillingRepository
from tierbill.platform.billing.billing_service import BillingService
from tierbill.platform.billing.plan_logic import (
    DOWNGRADE_DELAY_MONTHS,
    ChangeType,
    compare_plans,
    decide_tier_adjustment,
    get_recommended_plan,
)
from tierbill.schemas.results import ActiveClientSummary, MonthlyTierResult, TierAction
from tierbill.schemas.tenant import Tenant

tier_logger = logger.with_prefix("Tier adjustment: ")


class TierAdjustmentService:
    """Applies the monthly upgrade/downgrade rules to tenants."""

    def __init__(self, store: BaseRecordStore, billing_service: BillingService):
        """Initialize the service.

        Args:
            store: Record store holding tenants and customers.
            billing_service: Used to bill immediate upgrades.
        """
        self.repository = BillingRepository(store)
        self.billing_service = billing_service

    async def _load_summary(self, tenant_id: str) -> tuple[Tenant, ActiveClientSummary]:
        tenant = await self.repository.get_tenant(tenant_id)
        if tenant is None:
            raise NotFoundException("Tenant not found")

        total_stored = await self.repository.count_customers(tenant_id)
        active = tenant.active_client_count
        current_plan = tenant.plan_key
        recommended = get_recommended_plan(active)
        counter = tenant.consecutive_months_below
        change = compare_plans(current_plan, recommended)

        summary = ActiveClientSummary(
            tenant_id=tenant_id,
            total_stored_clients=total_stored,
            active_clients=active,
            current_plan=current_plan,
            recommended_plan=recommended,
            needs_upgrade=change == ChangeType.UPGRADE,
            needs_downgrade=(
                change == ChangeType.DOWNGRADE and counter >= DOWNGRADE_DELAY_MONTHS
            ),
            consecutive_months_below=counter,
        )
        return tenant, summary

    async def get_active_client_summary(self, tenant_id: str) -> Optional[ActiveClientSummary]:
        """Get the tier snapshot of a tenant, or None if it cannot be loaded."""
        try:
            _, summary = await self._load_summary(tenant_id)
        except Exception as e:
            tier_logger.with_context(tenant_id=tenant_id).warning(f"No summary: {e}")
            return None
        return summary

    async def _persist_counter(self, tenant: Tenant, counter: int, log: ContextualLogger) -> None:
        try:
            await self.repository.update_tenant(
                tenant.id, {"config": {**tenant.config, "consecutive_months_below": counter}}
            )
        except Exception as e:
            log.warning(f"Failed to store consecutive_months_below={counter}: {e}")

    async def process_monthly_tier_adjustment(self, tenant_id: str) -> MonthlyTierResult:
        """Apply this month's tier decision to one tenant. Never raises."""
        log = tier_logger.with_context(tenant_id=tenant_id, operation="monthly_tier_adjustment")
        try:
            tenant, summary = await self._load_summary(tenant_id)
        except Exception as e:
            return MonthlyTierResult(
                tenant_id=tenant_id,
                previous_plan="unknown",
                action=TierAction.NONE,
                error=get_error_message(e, "Tenant not found"),
            )

        decision = decide_tier_adjustment(
            summary.current_plan, summary.recommended_plan, summary.consecutive_months_below
        )
        result = MonthlyTierResult(
            tenant_id=tenant_id,
            previous_plan=summary.current_plan,
            new_plan=decision.new_plan,
            action=decision.action,
            active_clients=summary.active_clients,
        )

        if decision.action == TierAction.UPGRADE:
            purchase = await self.billing_service.subscribe_to_plan(tenant_id, decision.new_plan)
            result.pix_generated = purchase.success
            result.error = purchase.error
            log.info(
                f"Upgrade {summary.current_plan} -> {decision.new_plan} "
                f"({summary.active_clients} active), billed={purchase.success}"
            )
            return result

        if decision.action == TierAction.DOWNGRADE:
            try:
                await self.repository.update_tenant(
                    tenant_id,
                    {
                        "plan": decision.new_plan,
                        "config": {**tenant.config, "consecutive_months_below": 0},
                    },
                )
                log.info(f"Downgraded {summary.current_plan} -> {decision.new_plan}")
            except Exception as e:
                log.error(f"Downgrade failed: {e}")
                result.error = get_error_message(e, "Downgrade failed")
            return result

        if decision.persist_counter:
            await self._persist_counter(tenant, decision.consecutive_months_below, log)
        return result

    async def process_all(
        self,
        tenant_ids: Sequence[str],
        max_concurrency: Optional[int] = None,
    ) -> List[MonthlyTierResult]:
        """Adjust every tenant independently, at most ``max_concurrency`` at a time.

        Results are returned in the order of ``tenant_ids``.
        """
        semaphore = asyncio.Semaphore(max_concurrency or settings.TIER_ADJUSTMENT_MAX_CONCURRENCY)

        async def _process(tenant_id: str) -> MonthlyTierResult:
            async with semaphore:
                return await self.process_monthly_tier_adjustment(tenant_id)

        results = await asyncio.gather(*(_process(tenant_id) for tenant_id in tenant_ids))
        summary = {action: 0 for action in TierAction}
        for result in results:
            summary[result.action] += 1
        tier_logger.info(
            f"Processed {len(results)} tenants: "
            f"{summary[TierAction.UPGRADE]} upgraded, {summary[TierAction.DOWNGRADE]} downgraded"
        )
        return list(results)
