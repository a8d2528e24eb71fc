"""Active client tracking.

An active client is a customer with an interaction inside the rolling
window (ACTIVE_CLIENT_WINDOW_DAYS). ``customers.last_interaction_at`` and the
cached ``tenants.active_client_count`` are refreshed by a nightly job that
runs the statements built here through the raw SQL endpoint.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence

from tierbill.core.datetime_utils import to_iso, utc_now
from tierbill.core.exceptions import get_error_message
from tierbill.core.logging import logger
from tierbill.integrations.record_store import BaseRecordStore, quote_identifier
from tierbill.platform.billing.billing_data_access import BillingRepository
from tierbill.platform.billing.plan_logic import ACTIVE_CLIENT_WINDOW_DAYS
from tierbill.schemas.results import ActiveClientCounts, OperationResult

active_clients_logger = logger.with_prefix("Active clients: ")


@dataclass(frozen=True)
class InteractionTable:
    """A table whose rows count as an interaction with ``customer_id``."""

    table: str
    date_field: str


INTERACTION_TABLES: tuple[InteractionTable, ...] = (
    InteractionTable("service_orders", "updated_at"),
    InteractionTable("invoices", "updated_at"),
    InteractionTable("payments", "created_at"),
    InteractionTable("process_updates", "created_at"),
    InteractionTable("service_appointments", "updated_at"),
    InteractionTable("quotes", "updated_at"),
    InteractionTable("generated_documents", "created_at"),
    InteractionTable("client_files", "created_at"),
    InteractionTable("process_document_responses", "created_at"),
    InteractionTable("service_executions", "updated_at"),
    InteractionTable("service_reviews", "created_at"),
)


def build_update_last_interaction_sql(
    tables: Sequence[InteractionTable] = INTERACTION_TABLES,
) -> str:
    """SQL that raises ``customers.last_interaction_at`` to the latest interaction.

    The column is only ever moved forward, so running it twice is a no-op.
    """
    if not tables:
        raise ValueError("At least one interaction table is required")

    union_parts = [
        f"SELECT customer_id, MAX({quote_identifier(t.date_field)}) AS last_activity "
        f"FROM {quote_identifier(t.table)} WHERE customer_id IS NOT NULL GROUP BY customer_id"
        for t in tables
    ]
    union_sql = "\n      UNION ALL\n      ".join(union_parts)
    return f"""
    WITH all_interactions AS (
      {union_sql}
    ),
    latest_per_customer AS (
      SELECT customer_id, MAX(last_activity) AS last_activity
      FROM all_interactions
      GROUP BY customer_id
    )
    UPDATE customers c
    SET last_interaction_at = lpc.last_activity
    FROM latest_per_customer lpc
    WHERE c.id = lpc.customer_id
      AND (c.last_interaction_at IS NULL OR c.last_interaction_at < lpc.last_activity);
    """


def build_update_active_client_count_sql(window_days: int = ACTIVE_CLIENT_WINDOW_DAYS) -> str:
    """SQL that refreshes the cached ``tenants.active_client_count``.

    Every tenant is refreshed, so one without activity in the window drops to
    zero. Tenants whose live customers have no tracked interaction at all are
    skipped and keep their previous value.
    """
    window_days = int(window_days)
    if window_days <= 0:
        raise ValueError("window_days must be positive")
    return f"""
    UPDATE tenants t
    SET active_client_count = (
      SELECT COUNT(*)
      FROM customers c
      WHERE c.tenant_id = t.id
        AND c.deleted_at IS NULL
        AND c.last_interaction_at >= NOW() - INTERVAL '{window_days} days'
    )
    WHERE EXISTS (
        SELECT 1 FROM customers c
        WHERE c.tenant_id = t.id AND c.last_interaction_at IS NOT NULL
      )
      OR NOT EXISTS (
        SELECT 1 FROM customers c
        WHERE c.tenant_id = t.id AND c.deleted_at IS NULL
      );
    """


class ActiveClientCalculator:
    """Counts active and stored customers per tenant."""

    def __init__(
        self,
        store: BaseRecordStore,
        window_days: int = ACTIVE_CLIENT_WINDOW_DAYS,
        tables: Sequence[InteractionTable] = INTERACTION_TABLES,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the calculator."""
        self.store = store
        self.repository = BillingRepository(store)
        self.window_days = window_days
        self.tables = tuple(tables)
        self.clock = clock

    def window_start(self, now: Optional[datetime] = None) -> str:
        """ISO timestamp of the start of the active window."""
        return to_iso((now or self.clock()) - timedelta(days=self.window_days))

    async def get_active_customer_count(self, tenant_id: str) -> ActiveClientCounts:
        """Count active and total customers of a tenant.

        Never raises. When the tracking column looks unpopulated (no active
        customers but some stored) or the active query fails, every stored
        customer is treated as active. When the total query fails the result
        is (0, 0).
        """
        log = active_clients_logger.with_context(tenant_id=tenant_id)
        try:
            total = await self.repository.count_customers(tenant_id)
        except Exception as e:
            log.warning(f"Failed to count customers: {e}")
            return ActiveClientCounts(active=0, total=0)

        try:
            active = await self.repository.count_customers(
                tenant_id, interacted_since=self.window_start()
            )
        except Exception as e:
            log.warning(f"Failed to count active customers, assuming all active: {e}")
            active = total

        if active == 0 and total > 0:
            active = total

        return ActiveClientCounts(active=min(active, total), total=total)

    async def recalculate_active_clients(self) -> OperationResult:
        """Refresh last interaction dates, then the cached per-tenant counts."""
        try:
            await self.store.execute_sql(build_update_last_interaction_sql(self.tables))
            await self.store.execute_sql(build_update_active_client_count_sql(self.window_days))
        except Exception as e:
            active_clients_logger.error(f"Recalculation failed: {e}")
            return OperationResult(
                success=False, error=get_error_message(e, "Recalculation failed")
            )

        active_clients_logger.info("Recalculated last interaction dates and active counts")
        return OperationResult(success=True)


async def recalculate_active_clients(store: BaseRecordStore) -> OperationResult:
    """Run the nightly recalculation against ``store``."""
    return await ActiveClientCalculator(store).recalculate_active_clients()
