"""Repository pattern for billing record store operations.

This module handles all record store interactions for billing,
providing a clean interface between the service layer and CRUD operations.
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from tierbill.core.datetime_utils import to_iso
from tierbill.core.exceptions import NotFoundException, RecordStoreError
from tierbill.integrations.record_store import (
    BaseRecordStore,
    CrudFilter,
    ListOptions,
)
from tierbill.platform.billing.plan_logic import compute_invoice_total, round_money
from tierbill.schemas.financial import (
    AccountReceivable,
    Invoice,
    InvoiceItem,
    ReceivableStatus,
)
from tierbill.schemas.tenant import ChannelPartnerReferral, Partner, Tenant

TENANTS = "tenants"
USER_TENANTS = "user_tenants"
CUSTOMERS = "customers"
INVOICES = "invoices"
INVOICE_ITEMS = "invoice_items"
ACCOUNTS_RECEIVABLE = "accounts_receivable"
CHANNEL_PARTNER_REFERRALS = "channel_partner_referrals"
PARTNERS = "partners"

# Statuses a receivable can be confirmed from
CONFIRMABLE_STATUSES = (ReceivableStatus.PENDING.value, ReceivableStatus.OVERDUE.value)


def _require_id(row: Mapping[str, Any], table: str) -> Dict[str, Any]:
    if not row or row.get("id") in (None, ""):
        raise RecordStoreError("Record store did not return the created row", table=table)
    return dict(row)


class BillingRepository:
    """Repository for all billing-related record store operations."""

    def __init__(self, store: BaseRecordStore):
        """Initialize with the record store."""
        self.store = store

    # Tenants

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        """Get tenant by ID."""
        rows = await self.store.list(TENANTS, [CrudFilter("id", tenant_id)])
        return Tenant.model_validate(rows[0]) if rows else None

    async def find_tenant_by_slug(self, slug: str) -> Optional[Tenant]:
        """Get tenant by its exact slug."""
        rows = await self.store.list(
            TENANTS, [CrudFilter("slug", slug)], ListOptions(limit=1)
        )
        return Tenant.model_validate(rows[0]) if rows else None

    async def find_tenant_by_company_name(self, fragment: str) -> Optional[Tenant]:
        """Get the first tenant whose company name contains ``fragment``."""
        rows = await self.store.list(
            TENANTS,
            [CrudFilter("company_name", f"%{fragment}%", "ilike")],
            ListOptions(limit=1),
        )
        return Tenant.model_validate(rows[0]) if rows else None

    async def update_tenant(self, tenant_id: str, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Update tenant columns."""
        return await self.store.update(TENANTS, {"id": tenant_id, **updates})

    async def count_tenant_users(self, tenant_id: str) -> int:
        """Count users linked to a tenant."""
        return await self.store.count(USER_TENANTS, [CrudFilter("tenant_id", tenant_id)])

    async def count_customers(self, tenant_id: str, interacted_since: Optional[str] = None) -> int:
        """Count non-deleted customers, optionally only those active since a date."""
        filters = [CrudFilter("tenant_id", tenant_id)]
        if interacted_since:
            filters.append(CrudFilter("last_interaction_at", interacted_since, "gte"))
        return await self.store.count(
            CUSTOMERS, filters, ListOptions(auto_exclude_deleted=True)
        )

    # Invoices

    async def create_invoice(self, payload: Mapping[str, Any]) -> Invoice:
        """Create an invoice."""
        row = await self.store.create(INVOICES, payload)
        return Invoice.model_validate(_require_id(row, INVOICES))

    async def create_invoice_item(self, payload: Mapping[str, Any]) -> InvoiceItem:
        """Create an invoice line item."""
        row = await self.store.create(INVOICE_ITEMS, payload)
        return InvoiceItem.model_validate(_require_id(row, INVOICE_ITEMS))

    async def list_invoice_items(self, invoice_id: str) -> List[InvoiceItem]:
        """List the non-deleted items of an invoice."""
        rows = await self.store.list(
            INVOICE_ITEMS,
            [CrudFilter("invoice_id", invoice_id)],
            ListOptions(auto_exclude_deleted=True),
        )
        return [InvoiceItem.model_validate(row) for row in rows]

    async def recalculate_invoice(self, invoice: Invoice) -> Invoice:
        """Recompute subtotal and total from the invoice items and persist them."""
        items = await self.list_invoice_items(invoice.id)
        subtotal = round_money(sum(item.subtotal for item in items))
        total = compute_invoice_total(subtotal, invoice.discount, invoice.tax)
        await self.update_invoice(invoice.id, {"subtotal": subtotal, "total": total})
        return invoice.model_copy(update={"subtotal": subtotal, "total": total})

    async def update_invoice(self, invoice_id: str, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Update invoice columns."""
        return await self.store.update(INVOICES, {"id": invoice_id, **updates})

    # Receivables

    async def get_receivable(self, receivable_id: str) -> AccountReceivable:
        """Get a receivable by ID.

        Raises:
            NotFoundException: If the receivable does not exist.
        """
        rows = await self.store.list(ACCOUNTS_RECEIVABLE, [CrudFilter("id", receivable_id)])
        if not rows:
            raise NotFoundException(f"Receivable {receivable_id} not found")
        return AccountReceivable.model_validate(rows[0])

    async def create_receivable(self, payload: Mapping[str, Any]) -> AccountReceivable:
        """Create an accounts receivable entry."""
        row = await self.store.create(ACCOUNTS_RECEIVABLE, payload)
        return AccountReceivable.model_validate(_require_id(row, ACCOUNTS_RECEIVABLE))

    async def mark_receivable_paid(
        self,
        receivable: AccountReceivable,
        confirmed_by: Optional[str],
        now: datetime,
    ) -> bool:
        """Transition a receivable to paid unless another caller already did.

        Returns:
            True if this call performed the transition.
        """
        timestamp = to_iso(now)
        payload: Dict[str, Any] = {
            "id": receivable.id,
            "status": ReceivableStatus.PAID.value,
            "amount_received": receivable.amount,
            "received_at": timestamp,
            "confirmed_at": timestamp,
        }
        if confirmed_by:
            payload["confirmed_by"] = confirmed_by

        row = await self.store.update_if(
            ACCOUNTS_RECEIVABLE, payload, {"status": CONFIRMABLE_STATUSES}
        )
        return row is not None

    async def list_pending_receivables(self, creditor_tenant_id: str) -> List[AccountReceivable]:
        """Pending SaaS receivables of the creditor, newest first."""
        rows = await self.store.list(
            ACCOUNTS_RECEIVABLE,
            [
                CrudFilter("tenant_id", creditor_tenant_id),
                CrudFilter("category", "%SaaS%", "ilike"),
                CrudFilter("status", ReceivableStatus.PENDING.value),
            ],
            ListOptions(sort_column="created_at DESC", auto_exclude_deleted=True),
        )
        return [AccountReceivable.model_validate(row) for row in rows]

    # Partners and referrals

    async def get_partner(self, partner_id: str) -> Optional[Partner]:
        """Get a channel partner by ID."""
        rows = await self.store.list(PARTNERS, [CrudFilter("id", partner_id)])
        return Partner.model_validate(rows[0]) if rows else None

    async def get_pending_referral(self, tenant_id: str) -> Optional[ChannelPartnerReferral]:
        """Get the pending channel-partner referral of a tenant, if any."""
        rows = await self.store.list(
            CHANNEL_PARTNER_REFERRALS,
            [CrudFilter("tenant_id", tenant_id), CrudFilter("status", "pending")],
            ListOptions(limit=1),
        )
        return ChannelPartnerReferral.model_validate(rows[0]) if rows else None

    async def update_referral(self, referral_id: str, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Update referral columns."""
        return await self.store.update(CHANNEL_PARTNER_REFERRALS, {"id": referral_id, **updates})
