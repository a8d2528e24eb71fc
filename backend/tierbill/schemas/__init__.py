# flake8: noqa: F401
"""Schemas for the tierbill library."""

from .financial import (
    AccountReceivable,
    BillingNotes,
    BillingType,
    Invoice,
    InvoiceItem,
    InvoiceStatus,
    ReceivableStatus,
)
from .plan import PlanBaseLimits, PlanKey, PlanTier
from .results import (
    ActiveClientCounts,
    ActiveClientSummary,
    ConfirmPaymentResult,
    MonthlyTierResult,
    NextBilling,
    OperationResult,
    PurchaseResult,
    TenantLimits,
    TierAction,
)
from .tenant import BillingConfig, ChannelPartnerReferral, Partner, Tenant, parse_json_object
