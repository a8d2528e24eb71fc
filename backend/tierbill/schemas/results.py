"""Result objects returned across the public boundary.

Every public billing and tier operation returns one of these instead of
raising, so batch callers can branch on ``success``/``error`` and continue.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from tierbill.schemas.plan import PlanTier


class OperationResult(BaseModel):
    """Generic success/error result."""

    success: bool
    error: Optional[str] = None


class PurchaseResult(OperationResult):
    """Result of a plan subscription or an extra-client purchase."""

    invoice_id: Optional[str] = None
    account_receivable_id: Optional[str] = None
    pix_payload: Optional[str] = None
    pix_qr_base64: Optional[str] = None
    total_amount: float = 0


class ConfirmPaymentResult(OperationResult):
    """Result of a payment confirmation.

    ``success`` reports the paid transition. A benefit that could not be
    activated after the transition is reported in ``activation_error``.
    """

    next_receivable_id: Optional[str] = None
    activation_error: Optional[str] = None


class NextBilling(BaseModel):
    """Ids of the triple generated for the next billing period."""

    receivable_id: str
    invoice_id: str


class ActiveClientCounts(BaseModel):
    """Active versus stored customers of a tenant. ``active`` never exceeds ``total``."""

    active: int = Field(0, ge=0)
    total: int = Field(0, ge=0)


class TenantLimits(BaseModel):
    """Usage and limits report for a tenant."""

    plan: str = Field(..., description="Current plan key")
    plan_tier: PlanTier
    plan_base_clients: Optional[int] = Field(None, description="Plan base client limit")
    extra_clients_purchased: int = 0
    effective_max_clients: Optional[int] = Field(None, description="None = unlimited")
    current_clients: int = Field(0, description="Active clients in the rolling window")
    total_stored_clients: int = 0
    available_slots: Optional[int] = None
    is_at_limit: bool = False
    is_near_limit: bool = False
    usage_percent: float = 0
    monthly_price: Optional[float] = None
    current_users: int = 0
    max_users: Optional[int] = None
    is_user_at_limit: bool = False
    is_user_near_limit: bool = False
    user_usage_percent: float = 0
    price_per_extra_client: float = 0
    suggested_upgrade: Optional[str] = None


class TierAction(str, Enum):
    """Action taken by the monthly tier adjustment."""

    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    NONE = "none"


class ActiveClientSummary(BaseModel):
    """Snapshot used by the monthly tier adjustment."""

    tenant_id: str
    total_stored_clients: int
    active_clients: int
    current_plan: str
    recommended_plan: str
    needs_upgrade: bool
    needs_downgrade: bool
    consecutive_months_below: int


class MonthlyTierResult(BaseModel):
    """Outcome of the monthly tier adjustment for one tenant."""

    tenant_id: str
    previous_plan: str
    new_plan: Optional[str] = None
    action: TierAction = TierAction.NONE
    active_clients: int = 0
    pix_generated: Optional[bool] = None
    error: Optional[str] = None
