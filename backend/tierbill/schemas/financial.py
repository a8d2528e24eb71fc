"""Invoice and receivable schemas."""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InvoiceStatus(str, Enum):
    """Invoice status."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class ReceivableStatus(str, Enum):
    """Accounts receivable status."""

    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class BillingType(str, Enum):
    """Structured billing tags stored in ``notes.type``."""

    PLAN_SUBSCRIPTION = "saas_plan_subscription"
    EXTRA_CLIENTS = "saas_extra_clients"
    # Legacy tag from the per-user seat model; handled like extra clients
    USER_SEATS = "saas_user_seats"

    @classmethod
    def from_value(cls, value: Any) -> Optional["BillingType"]:
        """Return the tag for a raw value, or None when it is not a SaaS billing tag."""
        try:
            return cls(str(value))
        except ValueError:
            return None

    @property
    def is_extra_clients(self) -> bool:
        """Whether the tag adds extra client slots."""
        return self in (BillingType.EXTRA_CLIENTS, BillingType.USER_SEATS)


class BillingNotes(BaseModel):
    """Structured metadata serialized into the ``notes`` column.

    Unknown keys are preserved so that carrying notes forward to the next
    billing period never drops data written by other tools.
    """

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    buyer_tenant_id: Optional[str] = None
    buyer_tenant_name: Optional[str] = None
    target_plan: Optional[str] = None
    quantity: Optional[int] = None
    price_per_unit: Optional[float] = None
    monthly_price: Optional[float] = None
    is_initial: bool = False
    competence: Optional[str] = None
    invoice_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None

    @field_validator("buyer_tenant_id", "invoice_id", mode="before")
    def coerce_id(cls, v: Any) -> Optional[str]:
        """Accept numeric ids."""
        return None if v in (None, "") else str(v)

    @field_validator("is_initial", mode="before")
    def strict_initial_flag(cls, v: Any) -> bool:
        """Only a literal JSON true marks the initial period."""
        return v is True

    @classmethod
    def parse(cls, raw: Any) -> "BillingNotes":
        """Parse the notes column.

        Raises:
            ValueError: If the column is not a JSON object.
        """
        if raw in (None, ""):
            return cls()
        if isinstance(raw, dict):
            return cls.model_validate(raw)
        data = json.loads(str(raw))
        if not isinstance(data, dict):
            raise ValueError("Billing notes must be a JSON object")
        return cls.model_validate(data)

    @property
    def billing_type(self) -> Optional[BillingType]:
        """The recognized SaaS billing tag, if any."""
        return BillingType.from_value(self.type)

    def to_json(self) -> str:
        """Serialize for the notes column."""
        return self.model_dump_json()


class Invoice(BaseModel):
    """Invoice issued by the creditor tenant."""

    model_config = ConfigDict(extra="allow")

    id: str
    tenant_id: Optional[str] = None
    title: Optional[str] = None
    status: Optional[str] = None
    subtotal: float = 0
    discount: float = 0
    tax: float = 0
    total: float = 0
    issued_at: Optional[datetime] = None
    due_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("id", mode="before")
    def coerce_id(cls, v: Any) -> str:
        """Accept numeric ids."""
        return str(v)

    @field_validator("subtotal", "discount", "tax", "total", mode="before")
    def null_amount_is_zero(cls, v: Any) -> Any:
        """Treat null amounts as zero."""
        return 0 if v in (None, "") else v


class InvoiceItem(BaseModel):
    """Line item of an invoice."""

    model_config = ConfigDict(extra="allow")

    id: str
    invoice_id: Optional[str] = None
    description: Optional[str] = None
    quantity: float = 1
    unit_price: float = 0
    subtotal: float = 0
    sort_order: int = 1
    deleted_at: Optional[datetime] = None

    @field_validator("id", "invoice_id", mode="before")
    def coerce_id(cls, v: Any) -> Optional[str]:
        """Accept numeric ids."""
        return None if v is None else str(v)

    @field_validator("subtotal", "unit_price", mode="before")
    def null_amount_is_zero(cls, v: Any) -> Any:
        """Treat null amounts as zero."""
        return 0 if v in (None, "") else v


class AccountReceivable(BaseModel):
    """Accounts receivable entry owned by the creditor tenant."""

    model_config = ConfigDict(extra="allow")

    id: str
    tenant_id: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    invoice_id: Optional[str] = None
    amount: float = 0
    amount_received: float = 0
    status: Optional[str] = None
    due_date: Optional[date] = None
    competence_date: Optional[date] = None
    recurrence: Optional[str] = None
    recurrence_parent_id: Optional[str] = None
    pix_payload: Optional[str] = None
    pix_qr_base64: Optional[str] = None
    notes: Optional[Any] = Field(None, description="Raw notes column, parsed with BillingNotes")
    deleted_at: Optional[datetime] = None

    @field_validator("id", "invoice_id", "recurrence_parent_id", mode="before")
    def coerce_id(cls, v: Any) -> Optional[str]:
        """Accept numeric ids; blank ids are treated as missing."""
        return None if v in (None, "") else str(v)

    @field_validator("amount", "amount_received", mode="before")
    def null_amount_is_zero(cls, v: Any) -> Any:
        """Treat null amounts as zero."""
        return 0 if v in (None, "") else v

    @field_validator("due_date", "competence_date", mode="before")
    def date_part_only(cls, v: Any) -> Any:
        """Keep the date part of timestamp strings."""
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        if isinstance(v, datetime):
            return v.date()
        return v
