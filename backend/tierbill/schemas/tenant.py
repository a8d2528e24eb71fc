"""Tenant schemas.

Tenants are owned by the external record store; these models only validate
the columns the billing subsystem reads.
"""

import json
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def parse_json_object(value: Any) -> Dict[str, Any]:
    """Parse a JSON column that may arrive as a dict, a JSON string or null.

    Unparsable or non-object values yield an empty dict.
    """
    if not value:
        return {}
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return dict(value) if isinstance(value, dict) else {}


class Tenant(BaseModel):
    """Tenant row as returned by the record store."""

    model_config = ConfigDict(extra="allow")

    id: str
    company_name: Optional[str] = None
    slug: Optional[str] = None
    plan: Optional[str] = None
    extra_users_purchased: int = Field(0, description="Extra client slots purchased")
    active_client_count: int = Field(0, description="Cached count from the nightly job")
    pix_key: Optional[str] = None
    pix_key_type: Optional[str] = None
    pix_merchant_name: Optional[str] = None
    pix_merchant_city: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", mode="before")
    def coerce_id(cls, v: Any) -> str:
        """Accept numeric ids from stores that use serial keys."""
        return str(v)

    @field_validator("extra_users_purchased", "active_client_count", mode="before")
    def null_counter_is_zero(cls, v: Any) -> Any:
        """Treat null counters as zero."""
        return 0 if v in (None, "") else v

    @field_validator("config", mode="before")
    def parse_config(cls, v: Any) -> Dict[str, Any]:
        """Accept the config column as JSON text or object."""
        return parse_json_object(v)

    @property
    def plan_key(self) -> str:
        """The stored plan key, defaulting to free."""
        return self.plan or "free"

    @property
    def display_name(self) -> str:
        """Name used on invoices."""
        return self.company_name or "Tenant"

    @property
    def consecutive_months_below(self) -> int:
        """Hysteresis counter stored in config."""
        try:
            return int(self.config.get("consecutive_months_below") or 0)
        except (TypeError, ValueError):
            return 0


class BillingConfig(BaseModel):
    """Resolved payee configuration used to generate payment codes."""

    model_config = ConfigDict(frozen=True)

    pix_key: str
    pix_key_type: str = "cnpj"
    pix_merchant_name: str = ""
    pix_merchant_city: str = ""
    gateway_enabled: bool = False
    gateway_customer_name: Optional[str] = None
    gateway_customer_email: Optional[str] = None
    gateway_customer_document: Optional[str] = None
    gateway_customer_phone: Optional[str] = None


class ChannelPartnerReferral(BaseModel):
    """Referral linking a tenant to the channel partner that brought it in."""

    model_config = ConfigDict(extra="allow")

    id: str
    tenant_id: Optional[str] = None
    status: Optional[str] = None
    first_payment_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    def coerce_id(cls, v: Any) -> str:
        """Accept numeric ids."""
        return str(v)


class Partner(BaseModel):
    """Channel partner row. Only the payee columns are validated."""

    model_config = ConfigDict(extra="allow")

    id: str
    display_name: Optional[str] = None
    pix_key: Optional[str] = None
    pix_key_type: Optional[str] = None
    pix_merchant_name: Optional[str] = None
    pix_merchant_city: Optional[str] = None

    @field_validator("id", mode="before")
    def coerce_id(cls, v: Any) -> str:
        """Accept numeric ids."""
        return str(v)
