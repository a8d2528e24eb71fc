"""Plan catalog schemas."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PlanKey(str, Enum):
    """Plan tiers, cheapest first."""

    FREE = "free"
    STARTER = "starter"
    GROWTH = "growth"
    SCALE = "scale"
    ENTERPRISE = "enterprise"


class PlanTier(BaseModel):
    """A static plan tier definition."""

    model_config = ConfigDict(frozen=True)

    key: PlanKey = Field(..., description="Unique plan identifier")
    label: str = Field(..., description="Display label")
    max_active_clients: Optional[int] = Field(
        ..., description="Max active clients in the rolling window. None = unlimited"
    )
    max_users: Optional[int] = Field(..., description="Max users. None = unlimited")
    monthly_price: Optional[float] = Field(
        ..., description="Flat monthly price in BRL. None = negotiated"
    )
    min_clients_for_tier: int = Field(
        ..., description="Lowest client count that justifies this tier"
    )

    @property
    def is_unlimited(self) -> bool:
        """Whether the tier has no active-client cap."""
        return self.max_active_clients is None

    @property
    def has_fixed_price(self) -> bool:
        """Whether the tier can be bought without negotiation."""
        return self.monthly_price is not None and self.monthly_price > 0


class PlanBaseLimits(BaseModel):
    """Base limits for a plan key, including legacy keys such as 'trial'."""

    model_config = ConfigDict(frozen=True)

    max_users: Optional[int] = None
    max_clients: Optional[int] = None
