"""Configuration settings for the tierbill library.

Wraps environment variables and provides defaults.
"""

from typing import Optional

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pydantic settings class.

    Attributes:
    ----------
        PROJECT_NAME (str): The name of the project.
        ENVIRONMENT (str): The deployment environment (local, dev, test, prd).
        LOCAL_DEVELOPMENT (bool): Whether the library is running locally (text logs).
        LOG_LEVEL (str): The logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        RECORD_STORE_BASE_URL (str): Base URL of the generic CRUD gateway.
        RECORD_STORE_API_KEY (str): Value sent in the X-Api-Key header.
        RECORD_STORE_TIMEOUT_SECONDS (float): Timeout applied to every record store call.
        RECORD_STORE_MAX_RETRIES (int): Attempts for idempotent reads (list/count/aggregate).
        PAYMENT_GATEWAY_URL (Optional[str]): Base URL of the payment gateway worker.
        PAYMENT_GATEWAY_API_KEY (Optional[str]): API key for the payment gateway worker.
        CREDITOR_TENANT_SLUG (str): Slug of the platform-owner tenant issuing SaaS invoices.
        TIER_ADJUSTMENT_MAX_CONCURRENCY (int): Tenants processed concurrently by the monthly job.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    PROJECT_NAME: str = "tierbill"
    ENVIRONMENT: str = "local"
    LOCAL_DEVELOPMENT: bool = False

    # Logging configuration
    LOG_LEVEL: str = "INFO"

    # Record store (generic CRUD gateway)
    RECORD_STORE_BASE_URL: str = "http://localhost:8787"
    RECORD_STORE_API_KEY: str = ""
    RECORD_STORE_TIMEOUT_SECONDS: float = 30.0
    RECORD_STORE_MAX_RETRIES: int = 3

    # Payment gateway worker
    PAYMENT_GATEWAY_URL: Optional[str] = None
    PAYMENT_GATEWAY_API_KEY: Optional[str] = None

    # Billing
    CREDITOR_TENANT_SLUG: str = "radul"
    TIER_ADJUSTMENT_MAX_CONCURRENCY: int = 10

    @field_validator("RECORD_STORE_BASE_URL", "PAYMENT_GATEWAY_URL", mode="before")
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalize base URLs so endpoint paths can be appended safely.

        Args:
            v: The configured URL.

        Returns:
            Optional[str]: The URL without a trailing slash, or None.
        """
        if v is None:
            return v
        v = str(v).strip()
        return v.rstrip("/") or None

    @field_validator("RECORD_STORE_MAX_RETRIES", "TIER_ADJUSTMENT_MAX_CONCURRENCY")
    def at_least_one(cls, v: int, info: ValidationInfo) -> int:
        """Reject non-positive counters."""
        if v < 1:
            raise ValueError(f"{info.field_name} must be at least 1")
        return v

    @property
    def crud_endpoint(self) -> str:
        """The generic CRUD endpoint.

        Returns:
            str: The api_crud URL.
        """
        return f"{self.RECORD_STORE_BASE_URL}/api_crud"

    @property
    def sql_endpoint(self) -> str:
        """The raw SQL endpoint.

        Returns:
            str: The api_dinamico URL.
        """
        return f"{self.RECORD_STORE_BASE_URL}/api_dinamico"

    @property
    def payment_gateway_enabled(self) -> bool:
        """Whether a payment gateway worker is configured."""
        return bool(self.PAYMENT_GATEWAY_URL)

    @property
    def payment_gateway_api_key(self) -> str:
        """The key sent to the gateway worker.

        The worker accepts the record store key when no dedicated key is set.

        Returns:
            str: The API key.
        """
        return self.PAYMENT_GATEWAY_API_KEY or self.RECORD_STORE_API_KEY


settings = Settings()
