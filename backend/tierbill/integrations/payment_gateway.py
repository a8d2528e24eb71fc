"""Payment gateway client for PIX charges.

This module provides a clean interface to the payment gateway worker,
handling the HTTP interaction without any billing logic.
"""

from typing import Any, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from tierbill.core.config import settings
from tierbill.core.exceptions import ExternalServiceError


class GatewayCustomer(BaseModel):
    """Payer identification required by the gateway."""

    name: str
    email: Optional[str] = None
    cpf_cnpj: Optional[str] = Field(None, serialization_alias="cpfCnpj")
    phone: Optional[str] = None


class GatewayCharge(BaseModel):
    """Charge created by the gateway."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    transaction_id: str = Field(..., alias="transactionId")
    status: Optional[str] = None
    pix_copy_paste: Optional[str] = Field(None, alias="pixCopyPaste")
    pix_qr_code_base64: Optional[str] = Field(None, alias="pixQrCodeBase64")
    pix_expires_at: Optional[str] = Field(None, alias="pixExpiresAt")


class PaymentGatewayClient:
    """Client for the payment gateway worker."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the gateway client.

        Args:
            base_url: Worker base URL. Defaults to settings.PAYMENT_GATEWAY_URL.
            api_key: Value of the X-Api-Key header.
            timeout: Per-call timeout in seconds.
            client: Pre-built httpx client.
        """
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_URL or "").rstrip("/")
        self.api_key = api_key if api_key is not None else settings.payment_gateway_api_key
        self.timeout = timeout or settings.RECORD_STORE_TIMEOUT_SECONDS
        self._client = client

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.base_url:
            raise ExternalServiceError("PaymentGateway", "Gateway URL is not configured")

        headers = {"Content-Type": "application/json", "X-Api-Key": self.api_key or ""}
        try:
            if self._client is not None:
                response = await self._client.post(
                    f"{self.base_url}{path}", json=body, headers=headers
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        f"{self.base_url}{path}", json=body, headers=headers
                    )
        except httpx.HTTPError as e:
            raise ExternalServiceError(
                service_name="PaymentGateway",
                message=f"Request failed: {e.__class__.__name__}",
            ) from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {"raw": response.text}

        if response.is_error:
            message = data.get("error") if isinstance(data, dict) else None
            raise ExternalServiceError(
                service_name="PaymentGateway",
                message=message or f"Charge failed with HTTP {response.status_code}",
            )

        return data if isinstance(data, dict) else {"raw": data}

    async def create_pix_charge(
        self,
        amount: float,
        description: str,
        customer: GatewayCustomer,
        external_reference: Optional[str] = None,
    ) -> GatewayCharge:
        """Create a PIX charge and return its copy-paste code and QR image."""
        body = {
            "amount_cents": int(round(amount * 100)),
            "method": "pix",
            "description": description,
            "external_reference": external_reference,
            "customer": customer.model_dump(by_alias=True),
        }
        data = await self._post("/asaas/charge", body)
        try:
            return GatewayCharge.model_validate(data)
        except ValueError as e:
            raise ExternalServiceError(
                service_name="PaymentGateway", message="Charge response missing transactionId"
            ) from e
