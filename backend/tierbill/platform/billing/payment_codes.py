"""Payment code generation for receivables.

A payment code is the PIX copy-paste payload plus its QR image. It comes
either from the payment gateway (when the creditor has the integration
enabled and a payer document configured) or is built locally from the
creditor's PIX key.
"""

import base64
import io
from typing import Callable, Optional

import qrcode
from pydantic import BaseModel

from tierbill.core.config import settings
from tierbill.core.exceptions import ConfigurationError
from tierbill.core.logging import logger
from tierbill.integrations.payment_gateway import GatewayCustomer, PaymentGatewayClient
from tierbill.schemas.tenant import BillingConfig

MAX_DESCRIPTION_LENGTH = 72
MAX_TXID_LENGTH = 25


class PaymentCodeRequest(BaseModel):
    """What to charge and who receives it."""

    amount: float
    description: str
    reference_id: str
    billing_config: BillingConfig


class PaymentCode(BaseModel):
    """Generated payment code."""

    payload: str
    qr_base64: Optional[str] = None
    gateway_transaction_id: Optional[str] = None


# (pix_key, merchant_name, merchant_city, amount, txid, description) -> BR-Code payload
PixPayloadEncoder = Callable[[str, str, str, float, str, str], str]


def render_qr_base64(payload: str) -> str:
    """Render ``payload`` as a base64-encoded PNG QR code."""
    image = qrcode.make(payload)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class LocalPaymentCodeGenerator:
    """Builds payment codes from the creditor's own PIX key."""

    def __init__(self, encoder: PixPayloadEncoder):
        """Initialize with the BR-Code payload encoder."""
        self.encoder = encoder

    async def generate(self, request: PaymentCodeRequest) -> PaymentCode:
        """Encode the payload and render its QR image.

        A QR rendering failure does not fail the charge; the copy-paste payload
        alone is enough to pay.
        """
        config = request.billing_config
        if not config.pix_key:
            raise ConfigurationError("PIX key is not configured")

        payload = self.encoder(
            config.pix_key,
            config.pix_merchant_name,
            config.pix_merchant_city,
            request.amount,
            request.reference_id[:MAX_TXID_LENGTH],
            request.description[:MAX_DESCRIPTION_LENGTH],
        )

        qr_base64 = None
        try:
            qr_base64 = render_qr_base64(payload)
        except Exception as e:
            logger.warning(f"Failed to render PIX QR code for {request.reference_id}: {e}")

        return PaymentCode(payload=payload, qr_base64=qr_base64)


class GatewayPaymentCodeGenerator:
    """Creates a PIX charge on the payment gateway."""

    def __init__(self, client: PaymentGatewayClient):
        """Initialize with a gateway client."""
        self.client = client

    async def generate(self, request: PaymentCodeRequest) -> PaymentCode:
        """Create the charge and return the gateway's payload."""
        config = request.billing_config
        customer = GatewayCustomer(
            name=config.gateway_customer_name or config.pix_merchant_name or "Cliente",
            email=config.gateway_customer_email,
            cpf_cnpj=config.gateway_customer_document,
            phone=config.gateway_customer_phone,
        )
        charge = await self.client.create_pix_charge(
            amount=request.amount,
            description=request.description,
            customer=customer,
            external_reference=request.reference_id,
        )
        return PaymentCode(
            payload=charge.pix_copy_paste or "",
            qr_base64=charge.pix_qr_code_base64,
            gateway_transaction_id=charge.transaction_id,
        )


class PaymentCodeGenerator:
    """Chooses between the gateway and local generation per request."""

    def __init__(
        self,
        local: LocalPaymentCodeGenerator,
        gateway: Optional[GatewayPaymentCodeGenerator] = None,
    ):
        """Initialize the generator.

        Args:
            local: Generator used when the gateway path does not apply.
            gateway: Optional gateway generator.
        """
        self.local = local
        self.gateway = gateway

    def uses_gateway(self, config: BillingConfig) -> bool:
        """Whether ``config`` routes through the payment gateway."""
        return (
            self.gateway is not None
            and config.gateway_enabled
            and bool(config.gateway_customer_document)
        )

    async def generate(self, request: PaymentCodeRequest) -> PaymentCode:
        """Generate a payment code for ``request``."""
        if self.uses_gateway(request.billing_config):
            return await self.gateway.generate(request)
        return await self.local.generate(request)

    @classmethod
    def from_settings(cls, encoder: PixPayloadEncoder) -> "PaymentCodeGenerator":
        """Local generation, plus the gateway path when a gateway worker is configured."""
        gateway = None
        if settings.payment_gateway_enabled:
            gateway = GatewayPaymentCodeGenerator(PaymentGatewayClient())
        return cls(local=LocalPaymentCodeGenerator(encoder), gateway=gateway)
