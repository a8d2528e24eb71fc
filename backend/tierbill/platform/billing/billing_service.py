"""Main billing service orchestrator.

This module coordinates SaaS billing by orchestrating between the plan
logic, the repository and the payment code generator. The creditor tenant
(the platform owner) issues every invoice and receivable; the buyer tenant
is recorded in the structured notes.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from tierbill.core.config import settings
from tierbill.core.datetime_utils import to_iso, to_iso_date, utc_now
from tierbill.core.exceptions import NotFoundException, get_error_message
from tierbill.core.logging import ContextualLogger, logger
from tierbill.integrations.record_store import BaseRecordStore
from tierbill.platform.billing.billing_data_access import BillingRepository
from tierbill.platform.billing.payment_codes import (
    PaymentCode,
    PaymentCodeGenerator,
    PaymentCodeRequest,
)
from tierbill.platform.billing.plan_logic import (
    PLAN_TIERS,
    PRICE_PER_EXTRA_CLIENT,
    compute_extra_clients_amount,
    first_of_month,
    initial_due_date,
    is_fixed_price_plan,
    is_valid_extra_clients_quantity,
    next_competence,
    recurring_due_date,
    round_money,
)
from tierbill.schemas.financial import (
    AccountReceivable,
    BillingNotes,
    BillingType,
    Invoice,
    InvoiceStatus,
    ReceivableStatus,
)
from tierbill.schemas.plan import PlanKey, PlanTier
from tierbill.schemas.results import ConfirmPaymentResult, NextBilling, PurchaseResult
from tierbill.schemas.tenant import BillingConfig, Partner, Tenant

# Used when the creditor tenant has no usable PIX configuration of its own
CREDITOR_BILLING_DEFAULTS = BillingConfig(
    pix_key="54152041000122",
    pix_key_type="cnpj",
    pix_merchant_name="Radul Tecnologia",
    pix_merchant_city="Curitiba",
)

CATEGORY_EXTRA_CLIENTS = "SaaS - Clientes Extra"


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _legacy_billing_block(tenant: Tenant) -> Dict[str, Any]:
    billing = tenant.config.get("billing")
    return billing if isinstance(billing, dict) else {}


def _legacy_flag(billing: Mapping[str, Any], key: str) -> Any:
    # Older rows use the gateway vendor prefix
    if key in billing:
        return billing[key]
    return billing.get(key.replace("gateway_", "asaas_", 1))


def resolve_creditor_billing_config(tenant: Optional[Tenant]) -> BillingConfig:
    """Resolve the creditor's payee configuration.

    Priority: direct PIX columns, then the legacy ``config.billing`` block,
    then CREDITOR_BILLING_DEFAULTS. Only the legacy block can enable the
    payment gateway.
    """
    defaults = CREDITOR_BILLING_DEFAULTS
    if tenant is None:
        return defaults

    direct_key = _text(tenant.pix_key)
    if direct_key:
        return BillingConfig(
            pix_key=direct_key,
            pix_key_type=_text(tenant.pix_key_type) or defaults.pix_key_type,
            pix_merchant_name=_text(tenant.pix_merchant_name) or defaults.pix_merchant_name,
            pix_merchant_city=_text(tenant.pix_merchant_city) or defaults.pix_merchant_city,
            gateway_enabled=False,
        )

    billing = _legacy_billing_block(tenant)
    return BillingConfig(
        pix_key=_text(billing.get("pix_key")) or defaults.pix_key,
        pix_key_type=_text(billing.get("pix_key_type")) or defaults.pix_key_type,
        pix_merchant_name=_text(billing.get("pix_merchant_name")) or defaults.pix_merchant_name,
        pix_merchant_city=_text(billing.get("pix_merchant_city")) or defaults.pix_merchant_city,
        gateway_enabled=bool(_legacy_flag(billing, "gateway_enabled")),
        gateway_customer_name=_text(_legacy_flag(billing, "gateway_customer_name")) or None,
        gateway_customer_email=_text(_legacy_flag(billing, "gateway_customer_email")) or None,
        gateway_customer_document=_text(_legacy_flag(billing, "gateway_customer_cpf"))
        or _text(billing.get("gateway_customer_document"))
        or None,
        gateway_customer_phone=_text(_legacy_flag(billing, "gateway_customer_phone")) or None,
    )


def resolve_tenant_pix_config(tenant: Optional[Tenant]) -> Optional[BillingConfig]:
    """Resolve any tenant's PIX configuration: direct columns, then legacy JSON, else None."""
    if tenant is None:
        return None

    direct_key = _text(tenant.pix_key)
    if direct_key:
        return BillingConfig(
            pix_key=direct_key,
            pix_key_type=_text(tenant.pix_key_type) or "cnpj",
            pix_merchant_name=_text(tenant.pix_merchant_name) or _text(tenant.company_name),
            pix_merchant_city=_text(tenant.pix_merchant_city),
        )

    billing = _legacy_billing_block(tenant)
    key = _text(billing.get("pix_key"))
    if not key:
        return None
    return BillingConfig(
        pix_key=key,
        pix_key_type=_text(billing.get("pix_key_type")) or "cnpj",
        pix_merchant_name=_text(billing.get("pix_merchant_name")) or _text(tenant.company_name),
        pix_merchant_city=_text(billing.get("pix_merchant_city")),
    )


def resolve_partner_pix_config(partner: Optional[Partner]) -> Optional[BillingConfig]:
    """Resolve a channel partner's PIX payee, or None when it has no key."""
    if partner is None:
        return None
    key = _text(partner.pix_key)
    if not key:
        return None
    return BillingConfig(
        pix_key=key,
        pix_key_type=_text(partner.pix_key_type) or "cnpj",
        pix_merchant_name=_text(partner.pix_merchant_name) or _text(partner.display_name),
        pix_merchant_city=_text(partner.pix_merchant_city),
    )


def _plan_item_description(label: str, tier: Optional[PlanTier]) -> str:
    limit = tier.max_active_clients if tier and tier.max_active_clients is not None else "∞"
    return f"Plano {label} (mensal) — até {limit} clientes"


def _extra_clients_item_description() -> str:
    return f"Cliente adicional (mensal) — R$ {PRICE_PER_EXTRA_CLIENT:.2f}/cliente"


@dataclass
class BillingDocument:
    """Texts and amounts of one billing period."""

    title: str
    description: str
    category: str
    item_description: str
    quantity: float
    unit_price: float
    amount: float
    code_description: str


@dataclass
class CreatedBilling:
    """The invoice/receivable pair created for one billing period."""

    invoice: Invoice
    receivable: AccountReceivable
    payment_code: PaymentCode


class BillingService:
    """Service for SaaS plan subscriptions and extra-client purchases."""

    def __init__(
        self,
        store: BaseRecordStore,
        payment_codes: PaymentCodeGenerator,
        creditor_slug: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize billing service.

        Args:
            store: Record store holding tenants and financial tables.
            payment_codes: Generator for PIX payment codes.
            creditor_slug: Slug of the creditor tenant. Defaults to settings.
            clock: Source of the current UTC time.
        """
        self.repository = BillingRepository(store)
        self.payment_codes = payment_codes
        self.creditor_slug = creditor_slug or settings.CREDITOR_TENANT_SLUG
        self.clock = clock
        self._creditor_tenant_id: Optional[str] = None

    # Creditor and configuration

    async def find_creditor_tenant(self) -> Optional[Tenant]:
        """Find the creditor tenant by slug, falling back to a company name match."""
        try:
            creditor = await self.repository.find_tenant_by_slug(self.creditor_slug)
            if creditor is None:
                creditor = await self.repository.find_tenant_by_company_name(self.creditor_slug)
        except Exception as e:
            logger.error(f"Failed to find creditor tenant '{self.creditor_slug}': {e}")
            return None

        if creditor is not None:
            self._creditor_tenant_id = creditor.id
        return creditor

    async def get_creditor_tenant_id(self) -> Optional[str]:
        """Get the creditor tenant id, looked up once per service instance."""
        if self._creditor_tenant_id is None:
            await self.find_creditor_tenant()
        return self._creditor_tenant_id

    async def get_tenant_pix_config(self, tenant_id: str) -> Optional[BillingConfig]:
        """Get the PIX configuration of any tenant, or None."""
        try:
            tenant = await self.repository.get_tenant(tenant_id)
        except Exception as e:
            logger.warning(f"Failed to load PIX config for tenant {tenant_id}: {e}")
            return None
        return resolve_tenant_pix_config(tenant)

    async def get_partner_pix_config(self, partner_id: str) -> Optional[BillingConfig]:
        """Get the PIX configuration of a channel partner, or None."""
        try:
            partner = await self.repository.get_partner(partner_id)
        except Exception as e:
            logger.warning(f"Failed to load PIX config for partner {partner_id}: {e}")
            return None
        return resolve_partner_pix_config(partner)

    # Purchases

    async def subscribe_to_plan(self, tenant_id: str, target_plan: str) -> PurchaseResult:
        """Subscribe a tenant to a fixed-price plan.

        Creates the first period's invoice, item and pending receivable on the
        creditor tenant and returns the payment code for it.
        """
        log = logger.with_context(
            tenant_id=tenant_id, operation="subscribe_to_plan", target_plan=target_plan
        )
        tier = PLAN_TIERS.get(target_plan)
        if tier is None:
            return PurchaseResult(success=False, error=f'Plano "{target_plan}" não existe')
        if not is_fixed_price_plan(target_plan):
            return PurchaseResult(
                success=False,
                error=f'Plano "{tier.label}" requer negociação. Entre em contato.',
            )

        try:
            buyer = await self.repository.get_tenant(tenant_id)
            if buyer is None:
                return PurchaseResult(success=False, error="Tenant não encontrado")

            amount = round_money(tier.monthly_price)
            buyer_name = buyer.display_name
            document = BillingDocument(
                title=f"Plano {tier.label} — {buyer_name}",
                description=(
                    f"Assinatura mensal Plano {tier.label} — {buyer_name} (Tenant: {tenant_id})"
                ),
                category=f"SaaS - Plano {tier.label}",
                item_description=_plan_item_description(tier.label, tier),
                quantity=1,
                unit_price=amount,
                amount=amount,
                code_description=f"Plano {tier.label} - {buyer_name}",
            )
            notes = BillingNotes(
                type=BillingType.PLAN_SUBSCRIPTION.value,
                buyer_tenant_id=tenant_id,
                buyer_tenant_name=buyer_name,
                target_plan=target_plan,
                monthly_price=amount,
                is_initial=True,
            )
            return await self._purchase(document, notes, log)
        except Exception as e:
            log.error(f"Plan subscription failed: {e}")
            return PurchaseResult(
                success=False, error=get_error_message(e, "Erro ao processar assinatura")
            )

    async def purchase_extra_clients(self, tenant_id: str, quantity: int) -> PurchaseResult:
        """Buy extra active-client slots for a tenant on the unlimited tier."""
        log = logger.with_context(
            tenant_id=tenant_id, operation="purchase_extra_clients", quantity=quantity
        )
        if not is_valid_extra_clients_quantity(quantity):
            return PurchaseResult(success=False, error="Quantidade inválida (1-10.000)")

        try:
            buyer = await self.repository.get_tenant(tenant_id)
            if buyer is None:
                return PurchaseResult(success=False, error="Tenant não encontrado")
            if buyer.plan_key != PlanKey.ENTERPRISE.value:
                return PurchaseResult(
                    success=False,
                    error="Clientes extras estão disponíveis apenas no plano Enterprise.",
                )

            amount = compute_extra_clients_amount(quantity)
            buyer_name = buyer.display_name
            document = BillingDocument(
                title=f"{quantity} cliente(s) extra — {buyer_name}",
                description=(
                    f"Mensalidade {quantity}x cliente(s) adicional(is) — "
                    f"{buyer_name} (Tenant: {tenant_id})"
                ),
                category=CATEGORY_EXTRA_CLIENTS,
                item_description=_extra_clients_item_description(),
                quantity=quantity,
                unit_price=PRICE_PER_EXTRA_CLIENT,
                amount=amount,
                code_description=f"{quantity}x cliente extra - {buyer_name}",
            )
            notes = BillingNotes(
                type=BillingType.EXTRA_CLIENTS.value,
                buyer_tenant_id=tenant_id,
                buyer_tenant_name=buyer_name,
                quantity=quantity,
                price_per_unit=PRICE_PER_EXTRA_CLIENT,
                monthly_price=amount,
                is_initial=True,
            )
            return await self._purchase(document, notes, log)
        except Exception as e:
            log.error(f"Extra client purchase failed: {e}")
            return PurchaseResult(
                success=False, error=get_error_message(e, "Erro ao processar compra")
            )

    async def purchase_user_seats(self, tenant_id: str, quantity: int) -> PurchaseResult:
        """Legacy name of purchase_extra_clients."""
        return await self.purchase_extra_clients(tenant_id, quantity)

    async def _purchase(
        self, document: BillingDocument, notes: BillingNotes, log: ContextualLogger
    ) -> PurchaseResult:
        """Create the first billing period of a purchase."""
        creditor = await self.find_creditor_tenant()
        if creditor is None:
            return PurchaseResult(
                success=False,
                total_amount=document.amount,
                error=(
                    f"Tenant credor não encontrado. Configure o tenant com slug "
                    f"'{self.creditor_slug}'."
                ),
            )

        billing_config = resolve_creditor_billing_config(creditor)
        if not billing_config.pix_key:
            return PurchaseResult(
                success=False,
                total_amount=document.amount,
                error="Chave PIX do credor não configurada.",
            )

        now = self.clock()
        due_at = initial_due_date(now)
        competence = first_of_month(now.date())
        created = await self._create_billing(
            creditor_id=creditor.id,
            billing_config=billing_config,
            document=document,
            notes=notes.model_copy(update={"competence": to_iso_date(competence)}),
            issued_at=now,
            due_at=due_at,
            competence=competence,
            log=log,
        )

        log.info(
            f"Created {notes.type} billing: invoice {created.invoice.id}, "
            f"receivable {created.receivable.id}, total {document.amount}"
        )
        return PurchaseResult(
            success=True,
            invoice_id=created.invoice.id,
            account_receivable_id=created.receivable.id,
            pix_payload=created.payment_code.payload or None,
            pix_qr_base64=created.payment_code.qr_base64,
            total_amount=document.amount,
        )

    async def _create_billing(
        self,
        creditor_id: str,
        billing_config: BillingConfig,
        document: BillingDocument,
        notes: BillingNotes,
        issued_at: datetime,
        due_at: datetime,
        competence: date,
        log: ContextualLogger,
        recurrence_parent_id: Optional[str] = None,
    ) -> CreatedBilling:
        """Create the invoice, its item and the pending receivable of one period.

        There is no rollback: a failure after the invoice exists leaves it
        behind, and the invoice id is logged.
        """
        invoice = await self.repository.create_invoice(
            {
                "tenant_id": creditor_id,
                "title": document.title,
                "description": document.description,
                "status": InvoiceStatus.SENT.value,
                "subtotal": document.amount,
                "discount": 0,
                "tax": 0,
                "total": document.amount,
                "issued_at": to_iso(issued_at),
                "due_at": to_iso(due_at),
                "pix_key": billing_config.pix_key,
                "pix_key_type": billing_config.pix_key_type,
                "notes": notes.to_json(),
            }
        )

        try:
            await self.repository.create_invoice_item(
                {
                    "invoice_id": invoice.id,
                    "description": document.item_description,
                    "quantity": document.quantity,
                    "unit_price": document.unit_price,
                    "subtotal": document.amount,
                    "sort_order": 1,
                }
            )
            invoice = await self.repository.recalculate_invoice(invoice)

            code = await self.payment_codes.generate(
                PaymentCodeRequest(
                    amount=document.amount,
                    description=document.code_description,
                    reference_id=invoice.id,
                    billing_config=billing_config,
                )
            )

            receivable_payload: Dict[str, Any] = {
                "tenant_id": creditor_id,
                "description": document.description,
                "type": "service_fee",
                "category": document.category,
                "invoice_id": invoice.id,
                "amount": document.amount,
                "amount_received": 0,
                "status": ReceivableStatus.PENDING.value,
                "currency": "BRL",
                "due_date": to_iso_date(due_at),
                "competence_date": to_iso_date(competence),
                "payment_method": "pix",
                "pix_key": billing_config.pix_key,
                "pix_key_type": billing_config.pix_key_type,
                "pix_payload": code.payload or None,
                "pix_qr_base64": code.qr_base64,
                "recurrence": "monthly",
                "notes": notes.model_copy(
                    update={
                        "invoice_id": invoice.id,
                        "gateway_transaction_id": code.gateway_transaction_id,
                    }
                ).to_json(),
            }
            if recurrence_parent_id:
                receivable_payload["recurrence_parent_id"] = recurrence_parent_id

            receivable = await self.repository.create_receivable(receivable_payload)
        except Exception:
            log.error(f"Billing creation stopped after invoice {invoice.id}; invoice left orphaned")
            raise

        return CreatedBilling(invoice=invoice, receivable=receivable, payment_code=code)

    # Confirmation and recurrence

    async def confirm_seat_payment(
        self, receivable_id: str, confirmed_by: Optional[str] = None
    ) -> ConfirmPaymentResult:
        """Confirm payment of a SaaS receivable.

        Marks the receivable and its invoice paid, activates the purchase on its
        initial period and generates the next period. A receivable can only be
        confirmed once; later callers get ``success=False``. Once the paid
        transition succeeds the next period is always attempted, even when
        activation fails (reported in ``activation_error``).
        """
        log = logger.with_context(receivable_id=receivable_id, operation="confirm_seat_payment")
        try:
            try:
                receivable = await self.repository.get_receivable(receivable_id)
            except NotFoundException:
                return ConfirmPaymentResult(success=False, error="Conta a receber não encontrada")

            try:
                notes = BillingNotes.parse(receivable.notes)
            except ValueError:
                return ConfirmPaymentResult(
                    success=False, error="Dados de compra inválidos na conta a receber"
                )

            billing_type = notes.billing_type
            if billing_type is None:
                return ConfirmPaymentResult(
                    success=False, error="Esta conta não é uma assinatura SaaS"
                )
            if not notes.buyer_tenant_id:
                return ConfirmPaymentResult(
                    success=False, error="Dados de compra inválidos na conta a receber"
                )

            now = self.clock()
            transitioned = await self.repository.mark_receivable_paid(receivable, confirmed_by, now)
            if not transitioned:
                log.warning("Receivable is no longer pending; confirmation ignored")
                return ConfirmPaymentResult(
                    success=False, error="Pagamento já confirmado para esta conta a receber"
                )

            log = log.with_context(tenant_id=notes.buyer_tenant_id)
            await self._mark_invoice_paid(receivable.invoice_id or notes.invoice_id, now, log)

            activation_error = None
            if notes.is_initial:
                activation_error = await self._activate_purchase(notes, billing_type, now, log)
                if activation_error:
                    log.error(f"Payment confirmed but activation failed: {activation_error}")

            next_receivable_id = None
            try:
                next_billing = await self.generate_next_month_billing(
                    receivable.id, notes, receivable
                )
                next_receivable_id = next_billing.receivable_id if next_billing else None
            except Exception as e:
                log.warning(f"Failed to generate next month billing: {e}")

            log.info(f"Confirmed payment, next receivable {next_receivable_id}")
            return ConfirmPaymentResult(
                success=True,
                next_receivable_id=next_receivable_id,
                activation_error=activation_error,
            )
        except Exception as e:
            log.error(f"Payment confirmation failed: {e}")
            return ConfirmPaymentResult(
                success=False, error=get_error_message(e, "Erro ao confirmar pagamento")
            )

    async def _mark_invoice_paid(
        self, invoice_id: Optional[str], now: datetime, log: ContextualLogger
    ) -> None:
        if not invoice_id:
            return
        try:
            await self.repository.update_invoice(
                invoice_id, {"status": InvoiceStatus.PAID.value, "paid_at": to_iso(now)}
            )
        except Exception as e:
            log.warning(f"Failed to update invoice {invoice_id} status: {e}")

    async def _activate_purchase(
        self,
        notes: BillingNotes,
        billing_type: BillingType,
        now: datetime,
        log: ContextualLogger,
    ) -> Optional[str]:
        """Apply the purchased benefit. Returns an error message on failure, never raises."""
        try:
            buyer = await self.repository.get_tenant(notes.buyer_tenant_id)
            if buyer is None:
                return f"Tenant comprador {notes.buyer_tenant_id} não encontrado"

            if billing_type == BillingType.PLAN_SUBSCRIPTION:
                if notes.target_plan and notes.target_plan in PLAN_TIERS:
                    await self.repository.update_tenant(buyer.id, {"plan": notes.target_plan})
                    log.info(f"Activated plan {notes.target_plan}")
                await self._activate_referral(buyer.id, now, log)
            elif billing_type.is_extra_clients:
                quantity = notes.quantity or 0
                if quantity > 0:
                    await self.repository.update_tenant(
                        buyer.id,
                        {"extra_users_purchased": buyer.extra_users_purchased + quantity},
                    )
                    log.info(f"Added {quantity} extra client slots")
        except Exception as e:
            return get_error_message(e, "Falha ao ativar a compra")
        return None

    async def _activate_referral(self, tenant_id: str, now: datetime, log: ContextualLogger) -> None:
        try:
            referral = await self.repository.get_pending_referral(tenant_id)
            if referral is None:
                return
            updates: Dict[str, Any] = {"status": "active"}
            if referral.first_payment_at is None:
                updates["first_payment_at"] = to_iso(now)
            await self.repository.update_referral(referral.id, updates)
        except Exception as e:
            log.warning(f"Failed to activate channel referral: {e}")

    async def generate_next_month_billing(
        self,
        parent_id: str,
        parent_notes: BillingNotes,
        parent_row: AccountReceivable,
    ) -> Optional[NextBilling]:
        """Create the next period's invoice, item and receivable.

        Notes are carried forward with ``is_initial`` cleared and the next
        competence. Returns None when the parent has no buyer or amount, or the
        creditor is not configured.
        """
        buyer_id = parent_notes.buyer_tenant_id
        amount = round_money(parent_notes.monthly_price or parent_row.amount or 0)
        if not buyer_id or amount <= 0:
            return None

        now = self.clock()
        competence = next_competence(parent_notes.competence, now.date())
        due = recurring_due_date(competence)

        creditor = await self.find_creditor_tenant()
        if creditor is None:
            return None
        billing_config = resolve_creditor_billing_config(creditor)
        if not billing_config.pix_key:
            return None

        buyer_name = parent_notes.buyer_tenant_name or "Tenant"
        if parent_notes.billing_type == BillingType.PLAN_SUBSCRIPTION:
            tier = PLAN_TIERS.get(parent_notes.target_plan or "")
            label = tier.label if tier else (parent_notes.target_plan or "")
            title = f"Plano {label} — {buyer_name}"
            description = f"Assinatura mensal Plano {label} — {buyer_name} (Tenant: {buyer_id})"
            category = f"SaaS - Plano {label}"
            item_description = _plan_item_description(label, tier)
        else:
            count = parent_notes.quantity or 0
            title = f"{count} cliente(s) extra — {buyer_name}"
            description = (
                f"Mensalidade {count}x cliente(s) adicional(is) — "
                f"{buyer_name} (Tenant: {buyer_id})"
            )
            category = CATEGORY_EXTRA_CLIENTS
            item_description = _extra_clients_item_description()

        quantity = parent_notes.quantity if parent_notes.quantity is not None else 1
        unit_price = amount / quantity if quantity > 0 else amount
        document = BillingDocument(
            title=title,
            description=description,
            category=category,
            item_description=item_description,
            quantity=quantity,
            unit_price=unit_price,
            amount=amount,
            code_description=title,
        )

        log = logger.with_context(
            tenant_id=buyer_id, receivable_id=parent_id, operation="generate_next_month_billing"
        )
        created = await self._create_billing(
            creditor_id=creditor.id,
            billing_config=billing_config,
            document=document,
            notes=parent_notes.model_copy(
                update={"is_initial": False, "competence": to_iso_date(competence)}
            ),
            issued_at=now,
            due_at=datetime.fromisoformat(f"{due.isoformat()}T23:59:59+00:00"),
            competence=competence,
            log=log,
            recurrence_parent_id=parent_id,
        )
        log.info(f"Generated billing for {competence.isoformat()}: {created.receivable.id}")
        return NextBilling(receivable_id=created.receivable.id, invoice_id=created.invoice.id)

    # Review

    async def list_pending_seat_purchases(
        self, creditor_tenant_id: Optional[str] = None
    ) -> List[AccountReceivable]:
        """List pending SaaS receivables of the creditor, newest first. Empty on failure."""
        try:
            creditor_tenant_id = creditor_tenant_id or await self.get_creditor_tenant_id()
            if not creditor_tenant_id:
                return []
            return await self.repository.list_pending_receivables(creditor_tenant_id)
        except Exception as e:
            logger.warning(f"Failed to list pending SaaS receivables: {e}")
            return []
