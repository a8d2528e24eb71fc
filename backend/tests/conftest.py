"""Common test fixtures and configuration for pytest.

Every test runs against the in-memory record store; nothing talks to a real
gateway.
"""

import pytest

from tests.fixtures.common import BUYER_ID, CREDITOR_ID, FIXED_NOW, fake_pix_encoder
from tests.fixtures.record_store import InMemoryRecordStore
from tierbill.platform.billing.billing_service import BillingService
from tierbill.platform.billing.payment_codes import (
    LocalPaymentCodeGenerator,
    PaymentCodeGenerator,
)


@pytest.fixture
def store():
    """Provide an empty in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def creditor_row():
    """The platform owner tenant."""
    return {
        "id": CREDITOR_ID,
        "company_name": "Radul Tecnologia",
        "slug": "radul",
        "plan": "enterprise",
        "pix_key": "12345678000199",
        "pix_key_type": "cnpj",
        "pix_merchant_name": "Radul",
        "pix_merchant_city": "Curitiba",
        "config": {},
    }


@pytest.fixture
def buyer_row():
    """A tenant on the free plan."""
    return {
        "id": BUYER_ID,
        "company_name": "Acme Servicos",
        "slug": "acme",
        "plan": "free",
        "extra_users_purchased": 0,
        "active_client_count": 0,
        "config": {},
    }


@pytest.fixture
def seeded_store(store, creditor_row, buyer_row):
    """Record store with the creditor and one buyer tenant."""
    store.seed("tenants", creditor_row, buyer_row)
    return store


@pytest.fixture
def payment_codes():
    """Local payment code generation with the fake encoder."""
    return PaymentCodeGenerator(local=LocalPaymentCodeGenerator(fake_pix_encoder))


@pytest.fixture
def billing_service(seeded_store, payment_codes):
    """Billing service with a frozen clock."""
    return BillingService(seeded_store, payment_codes, clock=lambda: FIXED_NOW)
