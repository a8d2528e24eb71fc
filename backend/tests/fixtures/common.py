"""Common test constants and helpers."""

from datetime import datetime, timezone

FIXED_NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

CREDITOR_ID = "00000000-0000-0000-0000-0000000000c1"
BUYER_ID = "00000000-0000-0000-0000-0000000000b1"


def fake_pix_encoder(pix_key, merchant_name, merchant_city, amount, txid, description):
    """Deterministic stand-in for a BR-Code encoder."""
    return f"PIX|{pix_key}|{merchant_name}|{merchant_city}|{amount:.2f}|{txid}|{description}"
