"""
Billing Reconciler
==================

Maps Asaas payment/subscription vocabulary onto local billing state.

- normalize_status(): provider status string → BillingStatus. Total over a
  closed lookup table; anything unrecognized is FAILED.
- resolve_link(): picks the payment link to show the user from a list of
  Asaas payments, in provider order (never re-sorted).
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Sequence

from app.models.billing import BillingStatus

__all__ = [
    "PROVIDER_STATUS_MAP",
    "FIRST_PAYMENT_LINK_FIELDS",
    "normalize_status",
    "resolve_link",
]

PROVIDER_STATUS_MAP: Dict[str, BillingStatus] = {
    "ACTIVE": BillingStatus.ACTIVE,
    "RECEIVED": BillingStatus.ACTIVE,
    "PENDING": BillingStatus.PENDING,
    "AWAITING": BillingStatus.PENDING,
    "PENDING_PAYMENT": BillingStatus.PENDING,
    "CANCELLED": BillingStatus.CANCELLED,
    "DELETED": BillingStatus.CANCELLED,
}

# Checked on the first payment only, in this order. Dotted names are nested.
FIRST_PAYMENT_LINK_FIELDS = (
    "invoiceUrl",
    "bankSlipUrl",
    "boletoUrl",
    "pixQrCodeUrl",
    "pix.qrCodeUrl",
)


def normalize_status(provider_status: Optional[str]) -> BillingStatus:
    """Map an Asaas status (any case) to a local BillingStatus.

    Missing or blank → PENDING. Unknown → FAILED.
    """
    if provider_status is None:
        return BillingStatus.PENDING
    key = str(provider_status).strip().upper()
    if not key:
        return BillingStatus.PENDING
    return PROVIDER_STATUS_MAP.get(key, BillingStatus.FAILED)


def _field(payment: Mapping[str, Any], dotted: str) -> Optional[str]:
    value: Any = payment
    for part in dotted.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    if isinstance(value, str) and value:
        return value
    return None


def resolve_link(
    payments: Optional[Sequence[Mapping[str, Any]]],
    fallback: Optional[str] = None,
) -> Optional[str]:
    """Choose the best payment link.

    1. the first payment (in list order) carrying ``paymentLink``;
    2. otherwise the first payment's invoice, bank slip, boleto or PIX URLs;
    3. otherwise ``fallback`` (usually the link cached on the record).
    """
    payments = list(payments or [])

    for payment in payments:
        link = _field(payment, "paymentLink")
        if link:
            return link

    if payments:
        first = payments[0]
        for name in FIRST_PAYMENT_LINK_FIELDS:
            link = _field(first, name)
            if link:
                return link

    return fallback or None
