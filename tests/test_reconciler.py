"""
Reconciler Tests
================

normalize_status(): closed provider vocabulary, case-insensitive, FAILED
for anything unknown. resolve_link(): paymentLink anywhere in the list wins,
then the first payment's method URLs, then the fallback.
"""

import pytest

from app.models.billing import BillingStatus
from app.services.reconciler import PROVIDER_STATUS_MAP, normalize_status, resolve_link


class TestNormalizeStatus:

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_is_pending(self, value):
        assert normalize_status(value) is BillingStatus.PENDING

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("ACTIVE", BillingStatus.ACTIVE),
            ("received", BillingStatus.ACTIVE),
            ("Pending", BillingStatus.PENDING),
            ("awaiting", BillingStatus.PENDING),
            ("PENDING_PAYMENT", BillingStatus.PENDING),
            ("cancelled", BillingStatus.CANCELLED),
            ("DELETED", BillingStatus.CANCELLED),
        ],
    )
    def test_known_statuses(self, value, expected):
        assert normalize_status(value) is expected

    @pytest.mark.parametrize("value", ["OVERDUE", "REFUNDED", "CONFIRMED", "expired", "unknown"])
    def test_unknown_status_fails_closed(self, value):
        assert normalize_status(value) is BillingStatus.FAILED

    def test_every_mapped_status_is_a_billing_status(self):
        for provider_status in PROVIDER_STATUS_MAP:
            assert normalize_status(provider_status) in set(BillingStatus)
            assert normalize_status(provider_status.lower()) is PROVIDER_STATUS_MAP[provider_status]

    def test_surrounding_whitespace_ignored(self):
        assert normalize_status("  active ") is BillingStatus.ACTIVE


class TestResolveLink:

    def test_payment_link_anywhere_beats_first_payment_urls(self):
        payments = [{"paymentLink": None, "invoiceUrl": "A"}, {"paymentLink": "B"}]
        assert resolve_link(payments) == "B"

    def test_first_payment_link_in_list_order(self):
        payments = [{"invoiceUrl": "A"}, {"paymentLink": "B"}, {"paymentLink": "C"}]
        assert resolve_link(payments) == "B"

    def test_bank_slip_url_on_first_payment(self):
        assert resolve_link([{"bankSlipUrl": "X"}]) == "X"

    def test_first_payment_field_priority(self):
        payment = {
            "bankSlipUrl": "slip",
            "boletoUrl": "boleto",
            "pixQrCodeUrl": "pix",
            "invoiceUrl": "invoice",
        }
        assert resolve_link([payment]) == "invoice"
        del payment["invoiceUrl"]
        assert resolve_link([payment]) == "slip"
        del payment["bankSlipUrl"]
        assert resolve_link([payment]) == "boleto"
        del payment["boletoUrl"]
        assert resolve_link([payment]) == "pix"

    def test_nested_pix_qr_code(self):
        assert resolve_link([{"pix": {"qrCodeUrl": "Q"}}]) == "Q"

    def test_only_first_payment_method_urls_are_considered(self):
        payments = [{"status": "PENDING"}, {"invoiceUrl": "older"}]
        assert resolve_link(payments) is None
        assert resolve_link(payments, fallback="cached") == "cached"

    def test_empty_list_uses_fallback(self):
        assert resolve_link([], "F") == "F"

    def test_empty_list_without_fallback(self):
        assert resolve_link([]) is None
        assert resolve_link(None) is None

    def test_blank_values_are_skipped(self):
        payments = [{"paymentLink": "", "invoiceUrl": "", "bankSlipUrl": "slip"}]
        assert resolve_link(payments) == "slip"

    def test_non_dict_pix_is_ignored(self):
        assert resolve_link([{"pix": "not-a-dict"}], fallback="F") == "F"
