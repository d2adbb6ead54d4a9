"""
Unit tests for payment-driven invoice status derivation.
"""

import pytest

from backoffice.exceptions import ValidationError
from backoffice.models import InvoiceStatus
from backoffice.services.invoice_service import derive_invoice_status, parse_invoice_status


class TestDeriveInvoiceStatus:
    """Tests for derive_invoice_status."""

    @pytest.mark.parametrize('current, amount_paid, total_ttc, expected', [
        (InvoiceStatus.DRAFT, 0, 236000, InvoiceStatus.DRAFT),
        (InvoiceStatus.SENT, 0, 236000, InvoiceStatus.SENT),
        (InvoiceStatus.SENT, 80000, 236000, InvoiceStatus.PARTIALLY_PAID),
        (InvoiceStatus.DRAFT, 1000, 236000, InvoiceStatus.PARTIALLY_PAID),
        (InvoiceStatus.PARTIALLY_PAID, 236000, 236000, InvoiceStatus.PAID),
        (InvoiceStatus.PAID, 156000, 236000, InvoiceStatus.PARTIALLY_PAID),
    ])
    def test_payments_drive_status(self, current, amount_paid, total_ttc, expected):
        """Test paid / partially paid derivation."""
        assert derive_invoice_status(current, amount_paid, total_ttc) is expected

    @pytest.mark.parametrize('current', [InvoiceStatus.PAID, InvoiceStatus.PARTIALLY_PAID])
    def test_no_payments_falls_back_to_sent(self, current):
        """Test that removing every payment does not go back to draft."""
        assert derive_invoice_status(current, 0, 236000) is InvoiceStatus.SENT

    def test_cancelled_is_sticky(self):
        assert derive_invoice_status(InvoiceStatus.CANCELLED, 236000, 236000) is InvoiceStatus.CANCELLED
        assert derive_invoice_status(InvoiceStatus.CANCELLED, 0, 236000) is InvoiceStatus.CANCELLED

    def test_zero_total_keeps_header_status(self):
        """Test that an invoice with nothing to pay is not marked paid."""
        assert derive_invoice_status(InvoiceStatus.SENT, 0, 0) is InvoiceStatus.SENT
        assert derive_invoice_status(InvoiceStatus.DRAFT, 0, 0) is InvoiceStatus.DRAFT


class TestParseInvoiceStatus:
    """Tests for parse_invoice_status."""

    def test_known_status(self):
        assert parse_invoice_status(' Sent ') is InvoiceStatus.SENT

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            parse_invoice_status('archived')
