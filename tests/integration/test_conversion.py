"""
Integration tests for quote to invoice conversion.
"""

import re
import pytest
from datetime import date, timedelta
from sqlalchemy.exc import OperationalError

from backoffice.exceptions import NotFoundError, InvalidStateError, ConversionFailedError
from backoffice.models import Quote, Invoice, InvoiceLine
from backoffice.services import conversion_service
from backoffice.services.conversion_service import convert_quote_to_invoice
from backoffice.services.quote_service import change_quote_status, get_quote
from backoffice.services.invoice_service import delete_invoice


class TestConvertQuote:
    """Tests for convert_quote_to_invoice."""

    def test_convert_accepted_quote(self, session, accepted_quote):
        """Test the invoice built from an accepted quote (200 000 HT at 18%)."""
        invoice, created = convert_quote_to_invoice(accepted_quote.id, session, tva_rate=18, due_days=30)

        assert created is True
        assert re.match(r'^FAC-\d{4}-[A-Z2-9]{4}$', invoice.reference)
        assert invoice.status == 'draft'
        assert invoice.total_ht == 200000
        assert invoice.total_tva == 36000
        assert invoice.total_ttc == 236000
        assert invoice.amount_paid == 0
        assert invoice.balance_due == 236000
        assert invoice.issue_date == date.today()
        assert invoice.due_date == date.today() + timedelta(days=30)
        assert invoice.quote_id == accepted_quote.id

        quote = get_quote(accepted_quote.id, session)
        assert quote.invoice_id == invoice.id
        assert quote.is_converted is True
        assert quote.status == 'accepted'

    def test_lines_and_client_copied(self, session, accepted_quote):
        """Test that lines are copied without repricing, client snapshot included."""
        invoice, _ = convert_quote_to_invoice(accepted_quote.id, session)
        quote = get_quote(accepted_quote.id, session)

        assert [(l.position, l.designation, l.unit_price, l.amount) for l in invoice.lines] == \
            [(l.position, l.designation, l.unit_price, l.amount) for l in quote.lines]
        assert invoice.client == quote.client
        assert invoice.subject == quote.subject

    def test_conversion_is_idempotent(self, session, accepted_quote):
        """Test that a second conversion returns the first invoice."""
        first, created_first = convert_quote_to_invoice(accepted_quote.id, session)
        second, created_second = convert_quote_to_invoice(accepted_quote.id, session)

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert session.query(Invoice).count() == 1

    @pytest.mark.parametrize('status', ['draft', 'sent', 'refused', 'expired'])
    def test_only_accepted_quotes(self, session, draft_quote, status):
        if status != 'draft':
            change_quote_status(draft_quote.id, status, session)

        with pytest.raises(InvalidStateError):
            convert_quote_to_invoice(draft_quote.id, session)

        assert session.query(Invoice).count() == 0
        assert get_quote(draft_quote.id, session).invoice_id is None

    def test_unknown_quote(self, session):
        with pytest.raises(NotFoundError):
            convert_quote_to_invoice(9999, session)

    def test_storage_failure_leaves_nothing(self, session, accepted_quote, monkeypatch):
        """Test that a failed conversion is rolled back entirely."""
        def failing_save(*args, **kwargs):
            raise OperationalError('INSERT INTO invoice', {}, Exception('disk I/O error'))

        monkeypatch.setattr(conversion_service, 'save_with_reference', failing_save)

        with pytest.raises(ConversionFailedError) as exc_info:
            convert_quote_to_invoice(accepted_quote.id, session)

        assert exc_info.value.to_dict()['retryable'] is True
        assert session.query(Invoice).count() == 0
        assert session.query(InvoiceLine).count() == 0
        assert session.get(Quote, accepted_quote.id).invoice_id is None

    def test_deleted_invoice_frees_quote(self, session, invoice):
        """Test that deleting the invoice lets the quote be converted again."""
        quote_id = invoice.quote_id
        delete_invoice(invoice.id, session)

        assert get_quote(quote_id, session).invoice_id is None

        again, created = convert_quote_to_invoice(quote_id, session)
        assert created is True
        assert get_quote(quote_id, session).invoice_id == again.id
