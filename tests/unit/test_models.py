"""
Unit tests for SQLAlchemy models.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.exc import IntegrityError

from backoffice.models import (
    ClientSnapshot, Quote, QuoteLine, QuoteStatus, Invoice, normalize_payment_method
)
from backoffice.models.line_item import quantity_to_json


class TestClientSnapshot:
    """Tests for the embedded client value."""

    def test_from_nested_payload(self):
        client = ClientSnapshot.from_payload({'client': {'name': ' SOTRA ', 'city': 'Abidjan', 'email': ''}})
        assert client.name == 'SOTRA'
        assert client.city == 'Abidjan'
        assert client.email is None

    def test_from_flat_payload(self):
        client = ClientSnapshot.from_payload({'client_name': 'SOTRA', 'client_phone': '0700'})
        assert client == ClientSnapshot(name='SOTRA', phone='0700')

    def test_default_country(self):
        client = ClientSnapshot.from_payload({'client': {'name': 'SOTRA'}}, default_country="Côte d'Ivoire")
        assert client.country == "Côte d'Ivoire"

    def test_missing_name_is_blank(self):
        assert ClientSnapshot.from_payload({}).name == ''

    def test_merge(self):
        """Test that merge replaces only the given fields."""
        client = ClientSnapshot(name='SOTRA', city='Abidjan')
        merged = client.merge({'city': 'Bouaké', 'unknown': 'x'})
        assert merged == ClientSnapshot(name='SOTRA', city='Bouaké')
        assert client.city == 'Abidjan'


class TestQuoteModel:
    """Tests for Quote model."""

    def test_persisted_client_snapshot(self, session, draft_quote):
        """Test the composite mapping onto client_* columns."""
        quote = session.get(Quote, draft_quote.id)
        assert quote.client_name == 'SOTRA Industries'
        assert quote.client.city == 'Abidjan'
        assert isinstance(quote.client, ClientSnapshot)

    def test_valid_until(self, draft_quote):
        assert draft_quote.valid_until == draft_quote.issue_date + timedelta(days=30)

    def test_status_flags(self, draft_quote):
        assert draft_quote.status_enum is QuoteStatus.DRAFT
        assert draft_quote.is_editable is True
        assert draft_quote.is_convertible is False
        assert draft_quote.is_converted is False

    def test_lines_ordered_by_position(self, session, draft_quote):
        quote = session.get(Quote, draft_quote.id)
        assert [line.position for line in quote.lines] == [1, 2]
        assert quote.lines[0].designation == 'Chaise ergonomique'

    def test_reference_unique(self, session, draft_quote):
        """Test that quote reference must be unique."""
        duplicate = Quote(
            reference=draft_quote.reference,
            issue_date=date.today(),
            status=QuoteStatus.DRAFT.value,
            client=ClientSnapshot(name='Autre client'),
        )
        duplicate.lines = [QuoteLine(position=1, designation='X', quantity=1, unit_price=1, amount=1)]
        session.add(duplicate)

        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_to_dict(self, draft_quote):
        data = draft_quote.to_dict()
        assert data['total_ht'] == 200000
        assert data['client']['name'] == 'SOTRA Industries'
        assert data['lines'][0]['quantity'] == 2
        assert data['is_converted'] is False


class TestInvoiceModel:
    """Tests for Invoice model."""

    def test_converted_invoice_totals(self, invoice):
        assert invoice.total_ht == 200000
        assert invoice.total_tva == 36000
        assert invoice.total_ttc == 236000
        assert invoice.balance_due == 236000
        assert invoice.tva_rate == Decimal('18')

    def test_is_overdue(self, invoice):
        """Test overdue detection against the due date."""
        assert invoice.is_overdue(invoice.due_date) is False
        assert invoice.is_overdue(invoice.due_date + timedelta(days=1)) is True

    def test_lines_locked_after_draft(self, invoice):
        assert invoice.lines_locked is False
        invoice.status = 'sent'
        assert invoice.lines_locked is True


class TestPaymentMethod:
    """Tests for payment method normalization."""

    @pytest.mark.parametrize('value, expected', [
        (None, 'cash'),
        ('CASH', 'cash'),
        ('Virement', 'transfer'),
        ('chèque', 'check'),
        ('mobile money', 'mobile_money'),
        ('mobile-money', 'mobile_money'),
    ])
    def test_valid_methods(self, value, expected):
        assert normalize_payment_method(value) == expected

    def test_invalid_method(self):
        with pytest.raises(ValueError):
            normalize_payment_method('bitcoin')


class TestQuantityToJson:
    """Tests for quantity serialization."""

    def test_integral(self):
        assert quantity_to_json(Decimal('2.000')) == 2

    def test_fractional(self):
        assert quantity_to_json(Decimal('2.500')) == 2.5

    def test_none(self):
        assert quantity_to_json(None) is None
