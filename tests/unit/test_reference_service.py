"""
Unit tests for document reference generation.
"""

import re
import pytest
from datetime import date

from sqlalchemy.exc import IntegrityError

from backoffice.exceptions import ReferenceExhaustedError
from backoffice.models import Quote, QuoteLine
from backoffice.services import reference_service
from backoffice.services.reference_service import (
    DocumentSeries, SUFFIX_ALPHABET, format_reference, random_suffix, next_reference,
    next_revision_letter, is_reference_conflict
)
from backoffice.services.quote_service import create_quote
from backoffice.services.invoice_service import create_invoice, get_invoice
from backoffice.services.payment_service import record_payment
from backoffice.services.conversion_service import convert_quote_to_invoice


class TestReferenceFormat:
    """Tests for the reference layout."""

    def test_format(self):
        assert format_reference(DocumentSeries.INVOICE, date(2026, 10, 19), 'K7QD') == 'FAC-2610-K7QD'
        assert format_reference(DocumentSeries.QUOTE, date(2027, 1, 3), 'AB23') == 'DEV-2701-AB23'

    def test_random_suffix_alphabet(self):
        """Test suffix length and readable alphabet."""
        for _ in range(50):
            suffix = random_suffix()
            assert len(suffix) == 4
            assert all(char in SUFFIX_ALPHABET for char in suffix)

    def test_next_reference_shape(self, session):
        reference = next_reference(session, DocumentSeries.PAYMENT, date(2026, 10, 19))
        assert re.match(r'^PAY-2610-[A-Z2-9]{4}$', reference)


class TestReferenceCollisions:
    """Tests for collision retries."""

    def test_collision_is_redrawn(self, session, draft_quote, monkeypatch):
        """Test that a taken reference is skipped."""
        draft_quote.reference = 'DEV-2610-AAAA'
        session.commit()

        suffixes = iter(['AAAA', 'BBBB'])
        monkeypatch.setattr(reference_service, 'random_suffix', lambda: next(suffixes))

        reference = next_reference(session, DocumentSeries.QUOTE, date(2026, 10, 19))
        assert reference == 'DEV-2610-BBBB'

    def test_series_are_independent(self, session, draft_quote, monkeypatch):
        """Test that a quote reference does not block the invoice series."""
        draft_quote.reference = 'DEV-2610-AAAA'
        session.commit()

        monkeypatch.setattr(reference_service, 'random_suffix', lambda: 'AAAA')
        assert next_reference(session, DocumentSeries.INVOICE, date(2026, 10, 19)) == 'FAC-2610-AAAA'

    def test_exhaustion(self, session, draft_quote, monkeypatch):
        """Test that persistent collisions raise a retryable error."""
        draft_quote.reference = 'DEV-2610-AAAA'
        session.commit()

        monkeypatch.setattr(reference_service, 'random_suffix', lambda: 'AAAA')

        with pytest.raises(ReferenceExhaustedError) as exc_info:
            next_reference(session, DocumentSeries.QUOTE, date(2026, 10, 19), max_attempts=3)

        assert exc_info.value.status_code == 503
        assert exc_info.value.to_dict()['retryable'] is True


class TestConcurrentCollisions:
    """Tests for references taken between the check and the insert."""

    @pytest.fixture
    def unseen_references(self, monkeypatch):
        """The pre-insert check never sees the competing row, only the unique constraint does."""
        monkeypatch.setattr(reference_service, 'reference_exists', lambda *args: False)

    def test_quote_retried_with_new_suffix(self, session, quote_payload, monkeypatch, unseen_references):
        suffixes = iter(['AAAA', 'AAAA', 'BBBB'])
        monkeypatch.setattr(reference_service, 'random_suffix', lambda: next(suffixes))

        first = create_quote(quote_payload, session)
        second = create_quote(quote_payload, session)

        assert first.reference.endswith('-AAAA')
        assert second.reference.endswith('-BBBB')
        assert session.query(Quote).count() == 2
        assert session.query(QuoteLine).count() == 4

    def test_exhaustion_writes_nothing(self, session, quote_payload, monkeypatch, unseen_references):
        monkeypatch.setattr(reference_service, 'random_suffix', lambda: 'AAAA')
        create_quote(quote_payload, session)

        with pytest.raises(ReferenceExhaustedError):
            create_quote(quote_payload, session, reference_attempts=3)

        assert session.query(Quote).count() == 1
        assert session.query(QuoteLine).count() == 2

    def test_payment_retried_with_new_suffix(self, session, invoice, monkeypatch, unseen_references):
        """Test that the ledger stays consistent after a retried payment insert."""
        suffixes = iter(['AAAA', 'AAAA', 'CCCC'])
        monkeypatch.setattr(reference_service, 'random_suffix', lambda: next(suffixes))

        record_payment(invoice.id, {'amount': 1000}, session)
        second = record_payment(invoice.id, {'amount': 2000}, session)

        assert second.reference.endswith('-CCCC')
        current = get_invoice(invoice.id, session)
        assert current.amount_paid == 3000
        assert current.balance_due == 233000
        assert len(current.payments) == 2

    def test_conversion_retried_with_new_suffix(self, session, accepted_quote, quote_payload, monkeypatch,
                                               unseen_references):
        suffixes = iter(['DDDD', 'DDDD', 'EEEE'])
        monkeypatch.setattr(reference_service, 'random_suffix', lambda: next(suffixes))
        create_invoice(quote_payload, session)

        invoice, created = convert_quote_to_invoice(accepted_quote.id, session)

        assert created is True
        assert invoice.reference.endswith('-EEEE')
        assert invoice.quote_id == accepted_quote.id

    def test_only_reference_conflicts_are_retried(self):
        assert is_reference_conflict(
            IntegrityError('INSERT', {}, Exception('UNIQUE constraint failed: quote.reference'))
        )
        assert is_reference_conflict(IntegrityError('INSERT', {}, Exception(
            'duplicate key value violates unique constraint "invoice_reference_key"\n'
            'DETAIL:  Key (reference)=(FAC-2610-AAAA) already exists.'
        )))
        assert not is_reference_conflict(
            IntegrityError('INSERT', {}, Exception('UNIQUE constraint failed: invoice.quote_id'))
        )


class TestRevisionLetters:
    """Tests for revision letters."""

    def test_first_revision(self):
        assert next_revision_letter([]) == 'A'

    def test_next_letter(self):
        assert next_revision_letter(['A', 'B']) == 'C'
        assert next_revision_letter([None, 'A']) == 'B'

    def test_last_letter(self):
        with pytest.raises(ValueError):
            next_revision_letter(['Z'])
