"""Quote to invoice conversion."""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError

from backoffice.exceptions import BackofficeError, NotFoundError, InvalidStateError, ConversionFailedError
from backoffice.models import Quote, QuoteStatus, Invoice, InvoiceLine, InvoiceStatus
from backoffice.services.invoice_service import DEFAULT_TVA_RATE
from backoffice.services.pricing_service import compute_document_totals
from backoffice.services.reference_service import DocumentSeries, DEFAULT_MAX_ATTEMPTS, save_with_reference

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 30


def convert_quote_to_invoice(quote_id: int, session, tva_rate=DEFAULT_TVA_RATE,
                             due_days: int = DEFAULT_DUE_DAYS, created_by=None,
                             reference_attempts: int = DEFAULT_MAX_ATTEMPTS) -> Tuple[Invoice, bool]:
    """
    Turn an accepted quote into a draft invoice.

    The quote row is locked for the whole transaction, so two concurrent
    conversions of the same quote serialize and the second one sees the
    invoice_id written by the first. Lines are copied as they are, without
    repricing.

    Args:
        quote_id: ID of the quote to convert
        session: SQLAlchemy session
        tva_rate: TVA percentage applied to the quote total HT
        due_days: days between issue date and due date
        created_by: caller identity

    Returns:
        (invoice, created): created is False when the quote had already
        been converted and the existing invoice is returned.

    Raises:
        NotFoundError: unknown quote
        InvalidStateError: quote not accepted
        ConversionFailedError: storage failure, nothing was persisted
    """
    try:
        quote = session.query(Quote).filter(Quote.id == quote_id).with_for_update().first()
        if not quote:
            raise NotFoundError(f'Devis {quote_id} introuvable.')

        if quote.invoice_id is not None:
            existing = session.get(Invoice, quote.invoice_id)
            if existing is not None:
                session.commit()
                logger.info(f"Quote {quote.reference} already converted to {existing.reference}")
                return existing, False
            logger.warning(f"Quote {quote.reference} points at missing invoice {quote.invoice_id}")
            quote.invoice_id = None

        if quote.status_enum is not QuoteStatus.ACCEPTED:
            raise InvalidStateError(
                f'Seul un devis accepté peut être converti en facture '
                f'(devis {quote.reference} : "{quote.status}").'
            )

        issue_date = date.today()
        totals = compute_document_totals(quote.total_ht, tva_rate)

        def build(reference):
            invoice = Invoice(
                reference=reference,
                issue_date=issue_date,
                due_date=issue_date + timedelta(days=due_days),
                status=InvoiceStatus.DRAFT.value,
                client=quote.client,
                subject=quote.subject,
                tva_rate=Decimal(str(tva_rate)),
                total_ht=totals['total_ht'],
                total_tva=totals['total_tva'],
                total_ttc=totals['total_ttc'],
                amount_paid=0,
                balance_due=totals['total_ttc'],
                quote_id=quote.id,
                created_by=str(created_by) if created_by is not None else None,
            )
            invoice.lines = [InvoiceLine(**line.copy_values()) for line in quote.lines]
            return invoice

        invoice = save_with_reference(session, DocumentSeries.INVOICE, build, issue_date, reference_attempts)
        quote.invoice_id = invoice.id
        session.commit()

        logger.info(
            f"Quote {quote.reference} converted to invoice {invoice.reference} "
            f"(total_ttc={invoice.total_ttc})"
        )
        return invoice, True
    except BackofficeError as e:
        session.rollback()
        logger.warning(f"Conversion of quote {quote_id} rejected: {e.message}")
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception(f"Conversion of quote {quote_id} failed")
        raise ConversionFailedError(quote_id) from e
