"""
Invoice service.

Totals, amount paid, balance due and the payment-driven statuses are
derived here and nowhere else: callers only ever change client/header
fields, draft lines and the explicit sent/cancelled transitions.
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError

from backoffice.exceptions import (
    BackofficeError, ValidationError, NotFoundError, InvalidStateError, TransactionFailedError
)
from backoffice.models import (
    Invoice, InvoiceLine, InvoiceStatus, INVOICE_DERIVED_STATUSES, INVOICE_MANUAL_TRANSITIONS,
    Payment, Quote
)
from backoffice.services.pricing_service import normalize_lines, compute_total, compute_document_totals
from backoffice.services.quote_service import build_client, merge_client
from backoffice.services.reference_service import DocumentSeries, DEFAULT_MAX_ATTEMPTS, save_with_reference
from backoffice.utils.parsing import parse_iso_date

logger = logging.getLogger(__name__)

DEFAULT_TVA_RATE = Decimal('18')
INVOICE_HEADER_FIELDS = ('subject', 'notes')


def parse_invoice_status(value) -> InvoiceStatus:
    if isinstance(value, InvoiceStatus):
        return value
    try:
        return InvoiceStatus(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(status.value for status in InvoiceStatus)
        raise ValidationError(f'Statut de facture inconnu : {value}. Valeurs possibles : {allowed}.')


def derive_invoice_status(current: InvoiceStatus, amount_paid: int, total_ttc: int) -> InvoiceStatus:
    """
    Status implied by the payments on an invoice.

    - cancelled stays cancelled
    - paid when something was paid and nothing is left
    - partially_paid when 0 < amount_paid < total_ttc
    - with no payments, paid/partially_paid fall back to sent; draft and
      sent are kept as they are
    - a zero-total invoice is therefore never paid on its own: its balance
      is 0 but it keeps its draft/sent status
    """
    if current is InvoiceStatus.CANCELLED:
        return current
    if amount_paid > 0 and amount_paid >= total_ttc:
        return InvoiceStatus.PAID
    if 0 < amount_paid < total_ttc:
        return InvoiceStatus.PARTIALLY_PAID
    if current in INVOICE_DERIVED_STATUSES:
        return InvoiceStatus.SENT
    return current


def apply_line_totals(invoice: Invoice) -> None:
    """Refresh total_ht/total_tva/total_ttc from the lines and the invoice TVA rate."""
    totals = compute_document_totals(compute_total(invoice.lines), invoice.tva_rate)
    invoice.total_ht = totals['total_ht']
    invoice.total_tva = totals['total_tva']
    invoice.total_ttc = totals['total_ttc']


def recompute_invoice(session, invoice: Invoice) -> Invoice:
    """
    Recompute amount_paid, balance_due and status from stored payments.

    Pending changes are flushed first so the SUM sees them. Must run inside
    the caller's transaction, with the invoice row locked.
    """
    session.flush()
    amount_paid = session.query(
        func.coalesce(func.sum(Payment.amount), 0)
    ).filter(Payment.invoice_id == invoice.id).scalar()

    invoice.amount_paid = int(amount_paid)
    invoice.balance_due = max(invoice.total_ttc - invoice.amount_paid, 0)
    invoice.status = derive_invoice_status(
        invoice.status_enum, invoice.amount_paid, invoice.total_ttc
    ).value
    return invoice


def _lock_invoice(session, invoice_id: int) -> Invoice:
    invoice = session.query(Invoice).filter(Invoice.id == invoice_id).with_for_update().first()
    if not invoice:
        raise NotFoundError(f'Facture {invoice_id} introuvable.')
    return invoice


def _apply_manual_status(invoice: Invoice, target: InvoiceStatus) -> bool:
    current = invoice.status_enum
    if target is current:
        return False
    if target in INVOICE_DERIVED_STATUSES:
        raise InvalidStateError(
            f'Le statut "{target.value}" est calculé à partir des paiements '
            f'et ne peut pas être demandé.'
        )
    if target not in INVOICE_MANUAL_TRANSITIONS[current]:
        raise InvalidStateError(
            f'Passage de la facture {invoice.reference} de "{current.value}" '
            f'à "{target.value}" impossible.'
        )
    invoice.status = target.value
    return True


def _parse_date(value, label):
    try:
        return parse_iso_date(value, label)
    except ValueError as e:
        raise ValidationError(str(e))


def _clean_text(value) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def create_invoice(payload: Dict[str, Any], session, tva_rate=DEFAULT_TVA_RATE, created_by=None,
                   due_days: Optional[int] = None, default_country: Optional[str] = None,
                   reference_attempts: int = DEFAULT_MAX_ATTEMPTS) -> Invoice:
    """
    Create a draft invoice directly, without a quote.

    Args:
        payload: Dictionary with client, lines, subject, notes, and optional
            issue_date / due_date (YYYY-MM-DD)
        session: SQLAlchemy session
        tva_rate: TVA percentage applied to total_ht
        created_by: caller identity
        due_days: default payment term when no due_date is given

    Returns:
        The persisted Invoice

    Raises:
        ValidationError: invalid client, lines or dates
        ReferenceExhaustedError: no free reference
    """
    try:
        client = build_client(payload, default_country)
        lines = normalize_lines(payload.get('lines'))
        issue_date = _parse_date(payload.get('issue_date'), 'date de facture') or date.today()
        due_date = _parse_date(payload.get('due_date'), "date d'échéance")
        if due_date is None and due_days is not None:
            due_date = issue_date + timedelta(days=due_days)
        if due_date is not None and due_date < issue_date:
            raise ValidationError("La date d'échéance ne peut pas précéder la date de facture.")

        def build(reference):
            invoice = Invoice(
                reference=reference,
                issue_date=issue_date,
                due_date=due_date,
                status=InvoiceStatus.DRAFT.value,
                client=client,
                subject=_clean_text(payload.get('subject')),
                notes=_clean_text(payload.get('notes')),
                tva_rate=Decimal(str(tva_rate)),
                amount_paid=0,
                created_by=str(created_by) if created_by is not None else None,
            )
            invoice.lines = [InvoiceLine(**values) for values in lines]
            apply_line_totals(invoice)
            invoice.balance_due = invoice.total_ttc
            return invoice

        invoice = save_with_reference(session, DocumentSeries.INVOICE, build, issue_date, reference_attempts)
        session.commit()

        logger.info(f"Invoice {invoice.reference} created (total_ttc={invoice.total_ttc})")
        return invoice
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Storage error while creating invoice")
        raise TransactionFailedError('Erreur lors de la création de la facture.') from e


def update_invoice(invoice_id: int, payload: Dict[str, Any], session) -> Invoice:
    """
    Update an invoice.

    Client, subject, notes and due date can change at any time; lines only
    while the invoice is a draft. ``status`` accepts the explicit
    transitions only (draft -> sent, any -> cancelled).
    """
    try:
        invoice = _lock_invoice(session, invoice_id)

        client = merge_client(invoice.client, payload)
        if client is not None:
            invoice.client = client
        for field in INVOICE_HEADER_FIELDS:
            if field in payload:
                setattr(invoice, field, _clean_text(payload[field]))
        if 'due_date' in payload:
            due_date = _parse_date(payload['due_date'], "date d'échéance")
            if due_date is not None and due_date < invoice.issue_date:
                raise ValidationError("La date d'échéance ne peut pas précéder la date de facture.")
            invoice.due_date = due_date

        if 'lines' in payload:
            if invoice.lines_locked:
                raise InvalidStateError(
                    f'Les lignes de la facture {invoice.reference} ne sont plus modifiables '
                    f'(statut "{invoice.status}").'
                )
            invoice.lines = [InvoiceLine(**values) for values in normalize_lines(payload['lines'])]
            apply_line_totals(invoice)
            recompute_invoice(session, invoice)

        if 'status' in payload:
            target = parse_invoice_status(payload['status'])
            if _apply_manual_status(invoice, target):
                logger.info(f"Invoice {invoice.reference} moved to {target.value}")

        session.commit()
        return invoice
    except BackofficeError as e:
        session.rollback()
        logger.warning(f"Invoice {invoice_id} update rejected: {e.message}")
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Storage error while updating invoice")
        raise TransactionFailedError('Erreur lors de la mise à jour de la facture.') from e


def delete_invoice(invoice_id: int, session) -> None:
    """Delete an invoice with its lines and payments; its quote becomes convertible again."""
    try:
        invoice = _lock_invoice(session, invoice_id)
        reference = invoice.reference

        session.query(Quote).filter(Quote.invoice_id == invoice.id).update(
            {Quote.invoice_id: None}, synchronize_session=False
        )
        session.delete(invoice)
        session.commit()

        logger.info(f"Invoice {reference} deleted")
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Storage error while deleting invoice")
        raise TransactionFailedError('Erreur lors de la suppression de la facture.') from e


def get_invoice(invoice_id: int, session) -> Invoice:
    invoice = session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError(f'Facture {invoice_id} introuvable.')
    return invoice


def list_invoices(session, status=None, search: Optional[str] = None) -> List[Invoice]:
    """List invoices, most recent first, optionally filtered by status and text."""
    query = session.query(Invoice)

    if status:
        query = query.filter(Invoice.status == parse_invoice_status(status).value)

    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(
            or_(
                Invoice.reference.ilike(pattern),
                Invoice.client_name.ilike(pattern),
                Invoice.subject.ilike(pattern),
            )
        )

    return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()
