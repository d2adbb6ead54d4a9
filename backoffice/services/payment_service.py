"""Payment service: the ledger of amounts received against invoices."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from backoffice.exceptions import (
    BackofficeError, ValidationError, NotFoundError, InvalidStateError, OverpaymentError,
    TransactionFailedError
)
from backoffice.models import Invoice, Payment, normalize_payment_method
from backoffice.services.invoice_service import recompute_invoice
from backoffice.services.reference_service import DocumentSeries, DEFAULT_MAX_ATTEMPTS, save_with_reference
from backoffice.utils.parsing import parse_amount, parse_iso_date

logger = logging.getLogger(__name__)


def _parse_payment_amount(value) -> int:
    try:
        amount = parse_amount(value)
    except ValueError as e:
        raise ValidationError(f'Montant du paiement invalide : {e}')
    if amount <= 0:
        raise ValidationError('Le montant du paiement doit être supérieur à 0.')
    return amount


def _lock_invoice(session, invoice_id: int) -> Invoice:
    invoice = session.query(Invoice).filter(Invoice.id == invoice_id).with_for_update().first()
    if not invoice:
        raise NotFoundError(f'Facture {invoice_id} introuvable.')
    return invoice


def record_payment(invoice_id: int, payload: Dict[str, Any], session, created_by=None,
                   reference_attempts: int = DEFAULT_MAX_ATTEMPTS) -> Payment:
    """
    Record a payment against an invoice.

    Args:
        invoice_id: ID of the invoice being paid
        payload: Dictionary with:
            - amount: positive whole amount (required)
            - paid_on: YYYY-MM-DD (defaults to today)
            - method: cash, check, transfer, mobile_money or card (defaults to cash)
            - notes: optional text
        session: SQLAlchemy session
        created_by: caller identity

    Returns:
        The persisted Payment; the invoice is recomputed in the same transaction

    Raises:
        ValidationError: invalid amount, date or method (nothing is written)
        NotFoundError: unknown invoice
        InvalidStateError: invoice cancelled
        OverpaymentError: amount greater than the balance due
    """
    try:
        amount = _parse_payment_amount(payload.get('amount'))
        try:
            paid_on = parse_iso_date(payload.get('paid_on'), 'date de paiement') or date.today()
            method = normalize_payment_method(payload.get('method'))
        except ValueError as e:
            raise ValidationError(str(e))

        invoice = _lock_invoice(session, invoice_id)
        if invoice.is_cancelled:
            raise InvalidStateError(f'La facture {invoice.reference} est annulée : paiement refusé.')

        # Re-read the balance under the lock before checking it
        recompute_invoice(session, invoice)
        if amount > invoice.balance_due:
            raise OverpaymentError(amount, invoice.balance_due)

        def build(reference):
            return Payment(
                reference=reference,
                invoice_id=invoice.id,
                amount=amount,
                paid_on=paid_on,
                method=method,
                notes=(payload.get('notes') or '').strip() or None,
                created_by=str(created_by) if created_by is not None else None,
            )

        payment = save_with_reference(session, DocumentSeries.PAYMENT, build, paid_on, reference_attempts)
        session.expire(invoice, ['payments'])
        recompute_invoice(session, invoice)
        session.commit()

        logger.info(
            f"Payment {payment.reference} of {amount} recorded on invoice {invoice.reference} "
            f"(balance_due={invoice.balance_due}, status={invoice.status})"
        )
        return payment
    except BackofficeError as e:
        session.rollback()
        logger.warning(f"Payment on invoice {invoice_id} rejected: {e.message}")
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Storage error while recording payment")
        raise TransactionFailedError("Erreur lors de l'enregistrement du paiement.") from e


def delete_payment(payment_id: int, session) -> Invoice:
    """
    Delete a payment and recompute its invoice.

    Returns:
        The updated invoice

    Raises:
        NotFoundError: unknown payment
        InvalidStateError: the invoice is cancelled
    """
    try:
        payment = session.get(Payment, payment_id)
        if not payment:
            raise NotFoundError(f'Paiement {payment_id} introuvable.')

        invoice = _lock_invoice(session, payment.invoice_id)
        if invoice.is_cancelled:
            raise InvalidStateError(
                f'La facture {invoice.reference} est annulée : ses paiements ne peuvent plus être supprimés.'
            )

        reference = payment.reference
        invoice.payments.remove(payment)
        recompute_invoice(session, invoice)
        session.commit()

        logger.info(
            f"Payment {reference} deleted from invoice {invoice.reference} "
            f"(balance_due={invoice.balance_due}, status={invoice.status})"
        )
        return invoice
    except BackofficeError as e:
        session.rollback()
        logger.warning(f"Deletion of payment {payment_id} rejected: {e.message}")
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Storage error while deleting payment")
        raise TransactionFailedError('Erreur lors de la suppression du paiement.') from e


def list_payments(session, invoice_id: Optional[int] = None) -> List[Payment]:
    """Payments in date order, for one invoice or all of them."""
    query = session.query(Payment)
    if invoice_id is not None:
        if not session.get(Invoice, invoice_id):
            raise NotFoundError(f'Facture {invoice_id} introuvable.')
        query = query.filter(Payment.invoice_id == invoice_id)
    return query.order_by(Payment.paid_on, Payment.id).all()
