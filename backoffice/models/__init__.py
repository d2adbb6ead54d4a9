"""Models package - exports all SQLAlchemy models."""
from backoffice.models.client_snapshot import ClientSnapshot
from backoffice.models.quote import (
    Quote, QuoteStatus, QUOTE_EDITABLE_STATUSES, QUOTE_TERMINAL_STATUSES, QUOTE_STATUS_TRANSITIONS
)
from backoffice.models.quote_line import QuoteLine
from backoffice.models.invoice import (
    Invoice, InvoiceStatus, INVOICE_DERIVED_STATUSES, INVOICE_MANUAL_TRANSITIONS
)
from backoffice.models.invoice_line import InvoiceLine
from backoffice.models.payment import Payment, PaymentMethod, normalize_payment_method

__all__ = [
    'ClientSnapshot',
    'Quote', 'QuoteStatus', 'QuoteLine',
    'QUOTE_EDITABLE_STATUSES', 'QUOTE_TERMINAL_STATUSES', 'QUOTE_STATUS_TRANSITIONS',
    'Invoice', 'InvoiceStatus', 'InvoiceLine',
    'INVOICE_DERIVED_STATUSES', 'INVOICE_MANUAL_TRANSITIONS',
    'Payment', 'PaymentMethod', 'normalize_payment_method',
]
