"""Custom exceptions for the back-office financial documents core."""

class BackofficeError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class ValidationError(BackofficeError):
    """Malformed input (negative price, empty client name, no lines...)."""
    def __init__(self, message, payload=None):
        super().__init__(message, 400, payload)

class NotFoundError(BackofficeError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class InvalidStateError(BackofficeError):
    """Operation not legal in the document's current status."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)

class OverpaymentError(InvalidStateError):
    """Raised when a payment would exceed the invoice balance."""
    def __init__(self, amount, balance_due):
        self.amount = amount
        self.balance_due = balance_due
        message = (
            f"Le montant du paiement ({amount}) dépasse le reste à payer ({balance_due})."
        )
        super().__init__(message, payload={'amount': amount, 'balance_due': balance_due})

class ReferenceExhaustedError(BackofficeError):
    """No free document reference found within the allowed attempts. Retryable."""
    def __init__(self, series, attempts):
        message = f"Impossible de générer une référence {series} unique après {attempts} tentatives."
        super().__init__(message, 503, {'retryable': True})

class TransactionFailedError(BackofficeError):
    """Wraps an underlying storage failure. The transaction was rolled back."""
    def __init__(self, message="La transaction a échoué.", payload=None):
        super().__init__(message, 500, payload)

class ConversionFailedError(TransactionFailedError):
    """Quote to invoice conversion failed; nothing was persisted. Safe to retry."""
    def __init__(self, quote_id):
        super().__init__(
            f"La conversion du devis {quote_id} en facture a échoué.",
            {'quote_id': quote_id, 'retryable': True}
        )
