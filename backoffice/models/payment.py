"""Payment model for invoice payments."""
import enum
from datetime import date
from sqlalchemy import Column, BigInteger, String, Date, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.database import Base, IdType


class PaymentMethod(enum.Enum):
    """Payment method enum."""
    CASH = "cash"
    CHECK = "check"
    TRANSFER = "transfer"
    MOBILE_MONEY = "mobile_money"
    CARD = "card"


# French labels used by the original forms, accepted as input aliases
PAYMENT_METHOD_ALIASES = {
    'especes': PaymentMethod.CASH,
    'espèces': PaymentMethod.CASH,
    'cheque': PaymentMethod.CHECK,
    'chèque': PaymentMethod.CHECK,
    'virement': PaymentMethod.TRANSFER,
    'carte': PaymentMethod.CARD,
}


def normalize_payment_method(value) -> str:
    """
    Normalize payment method value to string for DB storage.

    Args:
        value: Can be None, PaymentMethod enum, or string

    Returns:
        str: one of the PaymentMethod values

    Raises:
        ValueError: If value is invalid
    """
    # Default to cash if None
    if value is None:
        return PaymentMethod.CASH.value

    if isinstance(value, PaymentMethod):
        return value.value

    normalized = str(value).strip().lower().replace('-', '_').replace(' ', '_')
    if normalized in PAYMENT_METHOD_ALIASES:
        return PAYMENT_METHOD_ALIASES[normalized].value
    try:
        return PaymentMethod(normalized).value
    except ValueError:
        allowed = ', '.join(method.value for method in PaymentMethod)
        raise ValueError(f"Invalid payment method: {value}. Must be one of: {allowed}.")


class Payment(Base):
    """Payment (Paiement) recorded against an invoice."""

    __tablename__ = 'payment'

    id = Column(IdType, primary_key=True, autoincrement=True)
    reference = Column(String(32), nullable=False, unique=True)
    invoice_id = Column(IdType, ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    paid_on = Column(Date, nullable=False, default=date.today)
    method = Column(String(20), nullable=False, default=PaymentMethod.CASH.value)
    notes = Column(Text, nullable=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    invoice = relationship('Invoice', back_populates='payments')

    def __repr__(self):
        return f"<Payment(id={self.id}, amount={self.amount}, invoice={self.invoice_id})>"

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'reference': self.reference,
            'invoice_id': self.invoice_id,
            'amount': self.amount,
            'paid_on': self.paid_on.isoformat() if self.paid_on else None,
            'method': self.method,
            'notes': self.notes,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
