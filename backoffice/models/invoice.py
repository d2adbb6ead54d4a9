"""Invoice model for factures."""
import enum
from datetime import date
from sqlalchemy import Column, BigInteger, String, Numeric, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship, composite
from sqlalchemy.sql import func
from backoffice.database import Base, IdType
from backoffice.models.client_snapshot import ClientSnapshot


class InvoiceStatus(enum.Enum):
    """Invoice status enum."""
    DRAFT = "draft"
    SENT = "sent"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"


# Statuses computed from payments; callers can never request them directly
INVOICE_DERIVED_STATUSES = frozenset({InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID})

# Explicit (caller-driven) transitions. Everything else comes from payment math.
INVOICE_MANUAL_TRANSITIONS = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.SENT, InvoiceStatus.CANCELLED}),
    InvoiceStatus.SENT: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.PARTIALLY_PAID: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset({InvoiceStatus.CANCELLED}),
    InvoiceStatus.CANCELLED: frozenset(),
}


class Invoice(Base):
    """
    Invoice (Facture).

    total_ht, total_tva, total_ttc, amount_paid (montant payé) and
    balance_due (reste à payer) are derived values maintained by
    invoice_service.recompute_invoice and never edited directly.
    """

    __tablename__ = 'invoice'

    id = Column(IdType, primary_key=True, autoincrement=True)
    reference = Column(String(32), nullable=False, unique=True)
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=False, default=InvoiceStatus.DRAFT.value, index=True)

    client_name = Column(String(255), nullable=False)
    client_address = Column(String(255), nullable=True)
    client_city = Column(String(120), nullable=True)
    client_country = Column(String(120), nullable=True)
    client_email = Column(String(255), nullable=True)
    client_phone = Column(String(50), nullable=True)
    client = composite(
        ClientSnapshot,
        client_name, client_address, client_city, client_country, client_email, client_phone
    )

    subject = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    tva_rate = Column(Numeric(5, 2), nullable=False, default=0)
    total_ht = Column(BigInteger, nullable=False, default=0)
    total_tva = Column(BigInteger, nullable=False, default=0)
    total_ttc = Column(BigInteger, nullable=False, default=0)
    amount_paid = Column(BigInteger, nullable=False, default=0)
    balance_due = Column(BigInteger, nullable=False, default=0)

    quote_id = Column(IdType, ForeignKey('quote.id', ondelete='SET NULL'), nullable=True, unique=True)

    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    lines = relationship(
        'InvoiceLine', back_populates='invoice',
        cascade='all, delete-orphan', order_by='InvoiceLine.position'
    )
    payments = relationship(
        'Payment', back_populates='invoice',
        cascade='all, delete-orphan', order_by='Payment.id'
    )
    quote = relationship('Quote', foreign_keys=[quote_id])

    def __repr__(self):
        return f"<Invoice(id={self.id}, reference='{self.reference}', status='{self.status}', total_ttc={self.total_ttc})>"

    @property
    def status_enum(self) -> InvoiceStatus:
        return InvoiceStatus(self.status)

    @property
    def lines_locked(self):
        """Billed items are frozen once the invoice has left draft."""
        return self.status_enum is not InvoiceStatus.DRAFT

    @property
    def is_cancelled(self):
        return self.status_enum is InvoiceStatus.CANCELLED

    def is_overdue(self, today=None):
        today = today or date.today()
        return (
            self.due_date is not None
            and self.balance_due > 0
            and not self.is_cancelled
            and today > self.due_date
        )

    def to_dict(self, include_lines=True, include_payments=True):
        """Convert to dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'reference': self.reference,
            'issue_date': self.issue_date.isoformat() if self.issue_date else None,
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'status': self.status,
            'client': self.client.to_dict() if self.client else None,
            'subject': self.subject,
            'notes': self.notes,
            'tva_rate': float(self.tva_rate) if self.tva_rate is not None else None,
            'total_ht': self.total_ht,
            'total_tva': self.total_tva,
            'total_ttc': self.total_ttc,
            'amount_paid': self.amount_paid,
            'balance_due': self.balance_due,
            'quote_id': self.quote_id,
            'is_overdue': self.is_overdue(),
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_lines:
            data['lines'] = [line.to_dict() for line in self.lines]
        if include_payments:
            data['payments'] = [payment.to_dict() for payment in self.payments]
        return data
