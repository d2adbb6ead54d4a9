"""Quote model for devis."""
import enum
from datetime import date, timedelta
from sqlalchemy import Column, BigInteger, String, Integer, DateTime, Date, Text, ForeignKey
from sqlalchemy.orm import relationship, composite, backref
from sqlalchemy.sql import func
from backoffice.database import Base, IdType
from backoffice.models.client_snapshot import ClientSnapshot


class QuoteStatus(enum.Enum):
    """Quote status enum."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    EXPIRED = "expired"


QUOTE_EDITABLE_STATUSES = frozenset({QuoteStatus.DRAFT, QuoteStatus.SENT})
QUOTE_TERMINAL_STATUSES = frozenset({QuoteStatus.ACCEPTED, QuoteStatus.REFUSED, QuoteStatus.EXPIRED})

# allowed-from -> allowed-to. Open statuses may move to any status; terminal ones are frozen.
QUOTE_STATUS_TRANSITIONS = {
    QuoteStatus.DRAFT: frozenset(QuoteStatus),
    QuoteStatus.SENT: frozenset(QuoteStatus),
    QuoteStatus.ACCEPTED: frozenset(),
    QuoteStatus.REFUSED: frozenset(),
    QuoteStatus.EXPIRED: frozenset(),
}


class Quote(Base):
    """
    Quote (Devis).

    Once accepted, a quote can be converted into an invoice exactly once;
    invoice_id records that conversion. Revisions are lettered copies
    pointing at the root quote through parent_quote_id.
    """

    __tablename__ = 'quote'

    id = Column(IdType, primary_key=True, autoincrement=True)
    reference = Column(String(32), nullable=False, unique=True)
    issue_date = Column(Date, nullable=False, default=date.today)
    status = Column(String(20), nullable=False, default=QuoteStatus.DRAFT.value, index=True)

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
    delivery_delay = Column(String(255), nullable=True)
    delivery_terms = Column(String(255), nullable=True)
    validity_days = Column(Integer, nullable=False, default=30)
    warranty = Column(Text, nullable=True)
    total_ht = Column(BigInteger, nullable=False, default=0)

    # Conversion link; plain id, the invoice owns the foreign key back to the quote
    invoice_id = Column(BigInteger, nullable=True, unique=True)

    parent_quote_id = Column(IdType, ForeignKey('quote.id'), nullable=True)
    revision_letter = Column(String(1), nullable=True)

    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    lines = relationship(
        'QuoteLine', back_populates='quote',
        cascade='all, delete-orphan', order_by='QuoteLine.position'
    )
    revisions = relationship(
        'Quote', backref=backref('parent', remote_side=[id]),
        order_by='Quote.id'
    )

    def __repr__(self):
        return f"<Quote(id={self.id}, reference='{self.reference}', status='{self.status}', total_ht={self.total_ht})>"

    @property
    def status_enum(self) -> QuoteStatus:
        return QuoteStatus(self.status)

    @property
    def valid_until(self):
        """Informational end of validity. Nothing expires automatically."""
        if self.issue_date and self.validity_days is not None:
            return self.issue_date + timedelta(days=self.validity_days)
        return None

    @property
    def is_editable(self):
        return self.status_enum in QUOTE_EDITABLE_STATUSES

    @property
    def is_converted(self):
        return self.invoice_id is not None

    @property
    def is_convertible(self):
        """Check if quote can be converted to an invoice."""
        return self.status_enum is QuoteStatus.ACCEPTED and not self.is_converted

    def to_dict(self, include_lines=True):
        """Convert to dictionary for JSON serialization."""
        data = {
            'id': self.id,
            'reference': self.reference,
            'issue_date': self.issue_date.isoformat() if self.issue_date else None,
            'status': self.status,
            'client': self.client.to_dict() if self.client else None,
            'subject': self.subject,
            'delivery_delay': self.delivery_delay,
            'delivery_terms': self.delivery_terms,
            'validity_days': self.validity_days,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'warranty': self.warranty,
            'total_ht': self.total_ht,
            'invoice_id': self.invoice_id,
            'is_converted': self.is_converted,
            'parent_quote_id': self.parent_quote_id,
            'revision_letter': self.revision_letter,
            'created_by': self.created_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
        if include_lines:
            data['lines'] = [line.to_dict() for line in self.lines]
        return data
