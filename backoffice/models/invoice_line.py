"""InvoiceLine model for invoice line items."""
from sqlalchemy import Column, ForeignKey
from sqlalchemy.orm import relationship
from backoffice.database import Base, IdType
from backoffice.models.line_item import LineItemMixin


class InvoiceLine(LineItemMixin, Base):
    """Invoice Line (Ligne de facture)."""

    __tablename__ = 'invoice_line'

    invoice_id = Column(IdType, ForeignKey('invoice.id', ondelete='CASCADE'), nullable=False, index=True)

    # Relationships
    invoice = relationship('Invoice', back_populates='lines')

    def __repr__(self):
        return f"<InvoiceLine(id={self.id}, invoice_id={self.invoice_id}, designation='{self.designation}', amount={self.amount})>"
