"""QuoteLine model for quote line items."""
from sqlalchemy import Column, ForeignKey
from sqlalchemy.orm import relationship
from backoffice.database import Base, IdType
from backoffice.models.line_item import LineItemMixin


class QuoteLine(LineItemMixin, Base):
    """
    Quote Line (Ligne de devis).

    Prices are copied from the catalog when the line is written and never
    follow later catalog changes.
    """

    __tablename__ = 'quote_line'

    quote_id = Column(IdType, ForeignKey('quote.id', ondelete='CASCADE'), nullable=False, index=True)

    # Relationships
    quote = relationship('Quote', back_populates='lines')

    def __repr__(self):
        return f"<QuoteLine(id={self.id}, quote_id={self.quote_id}, designation='{self.designation}', amount={self.amount})>"
