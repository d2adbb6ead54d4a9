"""Columns shared by quote and invoice lines."""
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, Text, BigInteger
from backoffice.database import IdType


def quantity_to_json(value):
    """Render a Decimal quantity as an int when integral, float otherwise."""
    if value is None:
        return None
    value = Decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


class LineItemMixin:
    """
    Priced row of a financial document.

    amount is always quantity x unit_price rounded to a whole currency unit
    (see pricing_service.compute_line); it is written by the services only.
    """

    id = Column(IdType, primary_key=True, autoincrement=True)
    position = Column(Integer, nullable=False)  # 1..n, contiguous per document
    product_id = Column(BigInteger, nullable=True)  # informational catalog link
    reference = Column(String(64), nullable=True)
    designation = Column(String(255), nullable=False)
    details = Column(Text, nullable=True)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit = Column(String(16), nullable=True)
    unit_price = Column(BigInteger, nullable=False)
    amount = Column(BigInteger, nullable=False)

    def copy_values(self) -> dict:
        """Line values used to clone this line onto another document."""
        return {
            'position': self.position,
            'product_id': self.product_id,
            'reference': self.reference,
            'designation': self.designation,
            'details': self.details,
            'quantity': self.quantity,
            'unit': self.unit,
            'unit_price': self.unit_price,
            'amount': self.amount,
        }

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        data = self.copy_values()
        data['id'] = self.id
        data['quantity'] = quantity_to_json(self.quantity)
        return data
