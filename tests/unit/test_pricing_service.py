"""
Unit tests for the monetary line engine.
"""

import pytest
from decimal import Decimal

from backoffice.exceptions import ValidationError
from backoffice.services.pricing_service import (
    compute_line, compute_total, compute_tax, compute_document_totals,
    normalize_line, normalize_lines
)


class TestComputeLine:
    """Tests for line amount computation."""

    def test_integer_quantity(self):
        """Test quantity x unit price with whole quantities."""
        assert compute_line(2, 50000) == 100000

    def test_fractional_quantity_rounds_half_up(self):
        """Test that half a currency unit rounds up."""
        assert compute_line(Decimal('0.5'), 3) == 2
        assert compute_line('2,5', 1001) == 2503

    def test_fractional_quantity_rounds_down_below_half(self):
        """Test that less than half a unit is dropped."""
        assert compute_line(Decimal('0.1'), 3) == 0

    def test_zero_unit_price_allowed(self):
        """Test that free items are accepted."""
        assert compute_line(3, 0) == 0

    @pytest.mark.parametrize('quantity', [0, -1, '0', 'abc', None])
    def test_invalid_quantity_rejected(self, quantity):
        """Test that zero, negative and non-numeric quantities are rejected."""
        with pytest.raises(ValidationError):
            compute_line(quantity, 1000)

    @pytest.mark.parametrize('quantity', ['0.0004', '1,2345', Decimal('2.0001'), 0.0004])
    def test_quantity_beyond_three_decimals_rejected(self, quantity):
        """Test that a quantity the column would round is refused."""
        with pytest.raises(ValidationError):
            compute_line(quantity, 10000)

    def test_three_decimals_accepted(self):
        assert compute_line('1,255', 1000) == 1255
        assert compute_line(Decimal('2.5000'), 10) == 25

    @pytest.mark.parametrize('unit_price', [-1, '10.5', 10.5, None, 'gratuit'])
    def test_invalid_unit_price_rejected(self, unit_price):
        """Test that negative or fractional prices are rejected."""
        with pytest.raises(ValidationError):
            compute_line(1, unit_price)


class TestTotals:
    """Tests for document totals."""

    def test_total_is_sum_of_amounts(self):
        """Test total HT on normalized line dicts."""
        lines = [
            {'position': 2, 'amount': 100000},
            {'position': 1, 'amount': 100000},
        ]
        assert compute_total(lines) == 200000

    def test_total_of_no_lines(self):
        assert compute_total([]) == 0

    def test_tax_at_18_percent(self):
        """Test TVA on the reference scenario."""
        assert compute_tax(200000, 18) == 36000

    def test_tax_rounding(self):
        """Test that TVA is rounded half-up to a whole unit."""
        assert compute_tax(1, 18) == 0
        assert compute_tax(3, 18) == 1
        assert compute_tax(25, Decimal('18')) == 5

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            compute_tax(1000, -5)

    def test_document_totals(self):
        """Test HT/TVA/TTC breakdown."""
        assert compute_document_totals(200000, Decimal('18')) == {
            'total_ht': 200000,
            'total_tva': 36000,
            'total_ttc': 236000,
        }


class TestNormalizeLines:
    """Tests for payload line validation."""

    def test_client_amount_is_ignored(self):
        """Test that a supplied amount is recomputed."""
        line = normalize_line({'designation': 'Câble', 'quantity': 2, 'unit_price': 10, 'amount': 999}, 1)
        assert line['amount'] == 20
        assert line['quantity'] == Decimal(2)

    def test_blank_optional_fields_become_none(self):
        line = normalize_line({'designation': ' Câble ', 'quantity': 1, 'unit_price': 10, 'unit': ' '}, 1)
        assert line['designation'] == 'Câble'
        assert line['unit'] is None
        assert line['reference'] is None
        assert line['product_id'] is None

    def test_designation_required(self):
        with pytest.raises(ValidationError):
            normalize_line({'designation': '  ', 'quantity': 1, 'unit_price': 10}, 1)

    def test_empty_list_rejected(self):
        """Test that a document needs at least one line."""
        with pytest.raises(ValidationError):
            normalize_lines([])
        with pytest.raises(ValidationError):
            normalize_lines(None)

    def test_positions_are_renumbered(self):
        """Test ordering by requested position, renumbered 1..n."""
        lines = normalize_lines([
            {'designation': 'B', 'quantity': 1, 'unit_price': 10, 'position': 5},
            {'designation': 'A', 'quantity': 1, 'unit_price': 10, 'position': 2},
            {'designation': 'C', 'quantity': 1, 'unit_price': 10},
        ])
        assert [line['designation'] for line in lines] == ['A', 'B', 'C']
        assert [line['position'] for line in lines] == [1, 2, 3]

    def test_one_invalid_line_rejects_all(self):
        with pytest.raises(ValidationError):
            normalize_lines([
                {'designation': 'A', 'quantity': 1, 'unit_price': 10},
                {'designation': 'B', 'quantity': -2, 'unit_price': 10},
            ])
