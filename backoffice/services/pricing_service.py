"""
Monetary line engine.

The currency has no sub-units: every amount is an int and every
computation goes through Decimal, so totals never drift.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List

from backoffice.exceptions import ValidationError
from backoffice.utils.parsing import parse_amount, parse_quantity

WHOLE_UNIT = Decimal('1')
# Scale of the quantity column, Numeric(12, 3)
QUANTITY_STEP = Decimal('0.001')


def _round_to_unit(value: Decimal) -> int:
    return int(value.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP))


def validate_quantity(value) -> Decimal:
    """Parse a line quantity; strictly positive, at most 3 decimal places (column scale)."""
    try:
        quantity = parse_quantity(value)
    except ValueError as e:
        raise ValidationError(str(e))
    if not quantity.is_finite():
        raise ValidationError(f'Quantité invalide : {value}')
    if quantity != quantity.quantize(QUANTITY_STEP):
        raise ValidationError(f'La quantité accepte au plus 3 décimales (reçu : {value}).')
    if quantity <= 0:
        raise ValidationError(f'La quantité doit être supérieure à 0 (reçu : {value}).')
    return quantity


def validate_unit_price(value) -> int:
    """Parse a unit price; whole currency units, zero allowed."""
    try:
        unit_price = parse_amount(value)
    except ValueError as e:
        raise ValidationError(f'Prix unitaire invalide : {e}')
    if unit_price < 0:
        raise ValidationError(f'Le prix unitaire ne peut pas être négatif (reçu : {value}).')
    return unit_price


def compute_line(quantity, unit_price) -> int:
    """
    Line amount = quantity x unit price, rounded half-up to a whole unit.

    Raises:
        ValidationError: negative/zero quantity or negative unit price.
    """
    quantity = validate_quantity(quantity)
    unit_price = validate_unit_price(unit_price)
    return _round_to_unit(quantity * unit_price)


def _line_value(line, key):
    if isinstance(line, dict):
        return line[key]
    return getattr(line, key)


def compute_total(lines: Iterable) -> int:
    """
    Sum of line amounts (total HT), in position order.

    Works on model instances or normalized line dicts.
    """
    ordered = sorted(lines, key=lambda line: _line_value(line, 'position'))
    total = 0
    for line in ordered:
        total += _line_value(line, 'amount')
    return total


def compute_tax(total_ht: int, rate) -> int:
    """TVA amount for a total HT at ``rate`` percent, rounded half-up."""
    rate = Decimal(str(rate))
    if rate < 0:
        raise ValidationError('Le taux de TVA ne peut pas être négatif.')
    return _round_to_unit(Decimal(total_ht) * rate / Decimal(100))


def compute_document_totals(total_ht: int, rate) -> Dict[str, int]:
    """HT/TVA/TTC breakdown for a document."""
    total_tva = compute_tax(total_ht, rate)
    return {
        'total_ht': total_ht,
        'total_tva': total_tva,
        'total_ttc': total_ht + total_tva,
    }


def normalize_line(line: Dict[str, Any], position: int) -> Dict[str, Any]:
    """
    Validate one payload line and return the values to persist.

    Any client-supplied ``amount`` is ignored: it is always recomputed.
    """
    if not isinstance(line, dict):
        raise ValidationError(f'Ligne {position} invalide.')

    designation = (line.get('designation') or '').strip()
    if not designation:
        raise ValidationError(f'La désignation est requise (ligne {position}).')

    quantity = validate_quantity(line.get('quantity'))
    unit_price = validate_unit_price(line.get('unit_price'))

    product_id = line.get('product_id')
    if product_id in ('', None):
        product_id = None
    else:
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            raise ValidationError(f'Produit invalide (ligne {position}).')

    return {
        'position': position,
        'product_id': product_id,
        'reference': (line.get('reference') or '').strip() or None,
        'designation': designation,
        'details': (line.get('details') or '').strip() or None,
        'quantity': quantity,
        'unit': (line.get('unit') or '').strip() or None,
        'unit_price': unit_price,
        'amount': _round_to_unit(quantity * unit_price),
    }


def normalize_lines(lines_data) -> List[Dict[str, Any]]:
    """
    Validate a list of payload lines.

    Lines are ordered by their optional ``position`` (ties and missing
    positions keep payload order) and renumbered 1..n.

    Raises:
        ValidationError: empty list or any invalid line.
    """
    if not lines_data or not isinstance(lines_data, list):
        raise ValidationError('Au moins une ligne est requise.')

    def sort_key(indexed):
        index, line = indexed
        position = line.get('position') if isinstance(line, dict) else None
        try:
            position = int(position) if position is not None else None
        except (TypeError, ValueError):
            raise ValidationError(f'Position invalide : {position}')
        return (position is None, position if position is not None else 0, index)

    ordered = [line for _, line in sorted(enumerate(lines_data), key=sort_key)]
    return [normalize_line(line, position) for position, line in enumerate(ordered, start=1)]
