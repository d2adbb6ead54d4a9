"""Quote service for managing quotes (devis) and their revisions."""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from backoffice.exceptions import (
    BackofficeError, ValidationError, NotFoundError, InvalidStateError, TransactionFailedError
)
from backoffice.models import (
    Quote, QuoteLine, QuoteStatus, QUOTE_STATUS_TRANSITIONS, Invoice, ClientSnapshot
)
from backoffice.services.pricing_service import normalize_lines, normalize_line, compute_total
from backoffice.services.reference_service import (
    DocumentSeries, DEFAULT_MAX_ATTEMPTS, save_with_reference, next_revision_letter
)
from backoffice.utils.parsing import parse_iso_date

logger = logging.getLogger(__name__)

QUOTE_HEADER_FIELDS = ('subject', 'delivery_delay', 'delivery_terms', 'warranty')
CLIENT_FIELDS = ('name', 'address', 'city', 'country', 'email', 'phone')
LINE_FIELDS = ('product_id', 'reference', 'designation', 'details', 'quantity', 'unit', 'unit_price')


def parse_quote_status(value) -> QuoteStatus:
    """Map a payload status to QuoteStatus. Unknown values are a ValidationError."""
    if isinstance(value, QuoteStatus):
        return value
    try:
        return QuoteStatus(str(value).strip().lower())
    except ValueError:
        allowed = ', '.join(status.value for status in QuoteStatus)
        raise ValidationError(f'Statut de devis inconnu : {value}. Valeurs possibles : {allowed}.')


def _lock_quote(session, quote_id: int) -> Quote:
    quote = session.query(Quote).filter(Quote.id == quote_id).with_for_update().first()
    if not quote:
        raise NotFoundError(f'Devis {quote_id} introuvable.')
    return quote


def _ensure_editable(quote: Quote) -> None:
    if not quote.is_editable:
        raise InvalidStateError(
            f'Le devis {quote.reference} est en statut "{quote.status}" : '
            f'seuls les devis brouillon ou envoyés sont modifiables.'
        )


def _validity_days(value, default: int) -> int:
    if value in (None, ''):
        return default
    try:
        days = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Durée de validité invalide : {value}')
    if days < 0:
        raise ValidationError('La durée de validité ne peut pas être négative.')
    return days


def _clean_text(value) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


def _client_changes(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Client fields present in an update payload (nested or flat form)."""
    if isinstance(payload.get('client'), dict):
        return {key: value for key, value in payload['client'].items() if key in CLIENT_FIELDS}
    return {
        field: payload[f'client_{field}'] for field in CLIENT_FIELDS if f'client_{field}' in payload
    }


def build_client(payload: Dict[str, Any], default_country: Optional[str] = None) -> ClientSnapshot:
    """Client snapshot from a creation payload; the name is mandatory."""
    client = ClientSnapshot.from_payload(payload, default_country)
    if not client.name:
        raise ValidationError('Le nom du client est requis.')
    return client


def merge_client(current: ClientSnapshot, payload: Dict[str, Any]) -> Optional[ClientSnapshot]:
    """Updated snapshot, or None when the payload carries no client change."""
    changes = _client_changes(payload)
    if not changes:
        return None
    client = current.merge(changes)
    if not client.name:
        raise ValidationError('Le nom du client est requis.')
    return client


def _refresh_total(quote: Quote) -> None:
    quote.total_ht = compute_total(quote.lines)


def _renumber(quote: Quote) -> None:
    for position, line in enumerate(sorted(quote.lines, key=lambda l: l.position), start=1):
        line.position = position


def _apply_status(quote: Quote, target: QuoteStatus) -> bool:
    """Move the quote to ``target`` following QUOTE_STATUS_TRANSITIONS."""
    current = quote.status_enum
    if target is current:
        return False
    if target not in QUOTE_STATUS_TRANSITIONS[current]:
        raise InvalidStateError(
            f'Le devis {quote.reference} est clôturé ({current.value}) : '
            f'passage à "{target.value}" impossible.'
        )
    quote.status = target.value
    return True


def _find_line(quote: Quote, line_id: int) -> QuoteLine:
    for line in quote.lines:
        if line.id == line_id:
            return line
    raise NotFoundError(f'Ligne {line_id} introuvable sur le devis {quote.reference}.')


def _storage_failure(session, e: SQLAlchemyError, action: str):
    session.rollback()
    logger.exception(f"Storage error while {action}")
    return TransactionFailedError(f'Erreur lors de l\'opération : {action}.')


def create_quote(payload: Dict[str, Any], session, created_by=None,
                 default_validity_days: int = 30, default_country: Optional[str] = None,
                 reference_attempts: int = DEFAULT_MAX_ATTEMPTS) -> Quote:
    """
    Create a draft quote with its lines.

    Args:
        payload: Dictionary with:
            - client: {name, address, city, country, email, phone} (name required)
            - lines: list of {designation, quantity, unit_price, reference?,
              details?, unit?, product_id?, position?} (at least one)
            - subject, delivery_delay, delivery_terms, warranty: optional text
            - validity_days: optional int
            - issue_date: optional YYYY-MM-DD (defaults to today)
        session: SQLAlchemy session
        created_by: caller identity

    Returns:
        The persisted Quote

    Raises:
        ValidationError: invalid client or lines (nothing is written)
        ReferenceExhaustedError: no free reference
    """
    try:
        client = build_client(payload, default_country)
        lines = normalize_lines(payload.get('lines'))
        validity_days = _validity_days(payload.get('validity_days'), default_validity_days)
        try:
            issue_date = parse_iso_date(payload.get('issue_date'), 'date du devis') or date.today()
        except ValueError as e:
            raise ValidationError(str(e))

        def build(reference):
            quote = Quote(
                reference=reference,
                issue_date=issue_date,
                status=QuoteStatus.DRAFT.value,
                client=client,
                validity_days=validity_days,
                created_by=str(created_by) if created_by is not None else None,
            )
            for field in QUOTE_HEADER_FIELDS:
                setattr(quote, field, _clean_text(payload.get(field)))

            quote.lines = [QuoteLine(**values) for values in lines]
            _refresh_total(quote)
            return quote

        quote = save_with_reference(session, DocumentSeries.QUOTE, build, issue_date, reference_attempts)
        session.commit()

        logger.info(f"Quote {quote.reference} created (total_ht={quote.total_ht}, lines={len(lines)})")
        return quote
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'création du devis') from e


def update_quote(quote_id: int, payload: Dict[str, Any], session,
                 default_country: Optional[str] = None) -> Quote:
    """
    Update header fields, replace lines and/or change the status of a quote.

    Content changes (client, header, lines, validity) require a draft or
    sent quote. A ``status`` key is applied afterwards through the status
    machine. Derived values (total_ht, reference, invoice_id) are ignored.
    """
    try:
        quote = _lock_quote(session, quote_id)

        client = None
        if _client_changes(payload):
            client = merge_client(quote.client, payload)
        lines = normalize_lines(payload['lines']) if 'lines' in payload else None
        header_changes = {field: payload[field] for field in QUOTE_HEADER_FIELDS if field in payload}
        validity_days = (
            _validity_days(payload['validity_days'], quote.validity_days)
            if 'validity_days' in payload else None
        )
        target_status = parse_quote_status(payload['status']) if 'status' in payload else None

        if client is not None or lines is not None or header_changes or validity_days is not None:
            _ensure_editable(quote)
            if client is not None:
                quote.client = client
            for field, value in header_changes.items():
                setattr(quote, field, _clean_text(value))
            if validity_days is not None:
                quote.validity_days = validity_days
            if lines is not None:
                quote.lines = [QuoteLine(**values) for values in lines]
                _refresh_total(quote)

        if target_status is not None and _apply_status(quote, target_status):
            logger.info(f"Quote {quote.reference} moved to {target_status.value}")

        session.commit()
        return quote
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'mise à jour du devis') from e


def change_quote_status(quote_id: int, status, session) -> Quote:
    """Explicit status change (draft/sent -> any; accepted/refused/expired are final)."""
    try:
        target = parse_quote_status(status)
        quote = _lock_quote(session, quote_id)
        previous = quote.status
        if _apply_status(quote, target):
            logger.info(f"Quote {quote.reference}: {previous} -> {target.value}")
        session.commit()
        return quote
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'changement de statut du devis') from e


def add_quote_line(quote_id: int, line_data: Dict[str, Any], session) -> QuoteLine:
    """Insert a line (at ``position`` or at the end) and refresh total_ht."""
    try:
        quote = _lock_quote(session, quote_id)
        _ensure_editable(quote)

        last_position = len(quote.lines) + 1
        position = line_data.get('position')
        if position in (None, ''):
            position = last_position
        else:
            try:
                position = int(position)
            except (TypeError, ValueError):
                raise ValidationError(f'Position invalide : {position}')
            if position < 1:
                raise ValidationError('La position doit être supérieure ou égale à 1.')
            position = min(position, last_position)

        values = normalize_line(line_data, position)
        for line in quote.lines:
            if line.position >= position:
                line.position += 1

        line = QuoteLine(**values)
        quote.lines.append(line)
        _refresh_total(quote)

        session.commit()
        return line
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'ajout de ligne') from e


def update_quote_line(quote_id: int, line_id: int, line_data: Dict[str, Any], session) -> QuoteLine:
    """Edit one line (and optionally move it), then refresh total_ht."""
    try:
        quote = _lock_quote(session, quote_id)
        _ensure_editable(quote)
        line = _find_line(quote, line_id)

        merged = line.copy_values()
        merged.update({key: value for key, value in line_data.items() if key in LINE_FIELDS})
        values = normalize_line(merged, line.position)
        for key in LINE_FIELDS + ('amount',):
            setattr(line, key, values[key])

        if line_data.get('position') not in (None, ''):
            try:
                target = int(line_data['position'])
            except (TypeError, ValueError):
                raise ValidationError(f"Position invalide : {line_data['position']}")
            ordered = [other for other in sorted(quote.lines, key=lambda l: l.position) if other is not line]
            target = max(1, min(target, len(ordered) + 1))
            ordered.insert(target - 1, line)
            for position, other in enumerate(ordered, start=1):
                other.position = position

        _refresh_total(quote)
        session.commit()
        return line
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'modification de ligne') from e


def remove_quote_line(quote_id: int, line_id: int, session) -> Quote:
    """Remove a line, keep positions contiguous and refresh total_ht."""
    try:
        quote = _lock_quote(session, quote_id)
        _ensure_editable(quote)
        line = _find_line(quote, line_id)
        if len(quote.lines) == 1:
            raise ValidationError('Un devis doit conserver au moins une ligne.')

        quote.lines.remove(line)
        _renumber(quote)
        _refresh_total(quote)

        session.commit()
        return quote
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'suppression de ligne') from e


def delete_quote(quote_id: int, session) -> None:
    """
    Hard delete a quote and its lines, whatever its status.

    An invoice converted from it survives; only its quote_id is cleared.
    """
    try:
        quote = _lock_quote(session, quote_id)
        reference = quote.reference

        session.query(Invoice).filter(Invoice.quote_id == quote.id).update(
            {Invoice.quote_id: None}, synchronize_session=False
        )
        session.delete(quote)
        session.commit()

        logger.info(f"Quote {reference} deleted")
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'suppression du devis') from e


def get_quote(quote_id: int, session) -> Quote:
    quote = session.get(Quote, quote_id)
    if not quote:
        raise NotFoundError(f'Devis {quote_id} introuvable.')
    return quote


def list_quotes(session, status=None, search: Optional[str] = None) -> List[Quote]:
    """List quotes, most recent first, optionally filtered by status and text."""
    query = session.query(Quote)

    if status:
        query = query.filter(Quote.status == parse_quote_status(status).value)

    if search:
        pattern = f'%{search.strip()}%'
        query = query.filter(
            or_(
                Quote.reference.ilike(pattern),
                Quote.client_name.ilike(pattern),
                Quote.subject.ilike(pattern),
            )
        )

    return query.order_by(Quote.issue_date.desc(), Quote.id.desc()).all()


def create_quote_revision(quote_id: int, session, created_by=None) -> Quote:
    """
    Copy a quote into a new draft revision.

    The revision reference is the root quote reference plus the next
    letter (DEV-2610-K7QD-A, -B, ...). Works from any status, typically
    to rework a refused or expired quote.
    """
    try:
        source = _lock_quote(session, quote_id)
        root = source.parent or source

        try:
            letter = next_revision_letter(revision.revision_letter for revision in root.revisions)
        except ValueError as e:
            raise ValidationError(str(e))

        revision = Quote(
            reference=f'{root.reference}-{letter}',
            issue_date=date.today(),
            status=QuoteStatus.DRAFT.value,
            client=source.client,
            validity_days=source.validity_days,
            parent_quote_id=root.id,
            revision_letter=letter,
            created_by=str(created_by) if created_by is not None else None,
        )
        for field in QUOTE_HEADER_FIELDS:
            setattr(revision, field, getattr(source, field))
        revision.lines = [QuoteLine(**line.copy_values()) for line in source.lines]
        _refresh_total(revision)

        session.add(revision)
        session.commit()

        logger.info(f"Revision {revision.reference} created from quote {source.reference}")
        return revision
    except BackofficeError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        raise _storage_failure(session, e, 'création de la révision') from e


def list_quote_revisions(quote_id: int, session) -> List[Quote]:
    """Root quote followed by all its revisions, oldest first."""
    quote = get_quote(quote_id, session)
    root = quote.parent or quote
    return [root] + list(root.revisions)
