"""Reference generator for quote, invoice and payment numbers."""
import enum
import logging
import secrets
from datetime import date
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError

from backoffice.exceptions import ReferenceExhaustedError
from backoffice.models import Quote, Invoice, Payment

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
SUFFIX_LENGTH = 4
# No 0/O or 1/I, so references can be read over the phone
SUFFIX_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'


class DocumentSeries(enum.Enum):
    """Numbering series; the value is the reference prefix."""
    QUOTE = "DEV"
    INVOICE = "FAC"
    PAYMENT = "PAY"


SERIES_MODELS = {
    DocumentSeries.QUOTE: Quote,
    DocumentSeries.INVOICE: Invoice,
    DocumentSeries.PAYMENT: Payment,
}


def random_suffix(length: int = SUFFIX_LENGTH) -> str:
    return ''.join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def format_reference(series: DocumentSeries, issue_date: date, suffix: str) -> str:
    """{PREFIX}-{YYMM}-{SUFFIX}, e.g. FAC-2610-K7QD."""
    return f"{series.value}-{issue_date.strftime('%y%m')}-{suffix}"


def reference_exists(session, series: DocumentSeries, reference: str) -> bool:
    model = SERIES_MODELS[series]
    return session.query(model.id).filter(model.reference == reference).first() is not None


def next_reference(session, series: DocumentSeries, issue_date: date = None,
                   max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> str:
    """
    Generate a reference unused in the series table.

    A candidate that already exists is redrawn, up to ``max_attempts``
    times. The unique constraint on the reference column remains the
    final guarantee against concurrent creators.

    Raises:
        ReferenceExhaustedError: every attempt collided.
    """
    issue_date = issue_date or date.today()
    for attempt in range(1, max_attempts + 1):
        candidate = format_reference(series, issue_date, random_suffix())
        if not reference_exists(session, series, candidate):
            return candidate
        logger.warning(f"Reference collision on {candidate} (attempt {attempt}/{max_attempts})")

    logger.error(f"Reference generation exhausted for series {series.value}")
    raise ReferenceExhaustedError(series.value, max_attempts)


def is_reference_conflict(error: IntegrityError) -> bool:
    """True when the integrity error comes from the unique reference column."""
    message = str(error.orig).lower()
    # SQLite: "UNIQUE constraint failed: quote.reference"; PostgreSQL: "Key (reference)=(...)"
    return '.reference' in message or '(reference)' in message


def save_with_reference(session, series: DocumentSeries, build: Callable[[str], Any],
                        issue_date: date = None, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
    """
    Insert a new document under a fresh reference.

    ``build(reference)`` returns the unsaved document (with its children).
    Each attempt is flushed inside a SAVEPOINT; when a concurrent creator
    took the same reference first, the unique constraint rejects the
    insert, the savepoint is rolled back and a new document is built under
    a new suffix. The caller's transaction is left open.

    Raises:
        ReferenceExhaustedError: every attempt collided.
    """
    issue_date = issue_date or date.today()
    for attempt in range(1, max_attempts + 1):
        reference = next_reference(session, series, issue_date, max_attempts)
        document = build(reference)
        try:
            with session.begin_nested():
                session.add(document)
                session.flush()
        except IntegrityError as e:
            if not is_reference_conflict(e):
                raise
            logger.warning(f"Reference {reference} taken concurrently (attempt {attempt}/{max_attempts})")
            continue
        return document

    logger.error(f"Reference generation exhausted for series {series.value}")
    raise ReferenceExhaustedError(series.value, max_attempts)


def next_revision_letter(existing_letters) -> str:
    """Next revision letter after the highest one in use ('A' when none)."""
    letters = sorted(letter for letter in existing_letters if letter)
    if not letters:
        return 'A'
    last = letters[-1]
    if last == 'Z':
        raise ValueError('Nombre maximal de révisions atteint.')
    return chr(ord(last) + 1)
