import pytest
from backoffice import create_app
from backoffice.database import get_session, create_tables, drop_tables
from backoffice.models import QuoteStatus
from backoffice.services.quote_service import create_quote, change_quote_status
from backoffice.services.conversion_service import convert_quote_to_invoice


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    from config import TestingConfig
    app = create_app(TestingConfig)
    return app


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema and database session for each test."""
    create_tables()
    db_session = get_session()
    yield db_session
    db_session.remove()
    drop_tables()


@pytest.fixture(scope='function')
def client(app, session):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def auth_headers():
    """Caller identity for API requests."""
    return {'X-User-Id': 'u-42'}


def make_quote_payload(**overrides):
    payload = {
        'client': {
            'name': 'SOTRA Industries',
            'address': 'Rue des Jardins 12',
            'city': 'Abidjan',
            'email': 'achats@sotra.example',
            'phone': '+225 07 00 00 00',
        },
        'subject': 'Fourniture de matériel de bureau',
        'delivery_delay': '2 semaines',
        'warranty': '12 mois',
        'lines': [
            {'designation': 'Chaise ergonomique', 'quantity': 2, 'unit_price': 50000, 'unit': 'u'},
            {'designation': 'Bureau 160 cm', 'quantity': 1, 'unit_price': 100000, 'unit': 'u'},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def quote_payload():
    """Quote payload worth 200 000 HT."""
    return make_quote_payload()


@pytest.fixture
def draft_quote(session, quote_payload):
    """Draft quote, total_ht = 200 000."""
    return create_quote(quote_payload, session, created_by='u-1')


@pytest.fixture
def accepted_quote(session, draft_quote):
    return change_quote_status(draft_quote.id, QuoteStatus.ACCEPTED.value, session)


@pytest.fixture
def invoice(session, accepted_quote):
    """Invoice converted from the accepted quote: 200 000 HT, 236 000 TTC."""
    invoice, _ = convert_quote_to_invoice(accepted_quote.id, session, tva_rate=18, due_days=30)
    return invoice
