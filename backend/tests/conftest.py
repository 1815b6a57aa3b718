"""
Pytest fixtures for Memimo CRM backend tests.

Provides test database setup, seeded staff accounts, customers and a test client.
"""

import httpx
import pytest

from memimo_crm import create_app
from memimo_crm.config import TestConfig
from memimo_crm.extensions import db
from memimo_crm.models import Customer, Product, ProductCategory
from memimo_crm.services.auth_service import create_default_roles, create_user
from memimo_crm.time_utils import utcnow


ADMIN_EMAIL = "admin@memimo.local"
ADMIN_PASSWORD = "admin123"
STAFF_EMAIL = "sofia@memimo.local"
STAFF_PASSWORD = "sofia123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def setup_roles(db_session):
    """Setup default roles."""
    create_default_roles()


@pytest.fixture(scope='function')
def admin_user(setup_roles):
    return create_user(ADMIN_EMAIL, ADMIN_PASSWORD, "Ana", "Quispe", role_name="admin")


@pytest.fixture(scope='function')
def staff_user(setup_roles):
    return create_user(STAFF_EMAIL, STAFF_PASSWORD, "Sofía", "Huamán", role_name="standard")


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, ADMIN_EMAIL, ADMIN_PASSWORD))


@pytest.fixture(scope='function')
def staff_headers(client, staff_user):
    return auth_headers(get_auth_token(client, STAFF_EMAIL, STAFF_PASSWORD))


@pytest.fixture(scope='function')
def customers(db_session):
    """Three customers; the last one has no email address."""
    rows = [
        Customer(first_name="Lucía", last_name="Rojas", national_id="45879632",
                 phone="964123456", email="lucia@example.com", registered_at=utcnow()),
        Customer(first_name="Diego", last_name="Paredes", national_id="70214589",
                 phone="987654321", email="diego@example.com", registered_at=utcnow()),
        Customer(first_name="Rosa", last_name="Mendoza", phone="912345678", registered_at=utcnow()),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def category(db_session):
    c = ProductCategory(name="Helados", is_active=True)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def products(db_session, category):
    rows = [
        Product(name="Helado de lúcuma", price_cents=850, category_id=category.id,
                is_available=True, is_addon=False, created_at=utcnow()),
        Product(name="Chispas de chocolate", price_cents=150, category_id=category.id,
                is_available=True, is_addon=True, created_at=utcnow()),
        Product(name="Paleta de maracuyá", price_cents=300, category_id=category.id,
                is_available=False, is_addon=False, created_at=utcnow()),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it answered."""

    def __init__(self, handler):
        self.requests = []

        def _record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture(scope='function')
def mock_http(app, monkeypatch):
    """
    Route outbound channel calls through a MockTransport.

    Usage: transport = mock_http(handler); transport.requests lists the calls.
    """
    def install(handler):
        transport = RecordingTransport(handler)
        http_client = httpx.Client(transport=transport)
        monkeypatch.setitem(app.extensions, "campaign_http_client", http_client)
        return transport

    return install


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
