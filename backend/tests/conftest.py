"""
Pytest fixtures for Recargas backend tests.

Provides test database setup, seller/customer/app fixtures, an authenticated
test client and mock transports for the WhatsApp and Mercado Pago adapters.
"""

import json
from urllib.parse import parse_qs

import httpx
import pytest

from recargas import create_app
from recargas.extensions import db
from recargas.models import App, Customer, Seller
from recargas.services import code_inventory_service, notification_service, payment_service, session_service
from recargas.services.auth_service import hash_password


TEST_PASSWORD = "Senha12345"

WHATSAPP_URL = "https://whatsapp.test/api/send"
MERCADOPAGO_URL = "https://mercadopago.test"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'NOTIFICATIONS_ASYNC': False,
        'WHATSAPP_API_URL': WHATSAPP_URL,
        'MERCADOPAGO_API_URL': MERCADOPAGO_URL,
        'CODE_INGEST_CHUNK_SIZE': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_seller(db_session, name, email, **extra):
    seller = Seller(
        name=name,
        email=email,
        password_hash=hash_password(TEST_PASSWORD),
        is_active=True,
        **extra,
    )
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def seller_a(db_session):
    """Seller A, with WhatsApp and Mercado Pago configured."""
    return _make_seller(
        db_session,
        "Loja A",
        "loja_a@example.com",
        whatsapp_secret="secret-a",
        whatsapp_account="account-a",
        mercadopago_token="TEST-TOKEN-A",
    )


@pytest.fixture(scope='function')
def seller_b(db_session):
    """Seller B, no integrations."""
    return _make_seller(db_session, "Loja B", "loja_b@example.com")


@pytest.fixture(scope='function')
def customer_a(db_session, seller_a):
    customer = Customer(seller_id=seller_a.id, name="Maria", email="maria@example.com", phone="(11) 98888-7777")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_b(db_session, seller_b):
    customer = Customer(seller_id=seller_b.id, name="João", phone="21977776666")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_app(db_session):
    """Factory: app for a seller, optionally stocked with codes."""
    def _make(seller, name="Netflix", price_cents=2500, codes=()):
        app_row = App(seller_id=seller.id, name=name, price_cents=price_cents, codes_available=0)
        db_session.add(app_row)
        db_session.commit()
        if codes:
            code_inventory_service.add_codes(seller.id, app_row.id, list(codes))
        return app_row
    return _make


@pytest.fixture(scope='function')
def auth_headers(db_session):
    """Factory: Authorization header for a seller."""
    def _headers(seller):
        _, token = session_service.create_session(seller.id)
        return {"Authorization": f"Bearer {token}"}
    return _headers


class GatewayRecorder:
    """Collects requests seen by a mock transport and answers with a fixed response."""

    def __init__(self, status_code=200, body=None, exc=None):
        self.status_code = status_code
        self.body = body if body is not None else {"success": True}
        self.exc = exc
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, text=self.body)

    def client_factory(self, timeout):
        return httpx.Client(timeout=timeout, transport=httpx.MockTransport(self.handler))

    def form(self, index=-1) -> dict:
        parsed = parse_qs(self.requests[index].content.decode("utf-8"))
        return {k: v[0] for k, v in parsed.items()}

    def json(self, index=-1) -> dict:
        return json.loads(self.requests[index].content)


@pytest.fixture(scope='function', autouse=True)
def whatsapp(monkeypatch):
    """Mock WhatsApp gateway (always on); replace .body/.status_code/.exc to change behavior."""
    recorder = GatewayRecorder()
    monkeypatch.setattr(notification_service, "_make_client", recorder.client_factory)
    return recorder


@pytest.fixture(scope='function')
def mercadopago(monkeypatch):
    """Mock Mercado Pago API answering with a pending PIX payment."""
    recorder = GatewayRecorder(
        status_code=201,
        body={
            "id": 123456789,
            "status": "pending",
            "point_of_interaction": {
                "transaction_data": {"qr_code_base64": "iVBORw0KGgoPIX", "qr_code": "00020126PIX"},
            },
        },
    )
    monkeypatch.setattr(payment_service, "_make_client", recorder.client_factory)
    return recorder
