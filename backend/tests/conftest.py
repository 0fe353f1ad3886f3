"""
Pytest configuration and fixtures for backend tests.
"""

import os
import tempfile
import uuid

# Settings are read at import time, so the environment must be ready before
# anything from the application is imported.
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite:///{os.path.join(tempfile.gettempdir(), f'payments-test-{uuid.uuid4().hex}.db')}",
)
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("NOTIFICATION_SWEEP_ENABLED", "false")
os.environ.setdefault("ADYEN_NOTIFY_USER", "adyen-notify")
os.environ.setdefault("ADYEN_NOTIFY_PASSWORD", "notify-secret")
os.environ.setdefault("ADYEN_SHARED_SECRET", "hpp-shared-secret")
os.environ.setdefault("ADYEN_SKIN_CODE", "Nl1stkQ1")
os.environ.setdefault("ADYEN_MERCHANT_ACCOUNT", "TestMerchant")
os.environ.setdefault("BASE_URL", "https://shop.example.com")

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from payments_api.main import app
from payments_api.core.dependencies import get_gateway, get_merchant_signature, get_order_mutex
from payments_api.models import Base, Order, Payment, PaymentSource
from payments_api.services.payments.gateway import AdyenClient, GatewayResponse
from payments_api.services.payments.notification_store import NotificationStore
from payments_api.services.payments.order_mutex import DatabaseOrderMutex
from shared.config.constants import OrderState, PaymentMethodType, PaymentState
from shared.infrastructure.db import build_engine, get_db
from shared.security.request_signing import MerchantSignature
from shared.utils.schemas import NotificationInput


NOTIFY_AUTH = ("adyen-notify", "notify-secret")
SHARED_SECRET = "hpp-shared-secret"


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    # Create all tables
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Session factory bound to the same in-memory database as db_session."""
    return TestingSessionLocal


@pytest.fixture
def order_mutex(session_factory):
    """Database mutex on the in-memory test database with a short timeout."""
    return DatabaseOrderMutex(session_factory, timeout=0.5, poll_interval=0.01)


@pytest.fixture
def file_session_factory(tmp_path):
    """
    Session factory on a file-backed SQLite database.

    Thread tests need real separate connections, which the in-memory
    StaticPool engine cannot give.
    """
    file_engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    Base.metadata.create_all(bind=file_engine)
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)
    yield factory
    file_engine.dispose()


# =============================================================================
# Gateway
# =============================================================================


def modification_ack(acknowledgement: str, psp_reference: str = "8815000000000001") -> GatewayResponse:
    params = {"pspReference": psp_reference, "response": acknowledgement}
    return GatewayResponse(
        success=True,
        message=f'{{\n  "pspReference": "{psp_reference}",\n  "response": "{acknowledgement}"\n}}',
        params=params,
        psp_reference=psp_reference,
    )


@pytest.fixture
def gateway():
    """Gateway client double that acknowledges every request."""
    client = MagicMock(spec=AdyenClient)
    client.capture_payment.return_value = modification_ack("[capture-received]")
    client.cancel_payment.return_value = modification_ack("[cancel-received]")
    client.credit_payment.return_value = modification_ack("[refund-received]")
    client.reauthorize_recurring_payment.return_value = GatewayResponse(
        success=True,
        message="authorised",
        params={"resultCode": "Authorised", "pspReference": "8825000000000002"},
        psp_reference="8825000000000002",
        result_code="Authorised",
    )
    client.list_stored_payment_methods.return_value = GatewayResponse(
        success=True, message="{}", params={}
    )
    return client


@pytest.fixture
def signer():
    return MerchantSignature(SHARED_SECRET)


@pytest.fixture
def notify_auth():
    """Basic auth credentials the provider posts notifications with."""
    return NOTIFY_AUTH


# =============================================================================
# Application
# =============================================================================


@pytest.fixture(scope="function")
def client(db_session, order_mutex, gateway, signer):
    """
    Create a test client with database session, mutex and gateway overrides.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_order_mutex] = lambda: order_mutex
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_merchant_signature] = lambda: signer

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def make_order(db_session):
    """Factory for orders in the payment step."""
    def _make(number="R100", total_cents=2000, currency="EUR", shopper_reference=None, session=None):
        db = session or db_session
        order = Order(
            number=number,
            state=OrderState.PAYMENT,
            currency=currency,
            total_cents=total_cents,
            shopper_reference=shopper_reference,
        )
        db.add(order)
        db.commit()
        return order

    return _make


@pytest.fixture
def make_payment(db_session):
    """Factory for payments on an existing order."""
    def _make(
        order,
        state=PaymentState.CHECKOUT,
        method_type=PaymentMethodType.HOSTED_PAGE,
        response_code=None,
        amount_cents=None,
        source=None,
        session=None,
    ):
        db = session or db_session
        payment = Payment(
            order_id=order.id,
            method_type=method_type,
            state=state,
            amount_cents=order.total_cents if amount_cents is None else amount_cents,
            currency=order.currency,
            response_code=response_code,
            source=source,
        )
        db.add(payment)
        db.commit()
        return payment

    return _make


@pytest.fixture
def stored_card_source():
    return PaymentSource(
        payment_method="scheme",
        stored_card_reference="8415698462516992",
        card_type="visa",
        last_digits="1111",
    )


def notification_fields(**overrides):
    """Form fields of an AUTHORISATION notification, as the provider posts them."""
    fields = {
        "pspReference": "790",
        "originalReference": "",
        "merchantReference": "R100",
        "eventCode": "AUTHORISATION",
        "success": "true",
        "value": "2000",
        "currency": "EUR",
        "eventDate": "2024-01-15T10:00:00+01:00",
        "paymentMethod": "visa",
        "merchantAccountCode": "TestMerchant",
        "reason": "",
        "operations": "CANCEL,CAPTURE,REFUND",
        "live": "false",
        "additionalData.authCode": "58747",
    }
    fields.update(overrides)
    return fields


@pytest.fixture
def fields():
    return notification_fields


@pytest.fixture
def stored_notification(db_session):
    """Factory that stores a notification built from form field overrides."""
    def _store(**overrides):
        return NotificationStore(db_session).insert(
            NotificationInput.from_fields(notification_fields(**overrides))
        )

    return _store


@pytest.fixture
def redirect_params(signer):
    """Factory for redirect-return query parameters carrying a valid merchantSig."""
    def _params(**overrides):
        query = {
            "authResult": "AUTHORISED",
            "pspReference": "790",
            "merchantReference": "R100",
            "skinCode": "Nl1stkQ1",
            "merchantReturnData": "",
            "paymentMethod": "visa",
            "shopperLocale": "en_GB",
        }
        query.update(overrides)
        query["merchantSig"] = signer.sign(query)
        return query

    return _params
