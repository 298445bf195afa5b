# tests/conftest.py

import os

# The engine in src.infrastructure.db.session is built at import time.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYMENT_GATEWAY"] = "simulated"
os.environ["GATEWAY_LATENCY_SECONDS"] = "0"

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from src.application.booking_service import BookingService
from src.application.payment_gateway import SimulatedPaymentGateway
from src.domain.payment import BillingAddress, BookingDraft, PaymentDetails
from src.infrastructure.db.models import Base, Route
from src.infrastructure.db.session import build_engine, build_session_factory, session_scope


FIXED_NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
ROUTE_ID = "route-1"


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def notify_booking_confirmed(self, booking_id):
        self.calls.append(("booking_confirmed", booking_id))

    def notify_payment_failed(self, booking_id, reason):
        self.calls.append(("payment_failed", booking_id, reason))

    def notify_refund_confirmed(self, booking_id, amount):
        self.calls.append(("refund_confirmed", booking_id, amount))

    def notify_refund_failed(self, booking_id, reason):
        self.calls.append(("refund_failed", booking_id, reason))


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'transport_booking.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def route(session_factory):
    with session_scope(session_factory) as db:
        route = Route(
            id=ROUTE_ID,
            name="Coastal Express",
            origin="Lisbon",
            destination="Porto",
            departure_time=FIXED_NOW,
            arrival_time=FIXED_NOW + timedelta(hours=3),
            capacity=40,
            base_price=Decimal("50.00"),
        )
        db.add(route)
    return route


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway(latency_seconds=0)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def booking_service(session_factory, gateway, notifier, clock, route):
    return BookingService(session_factory, gateway, notifier, clock=clock)


@pytest.fixture
def payment_details():
    return PaymentDetails(
        payment_method="creditCard",
        card_number="4111 1111 1111 1111",
        card_holder_name="Ana Silva",
        expiry_month=12,
        expiry_year=date.today().year + 2,
        cvv="123",
        customer_email="ana@example.com",
        billing_address=BillingAddress(
            address_line1="Rua Augusta 10",
            city="Lisbon",
            postal_code="1100-053",
            country="PT",
        ),
    )


@pytest.fixture
def make_draft():
    def _make(seat_number=12, days_ahead=10, user_id="user-1"):
        return BookingDraft(
            user_id=user_id,
            route_id=ROUTE_ID,
            travel_date=FIXED_NOW.date() + timedelta(days=days_ahead),
            seat_number=seat_number,
        )

    return _make


@pytest.fixture
def client(session_factory, gateway, route):
    from src.main import app
    from src.api.routes.routes import get_payment_gateway, get_session_factory

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()
