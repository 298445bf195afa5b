# tests/integration/test_notifications.py

import json
from decimal import Decimal

import pytest
from sqlalchemy import select

from src.application.booking_service import BookingService
from src.application.notification_service import OutboxNotificationService
from src.domain.exceptions import BookingNotFoundError
from src.infrastructure.db.models import NotificationLog, OutboxEvent, User, UserPreference
from src.infrastructure.db.session import session_scope


@pytest.fixture
def outbox_notifier(session_factory):
    return OutboxNotificationService(session_factory, admin_user_ids={"admin-1"}, currency="EUR")


@pytest.fixture
def service(session_factory, gateway, outbox_notifier, clock, route):
    return BookingService(session_factory, gateway, outbox_notifier, clock=clock)


def _rows(session_factory, model):
    with session_scope(session_factory) as db:
        return list(db.execute(select(model)).scalars().all())


def test_confirmation_is_written_to_outbox(service, make_draft, payment_details, session_factory):
    with session_scope(session_factory) as db:
        db.add(User(id="user-1", username="ana", email="ana@example.com"))

    booking = service.create_booking_with_payment(make_draft(), Decimal("50.00"), payment_details)

    [log] = _rows(session_factory, NotificationLog)
    assert log.type == "BOOKING_CONFIRMED"
    assert log.booking_id == booking.id
    assert "Hello ana" in log.message
    assert "Coastal Express" in log.message
    assert "Seat: 12" in log.message

    [event] = _rows(session_factory, OutboxEvent)
    payload = json.loads(event.payload)
    assert event.dedupe_key == f"booking:{booking.id}:booking_confirmed"
    assert event.status == "PENDING"
    assert payload["currency"] == "EUR"
    assert payload["amount"] == "50.00"


def test_opted_out_user_gets_no_confirmation(service, make_draft, payment_details, session_factory):
    with session_scope(session_factory) as db:
        db.add(UserPreference(user_id="user-1", receive_booking_confirmations=False))

    service.create_booking_with_payment(make_draft(), Decimal("50.00"), payment_details)

    assert _rows(session_factory, NotificationLog) == []
    assert _rows(session_factory, OutboxEvent) == []


def test_admin_skips_preference_lookup(service, make_draft, payment_details, session_factory):
    with session_scope(session_factory) as db:
        db.add(UserPreference(user_id="admin-1", receive_booking_confirmations=False))

    service.create_booking_with_payment(make_draft(user_id="admin-1"), Decimal("50.00"), payment_details)

    assert [log.type for log in _rows(session_factory, NotificationLog)] == ["BOOKING_CONFIRMED"]


def test_refund_notice_ignores_preferences(service, make_draft, payment_details, session_factory):
    with session_scope(session_factory) as db:
        db.add(UserPreference(user_id="user-1", receive_booking_confirmations=False))

    booking = service.create_booking_with_payment(
        make_draft(days_ahead=5),
        Decimal("50.00"),
        payment_details,
    )
    service.cancel_booking_with_refund(booking.id)

    [log] = _rows(session_factory, NotificationLog)
    assert log.type == "REFUND_CONFIRMED"
    assert "25.00 EUR" in log.message


def test_duplicate_event_is_not_queued_twice(service, outbox_notifier, make_draft, payment_details, session_factory):
    booking = service.create_booking_with_payment(make_draft(), Decimal("50.00"), payment_details)

    outbox_notifier.notify_booking_confirmed(booking.id)

    assert len(_rows(session_factory, OutboxEvent)) == 1
    assert len(_rows(session_factory, NotificationLog)) == 2


def test_unknown_booking(outbox_notifier):
    with pytest.raises(BookingNotFoundError):
        outbox_notifier.notify_payment_failed("missing", "declined")
