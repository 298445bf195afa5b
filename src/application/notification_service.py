"""
Customer notifications through the transactional outbox.

Messages are rendered here and stored as outbox events; delivery by
email or SMS is done by whoever drains the outbox.
"""

import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined
from sqlalchemy.orm import Session, sessionmaker

from src.domain.exceptions import BookingNotFoundError
from src.infrastructure.db.models import Booking
from src.infrastructure.db.session import session_scope
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.outbox_repository import OutboxRepository
from src.infrastructure.repositories.preference_repository import PreferenceRepository
from src.infrastructure.repositories.route_repository import RouteRepository

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "notifications"

BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
PAYMENT_FAILED = "PAYMENT_FAILED"
REFUND_CONFIRMED = "REFUND_CONFIRMED"
REFUND_FAILED = "REFUND_FAILED"


class OutboxNotificationService:

    def __init__(
        self,
        session_factory: sessionmaker,
        admin_user_ids: frozenset[str] = frozenset(),
        currency: str = "USD",
    ):
        self.session_factory = session_factory
        self.admin_user_ids = frozenset(admin_user_ids)
        self.currency = currency
        self._templates = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def notify_booking_confirmed(self, booking_id: str) -> bool:
        return self._notify(
            booking_id,
            BOOKING_CONFIRMED,
            "booking_confirmed.txt",
            respect_preferences=True,
        )

    def notify_payment_failed(self, booking_id: str, reason: str) -> bool:
        return self._notify(
            booking_id,
            PAYMENT_FAILED,
            "payment_failed.txt",
            reason=reason,
        )

    def notify_refund_confirmed(self, booking_id: str, amount) -> bool:
        return self._notify(
            booking_id,
            REFUND_CONFIRMED,
            "refund_confirmed.txt",
            refund_amount=amount,
        )

    def notify_refund_failed(self, booking_id: str, reason: str) -> bool:
        return self._notify(
            booking_id,
            REFUND_FAILED,
            "refund_failed.txt",
            reason=reason,
        )

    def _wants_booking_confirmations(self, db: Session, user_id: str) -> bool:
        # Admin accounts have no stored preferences; they get the defaults.
        if user_id in self.admin_user_ids:
            return True

        preference = PreferenceRepository(db).get_for_user(user_id)
        if preference is None:
            return True
        return preference.receive_booking_confirmations

    def _context(self, db: Session, booking: Booking, **extra) -> dict:
        route = RouteRepository(db).get_by_id(booking.route_id)
        user = PreferenceRepository(db).get_user(booking.user_id)

        context = {
            "booking_id": booking.id,
            "username": user.username if user else booking.user_id,
            "route_name": route.name if route else booking.route_id,
            "travel_date": booking.travel_date.isoformat(),
            "seat_number": booking.seat_number,
            "amount": extra.pop("refund_amount", booking.payment_amount),
            "currency": self.currency,
            "reason": "",
        }
        context.update(extra)
        return context

    def _notify(
        self,
        booking_id: str,
        event_type: str,
        template_name: str,
        respect_preferences: bool = False,
        **extra,
    ) -> bool:

        with session_scope(self.session_factory) as db:
            booking = BookingRepository(db).get_by_id(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)

            if respect_preferences and not self._wants_booking_confirmations(db, booking.user_id):
                logger.info(
                    "Notification skipped by user preference. booking_id=%s type=%s",
                    booking_id,
                    event_type,
                )
                return False

            context = self._context(db, booking, **extra)
            message = self._templates.get_template(template_name).render(**context)

            outbox = OutboxRepository(db)
            outbox.add_notification_log(
                booking_id=booking.id,
                user_id=booking.user_id,
                notification_type=event_type,
                message=message,
            )
            outbox.add_event(
                aggregate_type="booking",
                aggregate_id=booking.id,
                event_type=event_type,
                payload={
                    "booking_id": booking.id,
                    "user_id": booking.user_id,
                    "amount": str(context["amount"]),
                    "currency": self.currency,
                    "message": message,
                },
                dedupe_key=f"booking:{booking.id}:{event_type.lower()}",
            )

        logger.info("Notification queued. booking_id=%s type=%s", booking_id, event_type)
        return True
