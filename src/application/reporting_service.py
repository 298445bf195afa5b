from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import sessionmaker

from src.domain.exceptions import BookingNotFoundError
from src.domain.pricing import round_money
from src.domain.state_machine import PaymentStatus
from src.infrastructure.db.models import Booking, PaymentRecordStatus
from src.infrastructure.db.session import session_scope
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.payment_repository import PaymentRepository
from src.infrastructure.repositories.route_repository import RouteRepository
from src.infrastructure.repositories.seat_repository import SeatRepository


@dataclass(frozen=True)
class RevenueSummary:
    route_id: str
    gross: Decimal
    refunded: Decimal
    net: Decimal
    paid_bookings: int


@dataclass(frozen=True)
class DailyReport:
    day: date
    bookings: list[Booking] = field(default_factory=list)

    @property
    def total_amount(self) -> Decimal:
        return round_money(sum((b.payment_amount for b in self.bookings), Decimal("0")))


class ReportingService:
    """Read-only projections over bookings and payments."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_booking(self, booking_id: str) -> Booking:
        with session_scope(self.session_factory) as db:
            booking = BookingRepository(db).get_by_id(booking_id)
            if not booking:
                raise BookingNotFoundError(booking_id)
            return booking

    def list_bookings_by_route(
        self,
        route_id: str,
        travel_date: date | None = None,
    ) -> list[Booking]:
        with session_scope(self.session_factory) as db:
            return BookingRepository(db).list_by_route(route_id, travel_date)

    def count_bookings(self, payment_status: PaymentStatus = PaymentStatus.PAID) -> int:
        with session_scope(self.session_factory) as db:
            return BookingRepository(db).count_by_payment_status(payment_status)

    def is_seat_taken(self, route_id: str, travel_date: date, seat_number: int) -> bool:
        with session_scope(self.session_factory) as db:
            RouteRepository(db).require(route_id)
            return SeatRepository(db).is_seat_taken(route_id, travel_date, seat_number)

    def route_revenue(
        self,
        route_id: str,
        travel_date: date | None = None,
    ) -> RevenueSummary:
        """
        Gross is the sum of completed charges (fees excluded), refunded
        the sum of refund rows as a positive number.
        """
        with session_scope(self.session_factory) as db:
            RouteRepository(db).require(route_id)
            totals = PaymentRepository(db).route_totals(route_id, travel_date)

        gross, paid_bookings = totals.get(PaymentRecordStatus.COMPLETED, (Decimal("0"), 0))
        refunded, _ = totals.get(PaymentRecordStatus.REFUNDED, (Decimal("0"), 0))
        refunded = -refunded

        return RevenueSummary(
            route_id=route_id,
            gross=round_money(gross),
            refunded=round_money(refunded),
            net=round_money(gross - refunded),
            paid_bookings=paid_bookings,
        )

    def daily_report(self, day: date) -> DailyReport:
        with session_scope(self.session_factory) as db:
            bookings = BookingRepository(db).list_booked_on(day)
        return DailyReport(day=day, bookings=bookings)
