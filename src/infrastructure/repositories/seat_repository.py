# src/infrastructure/repositories/seat_repository.py

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select, exists
from sqlalchemy.exc import IntegrityError

from src.infrastructure.db.models import Booking, Route
from src.domain.exceptions import RouteNotFoundError, SeatConflictError
from src.domain.state_machine import BookingStatus, PaymentStatus

logger = logging.getLogger(__name__)


def truncate_to_day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


class SeatRepository:
    """
    Seat availability guard.

    A seat is taken when a booking for the same route, travel day and
    seat number exists in any status other than CANCELLED. The partial
    unique index ``uq_active_seat_reservation`` makes the insert itself
    the compare-and-set, so two transactions can never both hold a seat.
    """

    def __init__(self, db: Session):
        self.db = db

    def lock_route(self, route_id: str) -> Route:
        """
        SELECT ... FOR UPDATE
        Serializes reservations on the same route where the store supports it.
        """

        stmt = (
            select(Route)
            .where(Route.id == route_id)
            .with_for_update()
        )

        route = self.db.execute(stmt).scalar_one_or_none()

        if not route:
            raise RouteNotFoundError(route_id)

        return route

    def is_seat_taken(
        self,
        route_id: str,
        travel_date,
        seat_number: int,
    ) -> bool:
        stmt = select(
            exists().where(
                Booking.route_id == route_id,
                Booking.travel_date == truncate_to_day(travel_date),
                Booking.seat_number == seat_number,
                Booking.status != BookingStatus.CANCELLED,
            )
        )
        return bool(self.db.execute(stmt).scalar())

    def reserve_seat(
        self,
        user_id: str,
        route_id: str,
        travel_date,
        seat_number: int,
        payment_amount: Decimal,
        payment_method: str,
        booked_at: datetime,
        notes: str | None = None,
        discount_code: str | None = None,
    ) -> Booking:
        """
        Check and insert a PENDING booking as one unit.

        Must run inside the caller's transaction; the caller commits.
        Raises SeatConflictError when the seat is already held, including
        when a concurrent transaction wins the race on the unique index
        (the session is rolled back in that case).
        """
        day = truncate_to_day(travel_date)
        self.lock_route(route_id)

        if self.is_seat_taken(route_id, day, seat_number):
            raise SeatConflictError(route_id, day, seat_number)

        booking = Booking(
            user_id=user_id,
            route_id=route_id,
            travel_date=day,
            seat_number=seat_number,
            payment_amount=payment_amount,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            status=BookingStatus.PENDING,
            booked_at=booked_at,
            notes=notes,
            discount_code=discount_code,
        )

        self.db.add(booking)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info(
                "Seat reservation lost the race. route_id=%s travel_date=%s seat=%s",
                route_id,
                day,
                seat_number,
            )
            raise SeatConflictError(route_id, day, seat_number) from exc

        return booking
