# src/infrastructure/repositories/booking_repository.py

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.orm import Session
from sqlalchemy import func, select, update

from src.infrastructure.db.models import Booking
from src.domain.state_machine import BookingStatus, PaymentStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_for_update(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_by_route(
        self,
        route_id: str,
        travel_date: date | None = None,
    ) -> list[Booking]:

        stmt = select(Booking).where(Booking.route_id == route_id)
        if travel_date is not None:
            stmt = stmt.where(Booking.travel_date == travel_date)
        stmt = stmt.order_by(Booking.travel_date, Booking.seat_number)
        return list(self.db.execute(stmt).scalars().all())

    def list_booked_on(self, day: date) -> list[Booking]:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        stmt = (
            select(Booking)
            .where(Booking.booked_at >= start, Booking.booked_at < start + timedelta(days=1))
            .order_by(Booking.booked_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count_by_payment_status(self, payment_status: PaymentStatus) -> int:
        stmt = (
            select(func.count())
            .select_from(Booking)
            .where(Booking.payment_status == payment_status)
        )
        return int(self.db.execute(stmt).scalar_one())

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
        payment_status: PaymentStatus,
        notes: str | None = None,
    ) -> None:

        booking.status = new_status
        booking.payment_status = payment_status
        if notes is not None:
            booking.notes = notes

    def claim_for_refund(self, booking_id: str) -> bool:
        """
        Conditional update PAID -> REFUND_PENDING on a CONFIRMED booking.
        Returns False when another request already claimed the booking.
        """
        result = self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status == BookingStatus.CONFIRMED,
                Booking.payment_status == PaymentStatus.PAID,
            )
            .values(payment_status=PaymentStatus.REFUND_PENDING)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
