# src/infrastructure/repositories/payment_repository.py

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from src.infrastructure.db.models import Booking, Payment, PaymentRecordStatus


class PaymentRepository:
    """
    Append-only access to payment records.
    Charges are COMPLETED rows; refunds are REFUNDED rows with negative
    amounts that point back at the charge they reverse.
    """

    def __init__(self, db: Session):
        self.db = db

    def add_charge(
        self,
        booking_id: str,
        amount: Decimal,
        processing_fee: Decimal,
        payment_method: str,
        transaction_id: str,
        authorization_code: str | None,
        paid_at: datetime,
    ) -> Payment:

        payment = Payment(
            booking_id=booking_id,
            amount=amount,
            processing_fee=processing_fee,
            total_amount=amount + processing_fee,
            payment_method=payment_method,
            transaction_id=transaction_id,
            authorization_code=authorization_code,
            paid_at=paid_at,
            status=PaymentRecordStatus.COMPLETED,
        )
        self.db.add(payment)
        self.db.flush()
        return payment

    def add_refund(
        self,
        original: Payment,
        refund_amount: Decimal,
        transaction_id: str,
        refunded_at: datetime,
    ) -> Payment:

        refund = Payment(
            booking_id=original.booking_id,
            amount=-refund_amount,
            processing_fee=Decimal("0.00"),
            total_amount=-refund_amount,
            payment_method=original.payment_method,
            transaction_id=transaction_id,
            paid_at=refunded_at,
            status=PaymentRecordStatus.REFUNDED,
            related_payment_id=original.id,
        )
        self.db.add(refund)
        self.db.flush()
        return refund

    def get_completed_for_booking(self, booking_id: str) -> Payment | None:
        stmt = select(Payment).where(
            Payment.booking_id == booking_id,
            Payment.status == PaymentRecordStatus.COMPLETED,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def route_totals(
        self,
        route_id: str,
        travel_date: date | None = None,
    ) -> dict[PaymentRecordStatus, tuple[Decimal, int]]:
        """Sum of `amount` and row count per payment status for a route."""

        stmt = (
            select(Payment.status, func.sum(Payment.amount), func.count(Payment.id))
            .join(Booking, Booking.id == Payment.booking_id)
            .where(Booking.route_id == route_id)
            .group_by(Payment.status)
        )
        if travel_date is not None:
            stmt = stmt.where(Booking.travel_date == travel_date)

        totals = {}
        for record_status, total, count in self.db.execute(stmt).all():
            totals[record_status] = (Decimal(total or 0), int(count))
        return totals
