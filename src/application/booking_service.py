import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from src.application.payment_gateway import PaymentGateway
from src.domain.exceptions import (
    BookingNotFoundError,
    GatewayDeclinedError,
    InvalidStateTransitionError,
    PaymentGatewayError,
    PaymentValidationError,
    RefundFailedError,
    TransportBookingError,
)
from src.domain.payment import BookingDraft, PaymentDetails
from src.domain.pricing import (
    PaymentMethod,
    apply_discount,
    compute_processing_fee,
    compute_refund_amount,
    compute_refund_percentage,
    days_until_travel,
    round_money,
)
from src.domain.state_machine import BookingStateMachine, BookingStatus, PaymentStatus
from src.infrastructure.db.models import Booking
from src.infrastructure.db.session import session_scope
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.discount_repository import DiscountRepository
from src.infrastructure.repositories.payment_repository import PaymentRepository
from src.infrastructure.repositories.route_repository import RouteRepository
from src.infrastructure.repositories.seat_repository import SeatRepository, truncate_to_day

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "Cancelled by customer"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _append_note(existing: str | None, note: str) -> str:
    if not existing:
        return note
    return f"{existing}\n{note}"


class BookingService:
    """
    Application service coordinating the booking workflow.

    Every write runs in its own short transaction. The payment gateway
    is only ever called between transactions, so no row lock or seat
    hold is kept open while the processor is working.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        gateway: PaymentGateway,
        notifier=None,
        clock=_utcnow,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock

    # -----------------------------
    # Creation
    # -----------------------------
    def create_booking_with_payment(
        self,
        draft: BookingDraft,
        amount: Decimal,
        payment_details: PaymentDetails,
        discount_code: str | None = None,
    ) -> Booking:
        """
        Hold the seat, charge the customer and confirm the booking.

        Validation and configuration problems are raised before anything
        is written. A declined charge leaves the booking FAILED.
        """
        amount = self._validate_amount(amount)
        self.gateway.validate(payment_details)
        self.gateway.ensure_configured()

        booking = self.reserve_booking(
            draft,
            amount,
            payment_details.payment_method,
            discount_code=discount_code,
        )
        return self.pay_booking(booking.id, payment_details)

    def reserve_booking(
        self,
        draft: BookingDraft,
        amount: Decimal,
        payment_method: str,
        discount_code: str | None = None,
    ) -> Booking:

        amount = self._validate_amount(amount)
        method = PaymentMethod.parse(payment_method)
        if method is None:
            raise PaymentValidationError(f"Unsupported payment method: {payment_method}")
        if draft.seat_number <= 0:
            raise PaymentValidationError("Seat number must be positive")

        now = self.clock()
        travel_date = truncate_to_day(draft.travel_date)

        with session_scope(self.session_factory) as db:
            route = RouteRepository(db).require(draft.route_id)
            if draft.seat_number > route.capacity:
                raise PaymentValidationError(
                    f"Seat {draft.seat_number} does not exist on route {route.id} "
                    f"(capacity {route.capacity})"
                )

            if discount_code:
                percentage = DiscountRepository(db).get_active_percentage(
                    discount_code,
                    now.date(),
                )
                amount = apply_discount(amount, percentage)
                if amount <= 0:
                    raise PaymentValidationError("Discounted amount must be positive")

            booking = SeatRepository(db).reserve_seat(
                user_id=draft.user_id,
                route_id=route.id,
                travel_date=travel_date,
                seat_number=draft.seat_number,
                payment_amount=amount,
                payment_method=method.value,
                booked_at=now,
                notes=draft.notes,
                discount_code=discount_code,
            )

        logger.info(
            "Seat held. booking_id=%s route_id=%s travel_date=%s seat=%s amount=%s",
            booking.id,
            booking.route_id,
            booking.travel_date,
            booking.seat_number,
            booking.payment_amount,
        )
        return booking

    def pay_booking(
        self,
        booking_id: str,
        payment_details: PaymentDetails,
    ) -> Booking:
        """
        Charge a PENDING booking and confirm it.

        A transient gateway failure leaves the booking PENDING so the
        payment can be retried. The hold has no expiry and keeps the seat
        until it is paid or released with release_hold.
        """
        self.gateway.validate(payment_details)
        self.gateway.ensure_configured()

        with session_scope(self.session_factory) as db:
            booking = self._require_booking(BookingRepository(db), booking_id)
            BookingStateMachine.validate_transition(booking.status, BookingStatus.CONFIRMED)
            amount = booking.payment_amount

        method = PaymentMethod.parse(payment_details.payment_method)
        fee = compute_processing_fee(amount, method)

        try:
            result = self.gateway.charge(payment_details, amount + fee, reference=booking_id)
        except GatewayDeclinedError as exc:
            logger.info("Charge declined. booking_id=%s reason=%s", booking_id, exc.reason)
            self._mark_failed(booking_id, exc.reason)
            self._safe_notify("notify_payment_failed", booking_id, exc.reason)
            raise GatewayDeclinedError(exc.reason, booking_id=booking_id) from exc
        except PaymentGatewayError as exc:
            logger.warning(
                "Charge not completed, booking stays PENDING. booking_id=%s error=%s",
                booking_id,
                exc,
            )
            raise type(exc)(exc.reason, booking_id=booking_id) from exc

        try:
            with session_scope(self.session_factory) as db:
                repo = BookingRepository(db)
                booking = self._require_booking(repo, booking_id, for_update=True)
                self._transition(repo, booking, BookingStatus.CONFIRMED, PaymentStatus.PAID)
                booking.payment_method = method.value
                PaymentRepository(db).add_charge(
                    booking_id=booking.id,
                    amount=amount,
                    processing_fee=fee,
                    payment_method=method.value,
                    transaction_id=result.transaction_id,
                    authorization_code=result.authorization_code,
                    paid_at=result.processed_at,
                )
        except (InvalidStateTransitionError, SQLAlchemyError):
            # Another request settled this booking while we were charging.
            logger.exception(
                "Charge captured but booking could not be confirmed. booking_id=%s transaction_id=%s",
                booking_id,
                result.transaction_id,
            )
            self._void_charge(booking_id, result.transaction_id, amount + fee)
            raise

        logger.info(
            "Booking confirmed. booking_id=%s transaction_id=%s total=%s",
            booking_id,
            result.transaction_id,
            amount + fee,
        )
        self._safe_notify("notify_booking_confirmed", booking_id)
        return booking

    def release_hold(
        self,
        booking_id: str,
        reason: str = "Hold released",
    ) -> Booking:
        """
        Cancel a PENDING booking that was never paid and free its seat.

        Nothing was charged, so no gateway call is made. A concurrent
        pay_booking that captures afterwards finds the booking CANCELLED
        and voids its charge.
        """
        with session_scope(self.session_factory) as db:
            repo = BookingRepository(db)
            booking = self._require_booking(repo, booking_id, for_update=True)
            if booking.status != BookingStatus.PENDING:
                raise InvalidStateTransitionError(
                    from_state=booking.status.value,
                    to_state=BookingStatus.CANCELLED.value,
                )
            self._transition(
                repo,
                booking,
                BookingStatus.CANCELLED,
                PaymentStatus.FAILED,
                notes=_append_note(booking.notes, f"Released: {reason}"),
            )

        logger.info("Hold released. booking_id=%s reason=%s", booking_id, reason)
        return booking

    # -----------------------------
    # Cancellation
    # -----------------------------
    def cancel_booking_with_refund(
        self,
        booking_id: str,
        reason: str = DEFAULT_CANCELLATION_REASON,
    ) -> Booking:
        """
        Cancel a CONFIRMED booking and refund according to the policy.

        Refund failures still cancel the booking; RefundFailedError is
        raised afterwards so the caller knows money did not move.
        """
        now = self.clock()

        with session_scope(self.session_factory) as db:
            repo = BookingRepository(db)
            booking = self._require_booking(repo, booking_id)
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidStateTransitionError(
                    from_state=booking.status.value,
                    to_state=BookingStatus.CANCELLED.value,
                )

            if not repo.claim_for_refund(booking_id):
                raise InvalidStateTransitionError(
                    from_state=booking.payment_status.value,
                    to_state=PaymentStatus.REFUND_PENDING.value,
                )

            original = PaymentRepository(db).get_completed_for_booking(booking_id)
            if original is None:
                raise TransportBookingError(
                    f"Booking {booking_id} is confirmed but has no completed payment"
                )
            original_amount = original.amount
            original_transaction_id = original.transaction_id
            travel_date = booking.travel_date

        percentage = compute_refund_percentage(now, travel_date)
        refund_amount = compute_refund_amount(original_amount, percentage)
        days = days_until_travel(now, travel_date)

        if refund_amount == 0:
            logger.info(
                "Cancelled without refund. booking_id=%s days_until_travel=%s",
                booking_id,
                days,
            )
            return self._finish_cancellation(
                booking_id,
                PaymentStatus.PAID,
                f"Cancelled: {reason}. No refund due, {days} day(s) before travel.",
            )

        try:
            result = self.gateway.refund(original_transaction_id, refund_amount, reason)
        except PaymentGatewayError as exc:
            logger.warning(
                "Refund failed. booking_id=%s amount=%s reason=%s",
                booking_id,
                refund_amount,
                exc.reason,
            )
            raise self._fail_refund(booking_id, refund_amount, reason, exc.reason) from exc
        except Exception as exc:
            logger.exception(
                "Refund raised unexpectedly. booking_id=%s amount=%s",
                booking_id,
                refund_amount,
            )
            failure = f"Unexpected gateway error: {exc!r}"
            raise self._fail_refund(booking_id, refund_amount, reason, failure) from exc

        payment_status = (
            PaymentStatus.REFUNDED if percentage == 100 else PaymentStatus.PARTIALLY_REFUNDED
        )
        try:
            booking = self._finish_cancellation(
                booking_id,
                payment_status,
                f"Cancelled: {reason}. Refunded {refund_amount} ({percentage}%).",
                refund=(refund_amount, result.transaction_id, result.processed_at),
            )
        except SQLAlchemyError:
            logger.exception(
                "Refund issued but not recorded. booking_id=%s refund_transaction_id=%s amount=%s",
                booking_id,
                result.transaction_id,
                refund_amount,
            )
            self._cancel_without_refund_row(
                booking_id,
                payment_status,
                f"Cancelled: {reason}. Refunded {refund_amount} ({percentage}%) "
                f"as {result.transaction_id}, refund record missing.",
            )
            raise

        logger.info(
            "Booking cancelled. booking_id=%s refund=%s percentage=%s",
            booking_id,
            refund_amount,
            percentage,
        )
        self._safe_notify("notify_refund_confirmed", booking_id, refund_amount)
        return booking

    # -----------------------------
    # Reads
    # -----------------------------
    def get_booking(self, booking_id: str) -> Booking:
        with session_scope(self.session_factory) as db:
            return self._require_booking(BookingRepository(db), booking_id)

    # -----------------------------
    # Internals
    # -----------------------------
    @staticmethod
    def _validate_amount(amount) -> Decimal:
        try:
            amount = Decimal(str(amount))
        except (InvalidOperation, ValueError) as exc:
            raise PaymentValidationError(f"Invalid amount: {amount}") from exc
        if not amount.is_finite() or amount <= 0:
            raise PaymentValidationError("Amount must be positive")
        return round_money(amount)

    @staticmethod
    def _require_booking(
        repo: BookingRepository,
        booking_id: str,
        for_update: bool = False,
    ) -> Booking:
        if for_update:
            booking = repo.get_for_update(booking_id)
        else:
            booking = repo.get_by_id(booking_id)
        if not booking:
            raise BookingNotFoundError(booking_id)
        return booking

    @staticmethod
    def _transition(
        repo: BookingRepository,
        booking: Booking,
        to_status: BookingStatus,
        payment_status: PaymentStatus,
        notes: str | None = None,
    ) -> None:
        BookingStateMachine.validate_transition(booking.status, to_status)
        BookingStateMachine.validate_payment_status(to_status, payment_status)
        repo.update_status(booking, to_status, payment_status, notes=notes)

    def _mark_failed(self, booking_id: str, reason: str) -> Booking:
        with session_scope(self.session_factory) as db:
            repo = BookingRepository(db)
            booking = self._require_booking(repo, booking_id, for_update=True)
            self._transition(
                repo,
                booking,
                BookingStatus.FAILED,
                PaymentStatus.FAILED,
                notes=_append_note(booking.notes, f"Payment failed: {reason}"),
            )
        return booking

    def _finish_cancellation(
        self,
        booking_id: str,
        payment_status: PaymentStatus,
        note: str,
        refund: tuple | None = None,
    ) -> Booking:

        with session_scope(self.session_factory) as db:
            repo = BookingRepository(db)
            booking = self._require_booking(repo, booking_id, for_update=True)

            if refund is not None:
                refund_amount, transaction_id, refunded_at = refund
                payments = PaymentRepository(db)
                payments.add_refund(
                    payments.get_completed_for_booking(booking_id),
                    refund_amount,
                    transaction_id,
                    refunded_at,
                )

            self._transition(
                repo,
                booking,
                BookingStatus.CANCELLED,
                payment_status,
                notes=_append_note(booking.notes, note),
            )
        return booking

    def _fail_refund(
        self,
        booking_id: str,
        refund_amount: Decimal,
        reason: str,
        failure: str,
    ) -> RefundFailedError:
        self._finish_cancellation(
            booking_id,
            PaymentStatus.REFUND_FAILED,
            f"Cancelled: {reason}. Refund of {refund_amount} failed: {failure}",
        )
        self._safe_notify("notify_refund_failed", booking_id, failure)
        return RefundFailedError(booking_id, refund_amount, failure)

    def _cancel_without_refund_row(
        self,
        booking_id: str,
        payment_status: PaymentStatus,
        note: str,
    ) -> None:
        try:
            self._finish_cancellation(booking_id, payment_status, note)
        except SQLAlchemyError:
            logger.exception("Booking left in REFUND_PENDING. booking_id=%s", booking_id)

    def _void_charge(self, booking_id: str, transaction_id: str, amount: Decimal) -> None:
        try:
            self.gateway.refund(transaction_id, amount, "Booking could not be confirmed")
        except PaymentGatewayError:
            logger.exception(
                "Could not void orphaned charge. booking_id=%s transaction_id=%s",
                booking_id,
                transaction_id,
            )

    def _safe_notify(self, method_name: str, *args) -> None:
        if self.notifier is None:
            return
        try:
            getattr(self.notifier, method_name)(*args)
        except Exception:
            logger.exception(
                "Notification failed. method=%s args=%s",
                method_name,
                args,
            )
