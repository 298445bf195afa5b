# src/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from src.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUND_PENDING = "REFUND_PENDING"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    REFUNDED = "REFUNDED"
    REFUND_FAILED = "REFUND_FAILED"


class BookingStateMachine:
    """
    Central lifecycle controller for booking transitions.
    Defines the legal state transitions and which payment
    states may accompany each booking state.
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
            BookingStatus.FAILED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED: {
            BookingStatus.CANCELLED,
        },
        BookingStatus.FAILED: set(),
        BookingStatus.CANCELLED: set(),
    }

    _PAYMENT_STATES: Dict[BookingStatus, Set[PaymentStatus]] = {
        BookingStatus.PENDING: {
            PaymentStatus.PENDING,
        },
        BookingStatus.CONFIRMED: {
            PaymentStatus.PAID,
            PaymentStatus.REFUND_PENDING,
        },
        BookingStatus.FAILED: {
            PaymentStatus.FAILED,
        },
        BookingStatus.CANCELLED: {
            PaymentStatus.PAID,
            PaymentStatus.FAILED,
            PaymentStatus.PARTIALLY_REFUNDED,
            PaymentStatus.REFUNDED,
            PaymentStatus.REFUND_FAILED,
        },
    }

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        """
        Returns True if transition is allowed.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_consistent(
        cls,
        status: BookingStatus,
        payment_status: PaymentStatus,
    ) -> bool:
        cls._ensure_valid_status(status)
        if not isinstance(payment_status, PaymentStatus):
            raise TypeError(
                f"Expected PaymentStatus, got {type(payment_status)}"
            )
        return payment_status in cls._PAYMENT_STATES[status]

    @classmethod
    def validate_payment_status(
        cls,
        status: BookingStatus,
        payment_status: PaymentStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if the payment state cannot
        accompany the booking state.
        """
        if not cls.is_consistent(status, payment_status):
            raise InvalidStateTransitionError(
                from_state=status.value,
                to_state=f"{status.value} with payment {payment_status.value}",
            )

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        """
        Returns True if the state is terminal (no further transitions allowed).
        """
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(
        cls, status: BookingStatus
    ) -> Set[BookingStatus]:
        """
        Returns allowed next states from current state.
        """
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        if not isinstance(status, BookingStatus):
            raise TypeError(
                f"Expected BookingStatus, got {type(status)}"
            )
