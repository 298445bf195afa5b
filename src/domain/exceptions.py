

class TransportBookingError(Exception):
    """
    Base exception for all domain-level errors
    inside the transport booking core.
    """


class InvalidStateTransitionError(TransportBookingError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class PaymentValidationError(TransportBookingError):
    """Raised for bad caller input. Nothing has been charged or persisted."""


class SeatConflictError(TransportBookingError):
    """Raised when the seat is held by a booking that is not cancelled."""

    def __init__(self, route_id: str, travel_date, seat_number: int):
        self.route_id = route_id
        self.travel_date = travel_date
        self.seat_number = seat_number
        super().__init__(
            f"Seat {seat_number} on route {route_id} for {travel_date} is already taken"
        )


class NotFoundError(TransportBookingError):
    """Raised when a referenced record does not exist."""


class BookingNotFoundError(NotFoundError):

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} not found")


class RouteNotFoundError(NotFoundError):

    def __init__(self, route_id: str):
        self.route_id = route_id
        super().__init__(f"Route {route_id} not found")


class PaymentGatewayError(TransportBookingError):
    """
    Base class for failures reported by (or on the way to)
    the external payment processor.
    """

    def __init__(self, reason: str, booking_id: str | None = None):
        self.reason = reason
        self.booking_id = booking_id
        super().__init__(reason)


class GatewayDeclinedError(PaymentGatewayError):
    """The processor rejected the charge or refund. No money moved."""


class GatewayTransientError(PaymentGatewayError):
    """Network failure or timeout. The caller may retry."""


class GatewayConfigurationError(PaymentGatewayError):
    """Merchant credentials are missing. Fatal, never retried."""


class RefundFailedError(TransportBookingError):
    """
    Raised after a cancellation has been persisted but the refund
    did not complete. The booking is CANCELLED with a failure note.
    """

    def __init__(self, booking_id: str, amount, reason: str):
        self.booking_id = booking_id
        self.amount = amount
        self.reason = reason
        super().__init__(
            f"Booking {booking_id} was cancelled but the refund of {amount} failed: {reason}"
        )
