from dataclasses import dataclass, field
from datetime import date, datetime, timezone


@dataclass(frozen=True)
class BillingAddress:
    address_line1: str = ""
    city: str = ""
    postal_code: str = ""
    country: str = ""
    address_line2: str | None = None
    state: str | None = None


@dataclass(frozen=True)
class PaymentDetails:
    payment_method: str
    card_number: str = ""
    card_holder_name: str = ""
    expiry_month: int = 0
    expiry_year: int = 0
    cvv: str = ""
    customer_email: str | None = None
    billing_address: BillingAddress | None = None

    @property
    def normalized_card_number(self) -> str:
        return self.card_number.replace(" ", "").replace("-", "")

    def masked_card_number(self) -> str:
        digits = self.normalized_card_number
        if len(digits) < 4:
            return digits
        return "XXXX-XXXX-XXXX-" + digits[-4:]

    def __repr__(self) -> str:
        # Never leak the PAN or CVV into logs.
        return (
            f"PaymentDetails(payment_method={self.payment_method!r}, "
            f"card={self.masked_card_number()!r})"
        )


@dataclass(frozen=True)
class GatewayResult:
    transaction_id: str
    authorization_code: str | None = None
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class BookingDraft:
    """Caller-supplied part of a booking, before any seat is held."""

    user_id: str
    route_id: str
    travel_date: date
    seat_number: int
    notes: str | None = None
