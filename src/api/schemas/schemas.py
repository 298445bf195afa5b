from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.domain.payment import BillingAddress, BookingDraft, PaymentDetails


class BillingAddressIn(BaseModel):
    address_line1: str = Field(min_length=1)
    address_line2: str | None = None
    city: str = Field(min_length=1)
    state: str | None = None
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=1)

    def to_domain(self) -> BillingAddress:
        return BillingAddress(
            address_line1=self.address_line1,
            address_line2=self.address_line2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


class PaymentDetailsIn(BaseModel):
    """Card data is validated by the payment gateway."""

    payment_method: str
    card_number: str = ""
    card_holder_name: str = ""
    expiry_month: int = 0
    expiry_year: int = 0
    cvv: str = ""
    customer_email: str | None = None
    billing_address: BillingAddressIn | None = None

    def to_domain(self) -> PaymentDetails:
        return PaymentDetails(
            payment_method=self.payment_method,
            card_number=self.card_number,
            card_holder_name=self.card_holder_name,
            expiry_month=self.expiry_month,
            expiry_year=self.expiry_year,
            cvv=self.cvv,
            customer_email=self.customer_email,
            billing_address=self.billing_address.to_domain() if self.billing_address else None,
        )


class BookingHoldRequest(BaseModel):
    user_id: str = Field(min_length=1)
    route_id: str = Field(min_length=1)
    travel_date: date
    seat_number: int = Field(gt=0)
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    payment_method: str
    discount_code: str | None = None
    notes: str | None = None

    @field_validator("travel_date", mode="before")
    @classmethod
    def _truncate_to_day(cls, value):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and len(value) > 10:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
        return value

    def to_draft(self) -> BookingDraft:
        return BookingDraft(
            user_id=self.user_id,
            route_id=self.route_id,
            travel_date=self.travel_date,
            seat_number=self.seat_number,
            notes=self.notes,
        )


class BookingCreateRequest(BookingHoldRequest):
    payment_details: PaymentDetailsIn


class PaymentRequest(BaseModel):
    payment_details: PaymentDetailsIn


class CancelRequest(BaseModel):
    reason: str = Field(default="Cancelled by customer", min_length=1)


class ReleaseRequest(BaseModel):
    reason: str = Field(default="Hold released", min_length=1)


class BookingResponse(BaseModel):
    booking_id: str
    user_id: str
    route_id: str
    travel_date: date
    seat_number: int
    payment_amount: Decimal
    payment_method: str
    status: str
    payment_status: str
    booked_at: datetime
    notes: str | None = None
    discount_code: str | None = None

    @classmethod
    def from_booking(cls, booking) -> "BookingResponse":
        return cls(
            booking_id=booking.id,
            user_id=booking.user_id,
            route_id=booking.route_id,
            travel_date=booking.travel_date,
            seat_number=booking.seat_number,
            payment_amount=booking.payment_amount,
            payment_method=booking.payment_method,
            status=booking.status.value,
            payment_status=booking.payment_status.value,
            booked_at=booking.booked_at,
            notes=booking.notes,
            discount_code=booking.discount_code,
        )


class BookingCountResponse(BaseModel):
    payment_status: str
    count: int


class SeatAvailabilityResponse(BaseModel):
    route_id: str
    travel_date: date
    seat_number: int
    taken: bool


class RevenueResponse(BaseModel):
    route_id: str
    gross: Decimal
    refunded: Decimal
    net: Decimal
    paid_bookings: int


class OutboxEventResponse(BaseModel):
    id: str
    aggregate_type: str
    aggregate_id: str
    event_type: str
    status: str
    attempts: int
    created_at: str
