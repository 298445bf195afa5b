"""
Fee and refund policy.

Pure functions over Decimal money values. Rounding is always
ROUND_HALF_UP to cents, i.e. half away from zero.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from src.domain.exceptions import PaymentValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

FULL_REFUND_AFTER_DAYS = 7
PARTIAL_REFUND_FROM_DAYS = 3
PARTIAL_REFUND_PERCENTAGE = 50


def round_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeSchedule:
    rate: Decimal
    fixed_fee: Decimal

    def fee_for(self, amount: Decimal) -> Decimal:
        return round_money(amount * self.rate + self.fixed_fee)


DEFAULT_FEE_SCHEDULE = FeeSchedule(rate=Decimal("0.025"), fixed_fee=Decimal("0.30"))


class PaymentMethod(str, Enum):
    CREDIT_CARD = "creditCard"
    DEBIT_CARD = "debitCard"
    PAYPAL = "payPal"

    @classmethod
    def parse(cls, value) -> "PaymentMethod | None":
        """Case-insensitive lookup. Returns None for unsupported methods."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for method in cls:
            if method.value.lower() == normalized:
                return method
        return None

    @property
    def fee_schedule(self) -> FeeSchedule:
        return _FEE_SCHEDULES[self]


_FEE_SCHEDULES = {
    PaymentMethod.CREDIT_CARD: FeeSchedule(rate=Decimal("0.029"), fixed_fee=Decimal("0.30")),
    PaymentMethod.DEBIT_CARD: FeeSchedule(rate=Decimal("0.015"), fixed_fee=Decimal("0.30")),
    PaymentMethod.PAYPAL: FeeSchedule(rate=Decimal("0.0349"), fixed_fee=Decimal("0.49")),
}


def compute_processing_fee(amount: Decimal, method) -> Decimal:
    """
    fee = amount * rate(method) + fixed(method), rounded to cents.

    Unknown methods fall back to the default schedule; rejecting them
    is the payment gateway's job.
    """
    amount = Decimal(amount)
    if amount < 0:
        raise PaymentValidationError("Amount must not be negative")

    parsed = PaymentMethod.parse(method)
    schedule = parsed.fee_schedule if parsed else DEFAULT_FEE_SCHEDULE
    return schedule.fee_for(amount)


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until_travel(now: datetime, travel_date) -> int:
    return (_as_date(travel_date) - _as_date(now)).days


def compute_refund_percentage(now: datetime, travel_date) -> int:
    """
    More than 7 days out: 100. Between 3 and 7 days inclusive: 50.
    Fewer than 3 days: 0.
    """
    days = days_until_travel(now, travel_date)
    if days > FULL_REFUND_AFTER_DAYS:
        return 100
    if days >= PARTIAL_REFUND_FROM_DAYS:
        return PARTIAL_REFUND_PERCENTAGE
    return 0


def compute_refund_amount(original_amount: Decimal, percentage: int) -> Decimal:
    if not 0 <= percentage <= 100:
        raise ValueError(f"Refund percentage out of range: {percentage}")
    return round_money(Decimal(original_amount) * Decimal(percentage) / HUNDRED)


def apply_discount(amount: Decimal, percentage: Decimal) -> Decimal:
    percentage = Decimal(percentage)
    if not Decimal(0) <= percentage <= HUNDRED:
        raise PaymentValidationError(f"Discount percentage out of range: {percentage}")
    return round_money(Decimal(amount) * (HUNDRED - percentage) / HUNDRED)
