# tests/unit/test_pricing.py

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from src.domain.exceptions import PaymentValidationError
from src.domain.pricing import (
    PaymentMethod,
    apply_discount,
    compute_processing_fee,
    compute_refund_amount,
    compute_refund_percentage,
    days_until_travel,
    round_money,
)

NOW = datetime(2026, 3, 2, 23, 30, tzinfo=timezone.utc)


# ---------------------
# PROCESSING FEES
# ---------------------

@pytest.mark.parametrize(
    "method, expected",
    [
        ("creditCard", Decimal("3.20")),
        ("debitCard", Decimal("1.80")),
        ("payPal", Decimal("3.98")),
        ("giftVoucher", Decimal("2.80")),
    ],
)
def test_fee_per_method(method, expected):
    assert compute_processing_fee(Decimal("100"), method) == expected


def test_method_lookup_is_case_insensitive():
    assert PaymentMethod.parse("CREDITCARD") is PaymentMethod.CREDIT_CARD
    assert PaymentMethod.parse(" paypal ") is PaymentMethod.PAYPAL
    assert PaymentMethod.parse("cash") is None
    assert PaymentMethod.parse(None) is None


def test_fee_is_deterministic_and_non_negative():
    first = compute_processing_fee(Decimal("0"), "creditCard")
    second = compute_processing_fee(Decimal("0"), "creditCard")
    assert first == second == Decimal("0.30")


def test_fee_rounds_half_up():
    # 50 * 0.029 + 0.30 = 1.75 exactly; 10.5 * 0.015 + 0.30 = 0.4575 -> 0.46
    assert compute_processing_fee(Decimal("50.00"), "creditCard") == Decimal("1.75")
    assert compute_processing_fee(Decimal("10.50"), "debitCard") == Decimal("0.46")


def test_negative_amount_rejected():
    with pytest.raises(PaymentValidationError):
        compute_processing_fee(Decimal("-1"), "creditCard")


def test_round_money_half_away_from_zero():
    assert round_money(Decimal("0.125")) == Decimal("0.13")
    assert round_money(Decimal("-0.125")) == Decimal("-0.13")


# ---------------------
# REFUND POLICY
# ---------------------

@pytest.mark.parametrize(
    "travel_date, expected",
    [
        (date(2026, 3, 10), 100),
        (date(2026, 3, 9), 50),
        (date(2026, 3, 5), 50),
        (date(2026, 3, 4), 0),
        (date(2026, 3, 2), 0),
        (date(2026, 2, 20), 0),
    ],
)
def test_refund_percentage_by_days(travel_date, expected):
    assert compute_refund_percentage(NOW, travel_date) == expected


def test_days_until_travel_ignores_time_of_day():
    assert days_until_travel(NOW, datetime(2026, 3, 3, 0, 1, tzinfo=timezone.utc)) == 1


def test_refund_amount_is_share_of_original():
    assert compute_refund_amount(Decimal("50.00"), 50) == Decimal("25.00")
    assert compute_refund_amount(Decimal("33.33"), 50) == Decimal("16.67")
    assert compute_refund_amount(Decimal("50.00"), 0) == Decimal("0.00")


def test_refund_percentage_out_of_range():
    with pytest.raises(ValueError):
        compute_refund_amount(Decimal("10"), 120)


def test_apply_discount():
    assert apply_discount(Decimal("50.00"), Decimal("10")) == Decimal("45.00")

    with pytest.raises(PaymentValidationError):
        apply_discount(Decimal("50.00"), Decimal("150"))
