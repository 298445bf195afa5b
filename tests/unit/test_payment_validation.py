# tests/unit/test_payment_validation.py

from dataclasses import replace
from datetime import date

import pytest

from src.application.payment_gateway import validate_payment_details
from src.domain.exceptions import PaymentValidationError
from src.domain.payment import BillingAddress, PaymentDetails

TODAY = date(2026, 3, 2)


@pytest.fixture
def details():
    return PaymentDetails(
        payment_method="creditCard",
        card_number="4111-1111-1111-1111",
        card_holder_name="Ana Silva",
        expiry_month=3,
        expiry_year=2026,
        cvv="123",
        billing_address=BillingAddress(
            address_line1="Rua Augusta 10",
            city="Lisbon",
            postal_code="1100-053",
            country="PT",
        ),
    )


def test_valid_details_pass(details):
    validate_payment_details(details, today=TODAY)


def test_two_digit_year_is_accepted(details):
    validate_payment_details(replace(details, expiry_year=28), today=TODAY)


@pytest.mark.parametrize(
    "changes",
    [
        {"cvv": "12"},
        {"cvv": "12a"},
        {"cvv": "12345"},
        {"card_number": "4111 1111 11"},
        {"card_number": "4111 1111 1111 111X"},
        {"card_holder_name": "  "},
        {"expiry_month": 13},
        {"expiry_month": 2},
        {"expiry_year": 2025},
        {"expiry_year": 2047},
        {"payment_method": "cash"},
        {"billing_address": None},
        {"billing_address": BillingAddress(address_line1="Rua Augusta 10", city="Lisbon")},
    ],
)
def test_invalid_details_rejected(details, changes):
    with pytest.raises(PaymentValidationError):
        validate_payment_details(replace(details, **changes), today=TODAY)


def test_missing_details_rejected():
    with pytest.raises(PaymentValidationError):
        validate_payment_details(None, today=TODAY)


def test_repr_masks_card_number(details):
    text = repr(details)
    assert "1111-1111-1111-1111" not in text
    assert "XXXX-XXXX-XXXX-1111" in text
    assert "123" not in text
