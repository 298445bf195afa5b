# tests/unit/test_simulated_gateway.py

from dataclasses import replace
from decimal import Decimal
import random

import pytest

from src.application.payment_gateway import SimulatedPaymentGateway, build_payment_gateway
from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayDeclinedError,
    GatewayTransientError,
    PaymentValidationError,
)
from src.infrastructure.config import Settings


def test_charge_returns_transaction(payment_details):
    result = SimulatedPaymentGateway().charge(payment_details, Decimal("51.75"), reference="b-1")

    assert len(result.transaction_id) == 36
    assert len(result.authorization_code) == 6
    assert result.authorization_code.isalnum()


def test_card_ending_in_zeros_is_declined(payment_details):
    details = replace(payment_details, card_number="4111111111110000")

    with pytest.raises(GatewayDeclinedError):
        SimulatedPaymentGateway().charge(details, Decimal("10.00"))


def test_suspicious_amount_is_declined(payment_details):
    with pytest.raises(GatewayDeclinedError):
        SimulatedPaymentGateway().charge(payment_details, Decimal("666.66"))


def test_decline_rate_of_one_declines_everything(payment_details):
    gateway = SimulatedPaymentGateway(decline_rate=1.0, rng=random.Random(7))

    with pytest.raises(GatewayDeclinedError):
        gateway.charge(payment_details, Decimal("10.00"))


def test_invalid_decline_rate():
    with pytest.raises(GatewayConfigurationError):
        SimulatedPaymentGateway(decline_rate=1.5)


def test_invalid_details_never_reach_processor(payment_details):
    calls = []
    gateway = SimulatedPaymentGateway(latency_seconds=1, sleep=calls.append)

    with pytest.raises(PaymentValidationError):
        gateway.charge(replace(payment_details, cvv="12"), Decimal("10.00"))
    assert calls == []


def test_timeout_is_transient(payment_details):
    waited = []
    gateway = SimulatedPaymentGateway(latency_seconds=30, timeout_seconds=2, sleep=waited.append)

    with pytest.raises(GatewayTransientError):
        gateway.charge(payment_details, Decimal("10.00"))
    assert waited == [2]


def test_refund_is_verified():
    gateway = SimulatedPaymentGateway()
    result = gateway.refund("txn-1", Decimal("25.00"), "Cancelled by customer")

    assert result.transaction_id
    assert not gateway.verify_refund_status("unknown")


def test_refund_ledger_is_drained_by_verification():
    gateway = SimulatedPaymentGateway()
    for _ in range(3):
        gateway.refund("txn-1", Decimal("5.00"), "Cancelled by customer")

    assert gateway._refunds == {}

    pending = gateway._submit_refund("txn-2", Decimal("5.00"), "Cancelled by customer")
    assert gateway.verify_refund_status(pending.transaction_id)
    assert not gateway.verify_refund_status(pending.transaction_id)


def test_refund_requires_positive_amount():
    with pytest.raises(PaymentValidationError):
        SimulatedPaymentGateway().refund("txn-1", Decimal("0"), "nothing due")


def test_build_gateway_from_settings():
    settings = Settings(database_url="sqlite://", gateway_latency_seconds=0)
    assert isinstance(build_payment_gateway(settings), SimulatedPaymentGateway)

    with pytest.raises(GatewayConfigurationError):
        build_payment_gateway(replace(settings, payment_gateway="carrier-pigeon"))
