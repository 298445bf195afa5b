# tests/unit/test_razorpay_gateway.py

from decimal import Decimal

import pytest
import razorpay
import requests

from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayDeclinedError,
    GatewayTransientError,
)
from src.infrastructure.gateways.razorpay_gateway import RazorpayPaymentGateway, to_minor_units


class FakeOrders:
    def __init__(self):
        self.created = []

    def create(self, data):
        self.created.append(data)
        return {"id": "order_1", "amount": data["amount"]}


class FakePayments:
    def __init__(self, create_error=None, capture_status="captured", refund_response=None):
        self.create_error = create_error
        self.capture_status = capture_status
        self.refund_response = refund_response
        self.refunds = []

    def createPaymentJson(self, data):
        if self.create_error:
            raise self.create_error
        return {"razorpay_payment_id": "pay_1"}

    def capture(self, payment_id, amount, data):
        return {
            "id": payment_id,
            "amount": amount,
            "status": self.capture_status,
            "acquirer_data": {"auth_code": "A1B2C3"},
        }

    def refund(self, payment_id, data):
        self.refunds.append((payment_id, data))
        if self.refund_response is not None:
            return self.refund_response
        return {"id": "rfnd_1", "payment_id": payment_id}


class FakeRefunds:
    def __init__(self, status="processed"):
        self.status = status

    def fetch(self, refund_id):
        return {"id": refund_id, "status": self.status}


class FakeClient:
    def __init__(self, payments=None, refund_status="processed"):
        self.order = FakeOrders()
        self.payment = payments or FakePayments()
        self.refund = FakeRefunds(refund_status)


def _gateway(client):
    return RazorpayPaymentGateway(key_id=None, key_secret=None, currency="INR", client=client)


def test_minor_units():
    assert to_minor_units(Decimal("51.75")) == 5175
    assert to_minor_units(Decimal("0.005")) == 1


def test_missing_keys_is_configuration_error(payment_details):
    gateway = RazorpayPaymentGateway(key_id=None, key_secret=None)

    with pytest.raises(GatewayConfigurationError):
        gateway.ensure_configured()
    with pytest.raises(GatewayConfigurationError):
        gateway.charge(payment_details, Decimal("10.00"))


def test_charge_creates_order_and_captures(payment_details):
    client = FakeClient()
    result = _gateway(client).charge(payment_details, Decimal("51.75"), reference="booking-1")

    assert result.transaction_id == "pay_1"
    assert result.authorization_code == "A1B2C3"
    assert client.order.created[0]["amount"] == 5175
    assert client.order.created[0]["receipt"] == "booking-1"


def test_bad_request_is_decline(payment_details):
    client = FakeClient(FakePayments(create_error=razorpay.errors.BadRequestError("card declined")))

    with pytest.raises(GatewayDeclinedError):
        _gateway(client).charge(payment_details, Decimal("10.00"))


def test_uncaptured_payment_is_decline(payment_details):
    client = FakeClient(FakePayments(capture_status="failed"))

    with pytest.raises(GatewayDeclinedError):
        _gateway(client).charge(payment_details, Decimal("10.00"))


@pytest.mark.parametrize(
    "error",
    [
        razorpay.errors.ServerError("upstream down"),
        razorpay.errors.GatewayError("gateway hiccup"),
        requests.exceptions.Timeout("read timed out"),
        requests.exceptions.ConnectionError("connection reset"),
        requests.exceptions.TooManyRedirects("redirect loop"),
        ValueError("Expecting value: line 1 column 1"),
    ],
)
def test_network_failures_are_transient(payment_details, error):
    client = FakeClient(FakePayments(create_error=error))

    with pytest.raises(GatewayTransientError):
        _gateway(client).charge(payment_details, Decimal("10.00"))


def test_refund_verified_by_refetch():
    client = FakeClient(refund_status="pending")
    result = _gateway(client).refund("pay_1", Decimal("25.00"), "Cancelled by customer")

    assert result.transaction_id == "rfnd_1"
    assert client.payment.refunds == [
        ("pay_1", {"amount": 2500, "notes": {"reason": "Cancelled by customer"}})
    ]


def test_failed_refund_status_is_decline():
    client = FakeClient(refund_status="failed")

    with pytest.raises(GatewayDeclinedError):
        _gateway(client).refund("pay_1", Decimal("25.00"), "Cancelled by customer")


def test_refund_response_without_id_is_transient():
    client = FakeClient(FakePayments(refund_response={"error": {"code": "SERVER_ERROR"}}))

    with pytest.raises(GatewayTransientError):
        _gateway(client).refund("pay_1", Decimal("25.00"), "Cancelled by customer")
