# src/infrastructure/gateways/razorpay_gateway.py

from decimal import Decimal, ROUND_HALF_UP
import logging

import razorpay
import requests

from src.application.payment_gateway import PaymentGateway
from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayDeclinedError,
    GatewayTransientError,
)
from src.domain.payment import GatewayResult, PaymentDetails
from src.domain.pricing import PaymentMethod

logger = logging.getLogger(__name__)

ACCEPTED_REFUND_STATES = {"processed", "pending"}


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayPaymentGateway(PaymentGateway):
    """
    Gateway backed by the Razorpay API.

    Charges go through an order, a server-to-server card payment and an
    explicit capture. Amounts are sent in minor units.
    """

    name = "razorpay"

    def __init__(
        self,
        key_id: str | None,
        key_secret: str | None,
        currency: str = "INR",
        client=None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.currency = currency
        self._client = client

    def ensure_configured(self) -> None:
        if self._client is None and (not self.key_id or not self.key_secret):
            raise GatewayConfigurationError(
                "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )

    @property
    def client(self):
        if self._client is None:
            self.ensure_configured()
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def _call(self, operation: str, func, *args):
        try:
            return func(*args)
        except razorpay.errors.BadRequestError as exc:
            logger.info("Razorpay rejected %s: %s", operation, exc)
            raise GatewayDeclinedError(str(exc)) from exc
        except (
            razorpay.errors.GatewayError,
            razorpay.errors.ServerError,
            requests.exceptions.Timeout,
            requests.exceptions.ConnectionError,
        ) as exc:
            logger.warning("Razorpay %s failed transiently: %s", operation, exc)
            raise GatewayTransientError(f"Razorpay {operation} failed: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            logger.warning("Razorpay %s request error: %s", operation, exc)
            raise GatewayTransientError(f"Razorpay {operation} failed: {exc}") from exc
        except (KeyError, TypeError, ValueError) as exc:
            logger.exception("Razorpay %s returned an unexpected response", operation)
            raise GatewayTransientError(
                f"Razorpay {operation} returned an unexpected response: {exc!r}"
            ) from exc

    @staticmethod
    def _field(response, key: str, operation: str):
        value = response.get(key) if isinstance(response, dict) else None
        if not value:
            raise GatewayTransientError(f"Razorpay {operation} response has no {key}")
        return value

    def _payment_payload(
        self,
        details: PaymentDetails,
        amount_minor: int,
        order_id: str,
    ) -> dict:

        payload = {
            "amount": amount_minor,
            "currency": self.currency,
            "order_id": order_id,
            "email": details.customer_email or "",
        }
        if PaymentMethod.parse(details.payment_method) == PaymentMethod.PAYPAL:
            payload["method"] = "wallet"
            payload["wallet"] = "paypal"
        else:
            payload["method"] = "card"
            payload["card"] = {
                "number": details.normalized_card_number,
                "name": details.card_holder_name,
                "expiry_month": f"{details.expiry_month:02d}",
                "expiry_year": str(details.expiry_year)[-2:],
                "cvv": details.cvv,
            }
        return payload

    def _submit_charge(self, details, amount, reference):
        amount_minor = to_minor_units(amount)

        order = self._call(
            "order creation",
            self.client.order.create,
            {
                "amount": amount_minor,
                "currency": self.currency,
                "receipt": reference or "",
                "payment_capture": 0,
            },
        )
        order_id = self._field(order, "id", "order creation")
        payment = self._call(
            "payment",
            self.client.payment.createPaymentJson,
            self._payment_payload(details, amount_minor, order_id),
        )
        payment_id = payment.get("razorpay_payment_id") or payment.get("id")
        if not payment_id:
            raise GatewayDeclinedError("Razorpay did not return a payment id")

        captured = self._call(
            "capture",
            self.client.payment.capture,
            payment_id,
            amount_minor,
            {"currency": self.currency},
        )
        if captured.get("status") != "captured":
            raise GatewayDeclinedError(
                f"Payment {payment_id} ended in status {captured.get('status')}"
            )

        acquirer_data = captured.get("acquirer_data") or {}
        return GatewayResult(
            transaction_id=payment_id,
            authorization_code=acquirer_data.get("auth_code"),
        )

    def _submit_refund(self, original_transaction_id, amount, reason):
        refund = self._call(
            "refund",
            self.client.payment.refund,
            original_transaction_id,
            {
                "amount": to_minor_units(amount),
                "notes": {"reason": reason},
            },
        )
        return GatewayResult(transaction_id=self._field(refund, "id", "refund"))

    def verify_refund_status(self, refund_transaction_id: str) -> bool:
        refund = self._call(
            "refund lookup",
            self.client.refund.fetch,
            refund_transaction_id,
        )
        return refund.get("status") in ACCEPTED_REFUND_STATES
