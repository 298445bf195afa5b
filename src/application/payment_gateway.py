"""
Payment gateway contract and the built-in simulated processor.

Every gateway call blocks the calling request until the processor
answers or the call times out. Failures are reported through the
PaymentGatewayError family so callers never see transport exceptions.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timezone
from decimal import Decimal
import logging
import random
import secrets
import string
import threading
import time
from uuid import uuid4

from src.domain.exceptions import (
    GatewayConfigurationError,
    GatewayDeclinedError,
    GatewayTransientError,
    PaymentValidationError,
)
from src.domain.payment import GatewayResult, PaymentDetails
from src.domain.pricing import PaymentMethod

logger = logging.getLogger(__name__)

CARD_NUMBER_MIN_LENGTH = 13
CARD_NUMBER_MAX_LENGTH = 19
MAX_EXPIRY_YEARS_AHEAD = 20


def _normalize_expiry_year(year: int) -> int:
    if 0 <= year < 100:
        return 2000 + year
    return year


def validate_payment_details(details: PaymentDetails, today: date | None = None) -> None:
    """
    Reject malformed payment details before anything is reserved or charged.
    Raises PaymentValidationError with the first problem found.
    """
    if details is None:
        raise PaymentValidationError("Payment details are required")

    today = today or date.today()

    if PaymentMethod.parse(details.payment_method) is None:
        raise PaymentValidationError(
            f"Unsupported payment method: {details.payment_method}"
        )

    card_number = details.normalized_card_number
    if not card_number.isdigit():
        raise PaymentValidationError("Card number must contain only digits")
    if not CARD_NUMBER_MIN_LENGTH <= len(card_number) <= CARD_NUMBER_MAX_LENGTH:
        raise PaymentValidationError(
            f"Card number must be between {CARD_NUMBER_MIN_LENGTH} "
            f"and {CARD_NUMBER_MAX_LENGTH} digits"
        )

    if not (details.card_holder_name or "").strip():
        raise PaymentValidationError("Card holder name is required")

    if not 1 <= details.expiry_month <= 12:
        raise PaymentValidationError("Expiry month must be between 1 and 12")

    expiry_year = _normalize_expiry_year(details.expiry_year)
    if not today.year <= expiry_year <= today.year + MAX_EXPIRY_YEARS_AHEAD:
        raise PaymentValidationError(f"Invalid expiry year: {details.expiry_year}")
    if expiry_year == today.year and details.expiry_month < today.month:
        raise PaymentValidationError("Card has expired")

    cvv = details.cvv or ""
    if not cvv.isdigit() or not 3 <= len(cvv) <= 4:
        raise PaymentValidationError("CVV must be 3 or 4 digits")

    address = details.billing_address
    if address is None:
        raise PaymentValidationError("Billing address is required")
    for field_name in ("address_line1", "city", "postal_code", "country"):
        if not (getattr(address, field_name) or "").strip():
            raise PaymentValidationError(f"Billing address {field_name} is required")


class PaymentGateway(ABC):
    """
    Contract for an external payment processor.

    Subclasses implement the raw submit calls; validation, amount checks,
    refund verification and logging live here.
    """

    name = "abstract"

    def validate(self, details: PaymentDetails) -> None:
        validate_payment_details(details, today=self.today())

    def today(self) -> date:
        return datetime.now(timezone.utc).date()

    def ensure_configured(self) -> None:
        """Raise GatewayConfigurationError when merchant credentials are missing."""

    def charge(
        self,
        details: PaymentDetails,
        amount: Decimal,
        reference: str | None = None,
    ) -> GatewayResult:

        self.validate(details)
        self.ensure_configured()

        amount = Decimal(amount)
        if amount <= 0:
            raise PaymentValidationError("Charge amount must be positive")

        logger.info(
            "Submitting charge. gateway=%s reference=%s amount=%s card=%s",
            self.name,
            reference,
            amount,
            details.masked_card_number(),
        )
        result = self._submit_charge(details, amount, reference)
        logger.info(
            "Charge accepted. gateway=%s reference=%s transaction_id=%s",
            self.name,
            reference,
            result.transaction_id,
        )
        return result

    def refund(
        self,
        original_transaction_id: str,
        amount: Decimal,
        reason: str,
    ) -> GatewayResult:

        self.ensure_configured()

        amount = Decimal(amount)
        if amount <= 0:
            raise PaymentValidationError("Refund amount must be positive")

        logger.info(
            "Submitting refund. gateway=%s original_transaction_id=%s amount=%s",
            self.name,
            original_transaction_id,
            amount,
        )
        result = self._submit_refund(original_transaction_id, amount, reason)

        if not self.verify_refund_status(result.transaction_id):
            raise GatewayDeclinedError(
                f"Refund {result.transaction_id} was not confirmed by the processor"
            )
        return result

    @abstractmethod
    def _submit_charge(
        self,
        details: PaymentDetails,
        amount: Decimal,
        reference: str | None,
    ) -> GatewayResult:
        raise NotImplementedError

    @abstractmethod
    def _submit_refund(
        self,
        original_transaction_id: str,
        amount: Decimal,
        reason: str,
    ) -> GatewayResult:
        raise NotImplementedError

    @abstractmethod
    def verify_refund_status(self, refund_transaction_id: str) -> bool:
        raise NotImplementedError


class SimulatedPaymentGateway(PaymentGateway):
    """
    In-process stand-in for a card processor.

    Declines cards ending in 0000 and charges of exactly 666.66, plus a
    random share of charges when `decline_rate` is set.
    """

    name = "simulated"

    DECLINED_CARD_SUFFIX = "0000"
    DECLINED_AMOUNT = Decimal("666.66")
    AUTH_CODE_ALPHABET = string.ascii_uppercase + string.digits

    def __init__(
        self,
        latency_seconds: float = 0.0,
        timeout_seconds: float = 10.0,
        decline_rate: float = 0.0,
        sleep=time.sleep,
        rng: random.Random | None = None,
    ):
        if not 0.0 <= decline_rate <= 1.0:
            raise GatewayConfigurationError(
                f"Decline rate must be between 0 and 1, got {decline_rate}"
            )
        self.latency_seconds = latency_seconds
        self.timeout_seconds = timeout_seconds
        self.decline_rate = decline_rate
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._refunds: dict[str, str] = {}
        self._lock = threading.Lock()

    def _wait_for_processor(self) -> None:
        if self.latency_seconds > self.timeout_seconds:
            self._sleep(self.timeout_seconds)
            raise GatewayTransientError(
                f"Payment processor timed out after {self.timeout_seconds}s"
            )
        if self.latency_seconds > 0:
            self._sleep(self.latency_seconds)

    def _authorization_code(self) -> str:
        return "".join(secrets.choice(self.AUTH_CODE_ALPHABET) for _ in range(6))

    def _submit_charge(self, details, amount, reference):
        self._wait_for_processor()

        if details.normalized_card_number.endswith(self.DECLINED_CARD_SUFFIX):
            raise GatewayDeclinedError("Card declined by issuer")
        if amount == self.DECLINED_AMOUNT:
            raise GatewayDeclinedError("Transaction flagged as suspicious")
        if self.decline_rate and self._rng.random() < self.decline_rate:
            raise GatewayDeclinedError("Insufficient funds")

        return GatewayResult(
            transaction_id=str(uuid4()),
            authorization_code=self._authorization_code(),
        )

    def _submit_refund(self, original_transaction_id, amount, reason):
        self._wait_for_processor()

        transaction_id = str(uuid4())
        with self._lock:
            self._refunds[transaction_id] = "processed"
        return GatewayResult(transaction_id=transaction_id)

    def verify_refund_status(self, refund_transaction_id: str) -> bool:
        # Entries are consumed by the check that follows every refund.
        with self._lock:
            return self._refunds.pop(refund_transaction_id, None) == "processed"


def build_payment_gateway(settings) -> PaymentGateway:
    if settings.payment_gateway == "simulated":
        return SimulatedPaymentGateway(
            latency_seconds=settings.gateway_latency_seconds,
            timeout_seconds=settings.gateway_timeout_seconds,
            decline_rate=settings.gateway_decline_rate,
        )

    if settings.payment_gateway == "razorpay":
        # Imported here: the Razorpay adapter builds on the contract above.
        from src.infrastructure.gateways.razorpay_gateway import RazorpayPaymentGateway

        return RazorpayPaymentGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            currency=settings.currency,
        )

    raise GatewayConfigurationError(
        f"Unknown payment gateway: {settings.payment_gateway}"
    )
