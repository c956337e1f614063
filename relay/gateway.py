import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

import httpx
import stripe

from relay.config import Settings
from relay.errors import InvalidRequest, NotFound, ProcessorError, RateLookupFailed
from relay.normalizer import from_minor_units, receipt_and_brand, to_plain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentHandle:
    id: str
    client_secret: str
    amount: int
    currency: str


@dataclass(frozen=True)
class PaymentIntentStatus:
    id: str
    status: str
    amount: Decimal
    currency: str
    receipt_url: str | None
    payment_method: str


class RateLookup:
    """Exchange rates from an open.er-api.com style endpoint: ``GET {url}/{BASE}``."""

    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def rate(self, source: str, target: str) -> Decimal:
        url = f"{self.base_url}/{source.upper()}"
        try:
            response = httpx.get(url, timeout=self.timeout)
            response.raise_for_status()
            rates = response.json().get("rates") or {}
            value = rates[target.upper()]
            rate = Decimal(str(value))
        except (httpx.HTTPError, ValueError, KeyError, AttributeError, InvalidOperation) as exc:
            raise RateLookupFailed(
                f"Could not convert {source.upper()} to {target.upper()}: {exc}"
            ) from exc

        if rate <= 0:
            raise RateLookupFailed(f"Invalid {source.upper()}->{target.upper()} rate: {rate}")
        return rate


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentGateway:
    def __init__(self, settings: Settings, rates: RateLookup | None = None):
        self.api_key = settings.stripe_secret_key
        self.currency_mode = settings.currency_mode
        self.source_currency = settings.source_currency
        self.settlement_currency = (
            settings.settlement_currency
            if settings.currency_mode == "converted"
            else settings.source_currency
        )
        self.rates = rates or RateLookup(settings.rate_api_url)

    def settlement_amount(self, amount) -> Decimal:
        if amount is None or amount == "":
            raise InvalidRequest("amountPHP required")
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise InvalidRequest("amountPHP must be a number")
        if not value.is_finite() or value <= 0:
            raise InvalidRequest("amountPHP must be positive")

        if self.currency_mode == "converted":
            value = value * self.rates.rate(self.source_currency, self.settlement_currency)
        return value

    def create_payment_intent(self, amount, metadata: dict | None = None) -> PaymentIntentHandle:
        minor_units = to_minor_units(self.settlement_amount(amount))
        if minor_units <= 0:
            raise InvalidRequest("amountPHP is too small to charge")

        clean_metadata = {key: "" if value is None else str(value) for key, value in (metadata or {}).items()}
        try:
            intent = stripe.PaymentIntent.create(
                amount=minor_units,
                currency=self.settlement_currency,
                automatic_payment_methods={"enabled": True},
                metadata=clean_metadata,
                api_key=self.api_key,
            )
        except stripe.StripeError as exc:
            raise ProcessorError(exc.user_message or str(exc)) from exc

        logger.info(
            "Created payment intent %s for %d %s", intent.id, minor_units, self.settlement_currency
        )
        return PaymentIntentHandle(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=minor_units,
            currency=self.settlement_currency,
        )

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(
                payment_intent_id,
                expand=["latest_charge"],
                api_key=self.api_key,
            )
        except stripe.InvalidRequestError as exc:
            if exc.code == "resource_missing":
                raise NotFound(f"No such payment intent: {payment_intent_id}") from exc
            raise ProcessorError(exc.user_message or str(exc)) from exc
        except stripe.StripeError as exc:
            raise ProcessorError(exc.user_message or str(exc)) from exc

        intent = to_plain(intent)
        receipt_url, brand = receipt_and_brand(intent)
        return PaymentIntentStatus(
            id=intent["id"],
            status=intent["status"],
            amount=from_minor_units(intent.get("amount")),
            currency=intent.get("currency"),
            receipt_url=receipt_url,
            payment_method=brand,
        )
