from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from relay.errors import ValidationError

CENT = Decimal("0.01")
METADATA_FIELDS = ("customer_id", "cart_id", "shipping_fee")


def from_minor_units(amount: int | None) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


class OrderConfirmation(BaseModel):
    """Canonical order record sent to the order backend.

    ``amount`` is always a decimal in the settlement currency; on the wire it
    travels as ``amountPHP``, which is what the order backend expects.
    """

    model_config = ConfigDict(populate_by_name=True)

    payment_intent_id: str = Field(min_length=1)
    customer_id: str | None = None
    cart_id: str | None = None
    shipping_fee: str | None = None
    amount: Decimal = Field(alias="amountPHP")
    currency: str | None = None
    receipt_url: str | None = None
    payment_method: str = "unknown"
    status: Literal["paid", "failed"] = "paid"

    @field_validator("customer_id", "cart_id", "shipping_fee", mode="before")
    @classmethod
    def _stringify(cls, value):
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("amount")
    @classmethod
    def _two_places(cls, value: Decimal) -> Decimal:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)

    @field_serializer("amount")
    def _amount_as_number(self, value: Decimal) -> float:
        return float(value)

    @property
    def order_ref(self) -> str:
        return self.cart_id or self.payment_intent_id

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


def to_plain(value: Any) -> Any:
    """Stripe objects as plain dicts and lists; newer SDKs no longer subclass dict."""
    if not isinstance(value, dict) and hasattr(value, "to_dict"):
        value = value.to_dict()
    if isinstance(value, dict):
        return {key: to_plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [to_plain(item) for item in value]
    return value


def _charge_of(intent: dict) -> dict:
    # legacy API versions embed charges, newer ones expose latest_charge
    charges = intent.get("charges")
    if charges:
        data = charges.get("data") or []
        if data:
            return data[0]

    latest = intent.get("latest_charge")
    if isinstance(latest, dict):
        return latest
    return {}


def receipt_and_brand(intent: Any) -> tuple[str | None, str]:
    charge = _charge_of(to_plain(intent))
    receipt_url = charge.get("receipt_url") or None
    details = charge.get("payment_method_details") or {}
    card = details.get("card") or {}
    return receipt_url, card.get("brand") or "unknown"


def normalize_intent(intent: Any, status: str = "paid") -> OrderConfirmation:
    intent = to_plain(intent)
    intent_id = intent.get("id")
    if not intent_id:
        raise ValidationError("payment intent has no id")

    metadata = intent.get("metadata") or {}
    receipt_url, brand = receipt_and_brand(intent)

    return OrderConfirmation(
        payment_intent_id=intent_id,
        **{field: metadata.get(field) for field in METADATA_FIELDS},
        amount=from_minor_units(intent.get("amount")),
        currency=intent.get("currency"),
        receipt_url=receipt_url,
        payment_method=brand,
        status=status,
    )
