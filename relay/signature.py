"""Stripe webhook verification.

The payload handed to ``verify_event`` must be the request body exactly as it
arrived. Stripe signs ``"{timestamp}.{body}"`` with the endpoint secret, so
any re-serialization of the JSON (key order, whitespace) breaks the check.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any

import stripe

from relay.errors import SignatureVerificationError
from relay.normalizer import to_plain

logger = logging.getLogger(__name__)

SUCCEEDED_EVENT = "payment_intent.succeeded"
FAILED_EVENT = "payment_intent.payment_failed"


class EventKind(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    OTHER = "other"


def classify(event_type: str | None) -> EventKind:
    if event_type == SUCCEEDED_EVENT:
        return EventKind.SUCCEEDED
    if event_type == FAILED_EVENT:
        return EventKind.FAILED
    return EventKind.OTHER


@dataclass(frozen=True)
class WebhookEvent:
    id: str | None
    type: str
    kind: EventKind
    data_object: Any


def verify_event(
    raw_body: bytes,
    signature_header: str | None,
    secret: str,
    tolerance: int = 300,
) -> WebhookEvent:
    if not secret:
        logger.warning("STRIPE_WEBHOOK_SECRET not set, rejecting webhook")
        raise SignatureVerificationError("Webhook secret not configured")
    if not signature_header:
        raise SignatureVerificationError("Missing stripe-signature header")

    try:
        event = stripe.Webhook.construct_event(
            raw_body,
            signature_header,
            secret,
            tolerance=tolerance,
        )
    except ValueError as exc:
        raise SignatureVerificationError("Invalid payload") from exc
    except stripe.SignatureVerificationError as exc:
        raise SignatureVerificationError("Invalid signature") from exc

    event = to_plain(event)
    event_type = event["type"]
    return WebhookEvent(
        id=event.get("id"),
        type=event_type,
        kind=classify(event_type),
        data_object=event["data"]["object"],
    )
