import hashlib
import hmac
import json
import time

WEBHOOK_SECRET = "whsec_test_secret"
DOWNSTREAM_URL = "https://orders.example.test/hooks/stripe_confirm.php"
DOWNSTREAM_KEY = "inf_test_key"


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header the way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def succeeded_event(intent_id="pi_test_123", amount=50000, metadata=None, **intent_fields):
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": "php",
        "status": "succeeded",
        "metadata": metadata if metadata is not None else {},
    }
    intent.update(intent_fields)
    return {
        "id": "evt_test_1",
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {"object": intent},
    }


def event_bytes(event: dict) -> bytes:
    return json.dumps(event, separators=(",", ":")).encode("utf-8")
