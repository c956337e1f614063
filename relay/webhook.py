"""Raw-body stage of the HTTP boundary.

This router never declares a parsed body: the handler reads the request
bytes itself so the Stripe signature is checked against exactly what was
sent. Anything that needs the JSON form uses the verified event.
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Header, Request
from fastapi.concurrency import run_in_threadpool

from relay.errors import (
    DownstreamDeliveryError,
    FallbackPersistenceError,
    SignatureVerificationError,
)
from relay.normalizer import normalize_intent
from relay.signature import EventKind, verify_event

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str = Header(None),
):
    payload = await request.body()
    state = request.app.state
    settings = state.settings

    try:
        event = verify_event(
            payload,
            stripe_signature,
            settings.stripe_webhook_secret,
            tolerance=settings.webhook_tolerance,
        )
    except SignatureVerificationError as exc:
        logger.warning("Webhook signature error: %s", exc)
        raise

    intent = event.data_object

    if event.kind is EventKind.FAILED:
        logger.warning("Payment failed: %s", intent.get("id"))
        return {"received": True}

    if event.kind is EventKind.OTHER:
        logger.info("Ignoring event %s (%s)", event.type, event.id)
        return {"received": True}

    confirmation = normalize_intent(intent)
    logger.info("Payment succeeded: %s", confirmation.payment_intent_id)

    try:
        await run_in_threadpool(state.notifier.deliver, confirmation)
    except DownstreamDeliveryError as exc:
        logger.error("Failed to notify order backend: %s", exc)
    else:
        return {"received": True}

    try:
        saved_to = await run_in_threadpool(state.fallback.save, confirmation)
    except FallbackPersistenceError:
        logger.exception("Could not persist %s to fallback", confirmation.payment_intent_id)
        return {"received": True}

    background_tasks.add_task(state.alerter.notify, confirmation, saved_to)
    return {"received": True, "fallback_saved": saved_to}
