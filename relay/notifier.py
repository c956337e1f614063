"""Delivery of confirmed orders to the order backend.

Exactly one strategy is active per deployment, chosen by ``DELIVERY_MODE``.
Neither retries: Stripe redelivers the webhook and the order upsert is
idempotent, so a failed attempt is handed to the fallback log instead.
"""

import logging
from typing import Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError

from relay.config import Settings
from relay.errors import ConfigurationError, DownstreamDeliveryError
from relay.normalizer import OrderConfirmation
from relay.orders import upsert_order

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class Notifier(Protocol):
    def deliver(self, confirmation: OrderConfirmation) -> None:
        ...


class HttpNotifier:
    def __init__(self, url: str, api_key: str = "", timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    def deliver(self, confirmation: OrderConfirmation) -> None:
        try:
            response = httpx.post(
                self.url,
                json=confirmation.to_payload(),
                headers={
                    "Content-Type": "application/json",
                    "X-API-KEY": self.api_key,
                },
                timeout=self.timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DownstreamDeliveryError(
                f"Order backend answered HTTP {exc.response.status_code}"
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DownstreamDeliveryError(f"Failed to notify order backend: {exc}") from exc

        logger.debug("Order backend says: %s", response.text)
        logger.info("Delivered %s to order backend", confirmation.payment_intent_id)


class DatabaseNotifier:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    def deliver(self, confirmation: OrderConfirmation) -> None:
        db = self.session_factory()
        try:
            upsert_order(db, confirmation)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise DownstreamDeliveryError(f"Failed to store order: {exc}") from exc
        finally:
            db.close()


def build_notifier(settings: Settings, session_factory) -> Notifier:
    if settings.delivery_mode == "database":
        return DatabaseNotifier(session_factory)

    if not settings.downstream_url:
        raise ConfigurationError("DOWNSTREAM_URL is required when DELIVERY_MODE=http")
    return HttpNotifier(
        settings.downstream_url,
        api_key=settings.downstream_api_key,
        timeout=settings.downstream_timeout,
    )
