from decimal import Decimal

import httpx
import pytest

from relay.config import Settings
from relay.database import Base, create_session_factory
from relay.errors import ConfigurationError, DownstreamDeliveryError
from relay.models import Order
from relay.normalizer import OrderConfirmation
from relay.notifier import DatabaseNotifier, HttpNotifier, build_notifier
from stripe_helpers import DOWNSTREAM_KEY, DOWNSTREAM_URL


def _confirmation(**fields):
    values = {
        "payment_intent_id": "pi_notify_1",
        "customer_id": "CUST-1",
        "cart_id": "CART-1",
        "shipping_fee": "50",
        "amount": Decimal("500.00"),
        "currency": "php",
        "receipt_url": "https://pay.stripe.com/receipts/1",
        "payment_method": "visa",
    }
    values.update(fields)
    return OrderConfirmation(**values)


@pytest.fixture
def session_factory(tmp_path):
    engine, SessionLocal = create_session_factory(f"sqlite:///{tmp_path / 'notify.db'}")
    Base.metadata.create_all(bind=engine)
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


def test_http_notifier_posts_payload_with_api_key(mocker):
    response = httpx.Response(200, text="OK", request=httpx.Request("POST", DOWNSTREAM_URL))
    post = mocker.patch("httpx.post", return_value=response)

    HttpNotifier(DOWNSTREAM_URL, api_key=DOWNSTREAM_KEY).deliver(_confirmation())

    post.assert_called_once()
    args, kwargs = post.call_args
    assert args[0] == DOWNSTREAM_URL
    assert kwargs["headers"]["X-API-KEY"] == DOWNSTREAM_KEY
    assert kwargs["json"]["payment_intent_id"] == "pi_notify_1"
    assert kwargs["json"]["amountPHP"] == 500.0
    assert kwargs["timeout"] == 10.0
    assert kwargs["follow_redirects"] is True


def test_http_notifier_timeout_is_a_delivery_failure(mocker):
    mocker.patch("httpx.post", side_effect=httpx.ReadTimeout("timed out"))

    with pytest.raises(DownstreamDeliveryError):
        HttpNotifier(DOWNSTREAM_URL).deliver(_confirmation())


def test_http_notifier_error_status_is_a_delivery_failure(mocker):
    response = httpx.Response(503, text="down", request=httpx.Request("POST", DOWNSTREAM_URL))
    mocker.patch("httpx.post", return_value=response)

    with pytest.raises(DownstreamDeliveryError, match="503"):
        HttpNotifier(DOWNSTREAM_URL).deliver(_confirmation())


def test_database_notifier_is_idempotent(session_factory):
    notifier = DatabaseNotifier(session_factory)

    notifier.deliver(_confirmation())
    notifier.deliver(_confirmation())

    db = session_factory()
    orders = db.query(Order).all()
    assert len(orders) == 1
    assert orders[0].status == "paid"
    assert orders[0].order_ref == "CART-1"
    assert orders[0].amount == Decimal("500.00")
    db.close()


def test_database_notifier_updates_only_payment_fields(session_factory):
    notifier = DatabaseNotifier(session_factory)
    notifier.deliver(_confirmation(status="failed", receipt_url=None))

    notifier.deliver(
        _confirmation(
            payment_intent_id="pi_notify_2",
            customer_id="SOMEONE-ELSE",
            amount=Decimal("1.00"),
            receipt_url="https://pay.stripe.com/receipts/2",
        )
    )

    db = session_factory()
    order = db.query(Order).filter_by(order_ref="CART-1").one()
    assert order.status == "paid"
    assert order.payment_intent_id == "pi_notify_2"
    assert order.receipt_url == "https://pay.stripe.com/receipts/2"
    assert order.customer_id == "CUST-1"
    assert order.amount == Decimal("500.00")
    db.close()


def test_order_ref_falls_back_to_payment_intent(session_factory):
    DatabaseNotifier(session_factory).deliver(_confirmation(cart_id=None))

    db = session_factory()
    assert db.query(Order).one().order_ref == "pi_notify_1"
    db.close()


def test_database_failure_is_a_delivery_failure(tmp_path):
    # tables never created
    engine, SessionLocal = create_session_factory(f"sqlite:///{tmp_path / 'empty.db'}")

    with pytest.raises(DownstreamDeliveryError):
        DatabaseNotifier(SessionLocal).deliver(_confirmation())
    engine.dispose()


def test_build_notifier_selects_strategy():
    http = build_notifier(
        Settings(downstream_url=DOWNSTREAM_URL, downstream_api_key=DOWNSTREAM_KEY), None
    )
    assert isinstance(http, HttpNotifier)
    assert http.timeout == 10.0

    database = build_notifier(Settings(delivery_mode="database"), object())
    assert isinstance(database, DatabaseNotifier)


def test_build_notifier_requires_url_for_http():
    with pytest.raises(ConfigurationError):
        build_notifier(Settings(delivery_mode="http", downstream_url=""), None)


def test_http_notifier_malformed_url_is_a_delivery_failure(mocker):
    mocker.patch("httpx.post", side_effect=httpx.InvalidURL("Invalid URL 'http://'"))

    with pytest.raises(DownstreamDeliveryError):
        HttpNotifier("http://").deliver(_confirmation())
