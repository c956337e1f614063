import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from relay.models import Order
from relay.normalizer import OrderConfirmation

logger = logging.getLogger(__name__)


def _apply_update(order: Order, confirmation: OrderConfirmation) -> None:
    order.status = confirmation.status
    order.receipt_url = confirmation.receipt_url
    order.payment_intent_id = confirmation.payment_intent_id


def upsert_order(db: Session, confirmation: OrderConfirmation) -> Order:
    """Insert the order if it is new, otherwise refresh its payment fields.

    Redelivering the same confirmation leaves exactly one row behind.
    The caller must commit; the session should hold no other pending work.
    """
    order_ref = confirmation.order_ref
    order = db.query(Order).filter_by(order_ref=order_ref).first()
    if order:
        _apply_update(order, confirmation)
        db.flush()
        logger.info("Updated order %s -> %s", order_ref, confirmation.status)
        return order

    order = Order(
        order_ref=order_ref,
        payment_intent_id=confirmation.payment_intent_id,
        customer_id=confirmation.customer_id,
        cart_id=confirmation.cart_id,
        shipping_fee=confirmation.shipping_fee,
        amount=confirmation.amount,
        currency=confirmation.currency,
        receipt_url=confirmation.receipt_url,
        payment_method=confirmation.payment_method,
        status=confirmation.status,
    )
    db.add(order)
    try:
        db.flush()
    except IntegrityError:
        # another delivery inserted the same order first
        db.rollback()
        order = db.query(Order).filter_by(order_ref=order_ref).one()
        _apply_update(order, confirmation)
        db.flush()
        logger.info("Updated order %s after concurrent insert", order_ref)
        return order

    logger.info("Stored order %s (%s)", order_ref, confirmation.payment_intent_id)
    return order
