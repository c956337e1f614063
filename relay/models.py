from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from relay.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_ref = Column(String(255), unique=True, index=True, nullable=False)  # cart id, else intent id
    payment_intent_id = Column(String(255), index=True)                       # Stripe PaymentIntent ID
    customer_id = Column(String(255))
    cart_id = Column(String(255))
    shipping_fee = Column(String(64))
    amount = Column(Numeric(12, 2))
    currency = Column(String(8))
    receipt_url = Column(String(1024))
    payment_method = Column(String(64))
    status = Column(String(16))                                               # paid | failed
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
