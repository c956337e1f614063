"""Parsed-body stage of the HTTP boundary: every route here takes JSON."""

import logging

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from relay.auth import verify_api_key
from relay.errors import RelayError, ValidationError
from relay.gateway import PaymentGateway
from relay.normalizer import OrderConfirmation
from relay.orders import upsert_order

logger = logging.getLogger(__name__)

router = APIRouter()


class CreatePaymentRequest(BaseModel):
    amountPHP: float | None = None
    customer_id: str | int | None = None
    cart_id: str | int | None = None
    shipping_fee: str | int | float | None = None


class VerifyPaymentRequest(BaseModel):
    paymentIntentId: str | None = None


def get_gateway(request: Request) -> PaymentGateway:
    return request.app.state.gateway


def get_db(request: Request):
    db = request.app.state.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@router.get("/")
def health():
    return {"status": "ok", "message": "Stripe backend running"}


@router.post("/create-payment")
def create_payment(
    request: CreatePaymentRequest,
    gateway: PaymentGateway = Depends(get_gateway),
):
    intent = gateway.create_payment_intent(
        request.amountPHP,
        metadata={
            "customer_id": request.customer_id,
            "cart_id": request.cart_id,
            "shipping_fee": request.shipping_fee,
        },
    )
    return {"clientSecret": intent.client_secret, "paymentIntentId": intent.id}


@router.post("/verify-payment")
def verify_payment(
    request: VerifyPaymentRequest,
    gateway: PaymentGateway = Depends(get_gateway),
):
    if not request.paymentIntentId:
        raise ValidationError("paymentIntentId required")

    intent = gateway.retrieve_payment_intent(request.paymentIntentId)
    return {
        "status": intent.status,
        "amountPHP": float(intent.amount),
        "currency": intent.currency,
        "receipt_url": intent.receipt_url,
        "payment_method": intent.payment_method,
    }


@router.post("/confirm-order", dependencies=[Depends(verify_api_key)])
def confirm_order(confirmation: OrderConfirmation, db=Depends(get_db)):
    try:
        upsert_order(db, confirmation)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to store order %s", confirmation.order_ref)
        raise RelayError("Failed to store order") from exc

    return {"status": "ok"}
