from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from shopcart.adapters.mock_payment import MockPaymentAdapter, PaymentSignatureError
from shopcart.api.deps import (
    get_owner,
    get_payment_adapter,
    raw_body,
    require_user,
    service_errors,
)
from shopcart.config import settings
from shopcart.db import get_db
from shopcart.models.order import OrderStatus
from shopcart.schemas.order_schema import CheckoutOut, OrderOut
from shopcart.services.cart_service import CartService, Owner
from shopcart.services.order_service import OrderService
from shopcart.services.totals import to_cents
from shopcart.utils.logs import get_logger

log = get_logger("payments")

router = APIRouter(tags=["orders"])

# non-success provider events that move an existing order
STATUS_EVENTS = {
    "payment_intent.payment_failed": OrderStatus.CANCELLED,
    "charge.refunded": OrderStatus.REFUNDED,
}


@router.post("/api/checkout", summary="Prepare checkout and create a payment intent", response_model=CheckoutOut)
def checkout(
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
    payments: MockPaymentAdapter = Depends(get_payment_adapter),
):
    with service_errors("checkout", owner=owner):
        summary = CartService(db).prepare_checkout(owner)
        amount_cents = to_cents(summary["total"])
        intent = payments.create_intent(
            amount_cents,
            settings.PAYMENT_CURRENCY,
            metadata={
                "cart_id": summary["cart_id"],
                "user_id": owner.user_id,
                "subtotal": summary["subtotal"],
                "discount_amount": summary["discount_amount"],
                "total": summary["total"],
                "coupon_code": summary["coupon_code"],
            },
        )
        log.info(
            f"checkout cart={summary['cart_id']} intent={intent['id']} amount={amount_cents}"
        )
        return CheckoutOut(
            **summary,
            payment_intent_id=intent["id"],
            client_secret=intent["client_secret"],
            amount_cents=amount_cents,
            currency=intent["currency"],
        )


@router.post("/api/webhooks/payment", summary="Payment provider callback")
def payment_webhook(
    body: bytes = Depends(raw_body),
    x_payment_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    payments: MockPaymentAdapter = Depends(get_payment_adapter),
):
    try:
        event = payments.verify_signature(body, x_payment_signature)
    except PaymentSignatureError as e:
        log.warning(f"webhook rejected: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type in STATUS_EVENTS:
        # refunds arrive on the charge, failures on the intent itself
        if event_type.startswith("charge."):
            payment_intent_id = obj.get("payment_intent")
        else:
            payment_intent_id = obj.get("id")
        if not payment_intent_id:
            raise HTTPException(status_code=400, detail="Payment intent id is required")
        with service_errors("payment_webhook", event_type=event_type, payment_intent_id=payment_intent_id):
            order = OrderService(db).mark_status(payment_intent_id, STATUS_EVENTS[event_type])
            if order is None:
                return {"received": True}
            return {"received": True, "order_number": order.order_number, "status": order.status}

    if event_type != "payment_intent.succeeded":
        log.info(f"webhook: unhandled event type {event_type!r}")
        return {"received": True}

    payment_intent_id = obj.get("id")
    cart_id = (obj.get("metadata") or {}).get("cart_id")
    if not payment_intent_id or not cart_id:
        raise HTTPException(status_code=400, detail="Payment intent id and cart_id metadata are required")
    try:
        cart_id = int(cart_id)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="cart_id metadata must be an integer")

    with service_errors("payment_webhook", payment_intent_id=payment_intent_id, cart_id=cart_id):
        order = OrderService(db).materialize(payment_intent_id, cart_id, obj.get("amount"))
        return {"received": True, "order_number": order.order_number, "status": order.status}


@router.get("/api/orders", summary="List the signed-in user's orders", response_model=List[OrderOut])
def list_orders(user_id: str = Depends(require_user), db: Session = Depends(get_db)):
    orders = OrderService(db).list_for_user(user_id)
    return [OrderOut.model_validate(o) for o in orders]
