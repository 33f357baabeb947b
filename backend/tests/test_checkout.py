import json
from decimal import Decimal

import pytest
from sqlalchemy import select

from shopcart.adapters.mock_payment import MockPaymentAdapter
from shopcart.db import SessionLocal
from shopcart.models.coupon import Coupon
from shopcart.models.coupon_usage import CouponUsage
from shopcart.models.order import Order
from shopcart.models.product import Product
from shopcart.services.cart_service import Owner
from shopcart.services.exceptions import EmptyCart, NotFound
from shopcart.services.order_service import OrderService

USER = {"X-User-Id": "buyer-1"}


def _send(client, intent, event_type="payment_intent.succeeded", signature=None):
    payments = MockPaymentAdapter()
    body = payments.build_event(intent, event_type)
    sig = signature if signature is not None else payments.sign(body)
    return client.post(
        "/api/webhooks/payment",
        content=body,
        headers={"X-Payment-Signature": sig, "Content-Type": "application/json"},
    )


def _intent_for(checkout):
    return {
        "id": checkout["payment_intent_id"],
        "amount": checkout["amount_cents"],
        "currency": checkout["currency"],
        "metadata": {"cart_id": str(checkout["cart_id"])},
    }


def _checkout_with_coupon(client, make_product, make_coupon, stock=10):
    pid = make_product(price="49.99", stock=stock)
    cid = make_coupon(code="WELCOME10", minimum_amount="50")
    assert client.post("/api/cart/items", json={"product_id": pid, "quantity": 2}, headers=USER).status_code == 200
    assert client.post("/api/cart/coupon", json={"code": "WELCOME10"}, headers=USER).status_code == 200
    res = client.post("/api/checkout", headers=USER)
    assert res.status_code == 200
    return pid, cid, res.json()


def test_checkout_empty_cart(client):
    res = client.post("/api/checkout", headers=USER)
    assert res.status_code == 400
    assert res.json()["detail"] == "Cart is empty"


def test_checkout_uses_server_totals(client, make_product, make_coupon):
    _, _, body = _checkout_with_coupon(client, make_product, make_coupon)

    assert Decimal(body["subtotal"]) == Decimal("99.98")
    assert Decimal(body["discount_amount"]) == Decimal("9.99")
    assert Decimal(body["total"]) == Decimal("89.99")
    assert body["coupon_code"] == "WELCOME10"
    assert body["amount_cents"] == 8999
    assert body["currency"] == "usd"
    assert body["payment_intent_id"].startswith("pi_mock_")
    assert body["client_secret"].startswith(body["payment_intent_id"])


def test_webhook_materializes_order_once(client, make_product, make_coupon):
    pid, cid, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    intent = _intent_for(checkout)

    res = _send(client, intent)
    assert res.status_code == 200
    order_number = res.json()["order_number"]
    assert order_number.startswith("ORD-")

    # redelivery is a no-op
    res = _send(client, intent)
    assert res.status_code == 200
    assert res.json()["order_number"] == order_number

    with SessionLocal() as s:
        orders = s.query(Order).all()
        assert len(orders) == 1
        order = orders[0]
        assert order.total == Decimal("89.99")
        assert order.discount_amount == Decimal("9.99")
        assert order.coupon_code == "WELCOME10"
        assert order.user_id == "buyer-1"
        assert [(ln.product_id, ln.qty, ln.price) for ln in order.lines] == [(pid, 2, Decimal("49.99"))]

        assert s.get(Product, pid).stock == 8
        # redemption stays counted; the ledger row for the cart is gone
        assert s.execute(select(Coupon.used_count).where(Coupon.id == cid)).scalar_one() == 1
        assert s.query(CouponUsage).count() == 0

    cart = client.get("/api/cart", headers=USER).json()
    assert cart["items"] == []
    assert cart["coupon_code"] is None
    assert Decimal(cart["total"]) == Decimal("0")


def test_coupon_reusable_after_order(client, make_product, make_coupon):
    pid, cid, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    assert _send(client, _intent_for(checkout)).status_code == 200

    client.post("/api/cart/items", json={"product_id": pid, "quantity": 2}, headers=USER)
    res = client.post("/api/cart/coupon", json={"code": "WELCOME10"}, headers=USER)
    assert res.status_code == 200
    assert res.json()["cart"]["coupon_code"] == "WELCOME10"

    with SessionLocal() as s:
        assert s.execute(select(Coupon.used_count).where(Coupon.id == cid)).scalar_one() == 2


def test_webhook_bad_signature(client, make_product, make_coupon):
    _, _, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    res = _send(client, _intent_for(checkout), signature="deadbeef")
    assert res.status_code == 400

    res = _send(client, _intent_for(checkout), signature="")
    assert res.status_code == 400

    with SessionLocal() as s:
        assert s.query(Order).count() == 0


def test_webhook_ignores_other_events(client, make_product, make_coupon):
    _, _, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    res = _send(client, _intent_for(checkout), event_type="payment_intent.created")
    assert res.status_code == 200
    assert res.json() == {"received": True}

    with SessionLocal() as s:
        assert s.query(Order).count() == 0


def test_webhook_requires_cart_metadata(client):
    res = _send(client, {"id": "pi_mock_x", "amount": 100, "metadata": {}})
    assert res.status_code == 400

    res = _send(client, {"id": "pi_mock_x", "amount": 100, "metadata": {"cart_id": "abc"}})
    assert res.status_code == 400

    res = _send(client, {"id": "pi_mock_x", "amount": 100, "metadata": {"cart_id": "424242"}})
    assert res.status_code == 404


def test_list_orders(client, make_product, make_coupon):
    _, _, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    _send(client, _intent_for(checkout))

    assert client.get("/api/orders").status_code == 401

    res = client.get("/api/orders", headers=USER)
    assert res.status_code == 200
    orders = res.json()
    assert len(orders) == 1
    assert orders[0]["payment_intent_id"] == checkout["payment_intent_id"]
    assert orders[0]["lines"][0]["qty"] == 2

    assert client.get("/api/orders", headers={"X-User-Id": "someone-else"}).json() == []


def test_materialize_errors(db):
    svc = OrderService(db)
    with pytest.raises(NotFound):
        svc.materialize("pi_mock_missing", 999)

    cart = svc.carts.resolve(Owner(user_id="u1"))
    with pytest.raises(EmptyCart):
        svc.materialize("pi_mock_empty", cart.id)


def test_signed_payload_roundtrip():
    payments = MockPaymentAdapter(secret="s3cret")
    intent = payments.create_intent(1234, "usd", {"cart_id": 7, "coupon_code": None})
    assert intent["metadata"] == {"cart_id": "7", "coupon_code": ""}

    body = payments.build_event(intent)
    event = payments.verify_signature(body, payments.sign(body))
    assert event["data"]["object"]["id"] == intent["id"]
    assert json.loads(body)["type"] == "payment_intent.succeeded"

    with pytest.raises(ValueError):
        payments.create_intent(-1, "usd", {})


def test_cart_changed_after_checkout_holds_order(client, make_product, make_coupon):
    pid, cid, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    # shopper keeps shopping after the intent was created
    res = client.post("/api/cart/items", json={"product_id": pid, "quantity": 1}, headers=USER)
    assert Decimal(res.json()["total"]) == Decimal("134.98")

    res = _send(client, _intent_for(checkout))
    assert res.status_code == 200
    assert res.json()["status"] == "AMOUNT_MISMATCH"

    with SessionLocal() as s:
        order = s.query(Order).one()
        assert order.status == "AMOUNT_MISMATCH"
        assert order.amount_paid == Decimal("89.99")
        assert s.get(Product, pid).stock == 10
        assert s.execute(select(Coupon.used_count).where(Coupon.id == cid)).scalar_one() == 1
        assert s.query(CouponUsage).count() == 1

    cart = client.get("/api/cart", headers=USER).json()
    assert cart["items"][0]["quantity"] == 3
    assert cart["coupon_code"] == "WELCOME10"

    # a fresh checkout of the current cart goes through normally
    res = client.post("/api/checkout", headers=USER)
    res = _send(client, _intent_for(res.json()))
    assert res.json()["status"] == "PAID"
    with SessionLocal() as s:
        assert s.get(Product, pid).stock == 7


def test_refund_and_failure_events_move_order_status(client, make_product, make_coupon):
    _, _, checkout = _checkout_with_coupon(client, make_product, make_coupon)
    assert _send(client, _intent_for(checkout)).json()["status"] == "PAID"

    charge = {"id": "ch_mock_1", "object": "charge", "payment_intent": checkout["payment_intent_id"]}
    res = _send(client, charge, event_type="charge.refunded")
    assert res.status_code == 200
    assert res.json()["status"] == "REFUNDED"

    orders = client.get("/api/orders", headers=USER).json()
    assert orders[0]["status"] == "REFUNDED"

    # no order behind this intent: acknowledged, nothing created
    res = _send(client, {"id": "pi_mock_unknown"}, event_type="payment_intent.payment_failed")
    assert res.json() == {"received": True}

    res = _send(client, {"id": "ch_mock_2", "object": "charge"}, event_type="charge.refunded")
    assert res.status_code == 400


def test_mark_status(db):
    svc = OrderService(db)
    assert svc.mark_status("pi_mock_nothing", "REFUNDED") is None
