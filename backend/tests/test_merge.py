from decimal import Decimal

import pytest
from sqlalchemy import select

from shopcart.db import SessionLocal
from shopcart.models.cart import Cart
from shopcart.models.coupon import Coupon, DiscountType
from shopcart.models.coupon_usage import CouponUsage
from shopcart.services.cart_service import CartService, Owner
from shopcart.services.coupon_service import CouponService
from shopcart.services.exceptions import NotFound


def _quantities(svc, cart):
    return {it.product_id: it.quantity for it in svc.cart_repo.items(cart)}


def _used(db, coupon_id):
    return db.execute(select(Coupon.used_count).where(Coupon.id == coupon_id)).scalar_one()


def test_merge_adds_quantities_and_copies_items(db, make_product):
    a = make_product(db, price="10.00")
    b = make_product(db, price="4.00")
    svc = CartService(db)

    anon = svc.resolve(Owner(anonymous_id="anon_m1"))
    svc.add_item(anon, a, 2)
    svc.add_item(anon, b, 1)
    user = svc.resolve(Owner(user_id="u1"))
    svc.add_item(user, a, 1)

    merged = svc.merge("anon_m1", "u1")

    assert merged.id == user.id
    assert _quantities(svc, merged) == {a: 3, b: 1}
    assert merged.subtotal == Decimal("34.00")
    assert merged.total == Decimal("34.00")
    assert svc.cart_repo.get_by_anonymous("anon_m1") is None


def test_merge_into_new_user_cart(db, make_product):
    a = make_product(db, price="8.00")
    svc = CartService(db)
    anon = svc.resolve(Owner(anonymous_id="anon_m2"))
    svc.add_item(anon, a, 2)

    merged = svc.merge("anon_m2", "fresh-user")
    assert merged.user_id == "fresh-user"
    assert _quantities(svc, merged) == {a: 2}
    assert db.query(Cart).count() == 1


def test_merge_carries_coupon_and_its_usage(db, make_product, make_coupon):
    a = make_product(db, price="49.99")
    cid = make_coupon(db, code="WELCOME10")
    svc = CartService(db)
    coupons = CouponService(db, svc)

    anon = svc.resolve(Owner(anonymous_id="anon_m3"))
    svc.add_item(anon, a, 2)
    coupons.apply(anon, "WELCOME10")
    anon_id = anon.id

    merged = svc.merge("anon_m3", "u1")

    assert merged.coupon_code == "WELCOME10"
    assert merged.total == Decimal("89.99")
    usages = db.query(CouponUsage).filter(CouponUsage.coupon_id == cid).all()
    assert [u.cart_id for u in usages] == [merged.id]
    assert merged.id != anon_id
    assert _used(db, cid) == 1


def test_merge_keeps_user_coupon_and_releases_anonymous_one(db, make_product, make_coupon):
    a = make_product(db, price="50.00")
    welcome = make_coupon(db, code="WELCOME10")
    five = make_coupon(db, code="FIVEOFF", discount_type=DiscountType.FIXED, value="5")
    svc = CartService(db)
    coupons = CouponService(db, svc)

    user = svc.resolve(Owner(user_id="u1"))
    svc.add_item(user, a, 1)
    coupons.apply(user, "FIVEOFF", "u1")

    anon = svc.resolve(Owner(anonymous_id="anon_m4"))
    svc.add_item(anon, a, 1)
    coupons.apply(anon, "WELCOME10")

    merged = svc.merge("anon_m4", "u1")

    assert merged.coupon_code == "FIVEOFF"
    assert merged.subtotal == Decimal("100.00")
    assert merged.total == Decimal("95.00")
    assert _used(db, welcome) == 0
    assert db.query(CouponUsage).filter(CouponUsage.coupon_id == welcome).count() == 0
    assert _used(db, five) == 1


def test_merge_unknown_anonymous_cart(db):
    with pytest.raises(NotFound):
        CartService(db).merge("anon_missing", "u1")


def test_api_merge(client, make_product):
    pid = make_product(price="3.00")
    res = client.post("/api/cart/items", json={"product_id": pid, "quantity": 2})
    assert res.status_code == 200
    anonymous_id = res.cookies["cart_uuid"]

    res = client.post("/api/cart/merge", json={"anonymous_id": anonymous_id})
    assert res.status_code == 401

    res = client.post(
        "/api/cart/merge", json={"anonymous_id": anonymous_id}, headers={"X-User-Id": "u-merge"}
    )
    assert res.status_code == 200
    body = res.json()
    assert body["user_id"] == "u-merge"
    assert body["items"][0]["quantity"] == 2
    assert Decimal(body["total"]) == Decimal("6.00")

    with SessionLocal() as s:
        assert s.query(Cart).filter(Cart.anonymous_id == anonymous_id).first() is None

    res = client.post(
        "/api/cart/merge", json={"anonymous_id": anonymous_id}, headers={"X-User-Id": "u-merge"}
    )
    assert res.status_code == 404
