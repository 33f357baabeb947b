from shopcart.api.deps import get_owner, require_user, service_errors
from shopcart.config import settings
from shopcart.db import get_db
from shopcart.schemas.cart_schema import (
    AddItemIn,
    ApplyCouponIn,
    ApplyCouponOut,
    CartOut,
    CouponPreviewOut,
    CouponSummary,
    MergeIn,
    SetQuantityIn,
)
from shopcart.services.cart_service import CartService, Owner
from shopcart.services.coupon_service import CouponService
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", summary="Get cart", response_model=CartOut)
def get_cart(owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = CartService(db)
    with service_errors("get_cart", owner=owner):
        cart = svc.resolve(owner)
        return CartOut.from_cart(cart)


@router.post("/items", summary="Add item to cart", response_model=CartOut)
def add_item(
    payload: AddItemIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    with service_errors("add_item", owner=owner, product_id=payload.product_id):
        cart = svc.resolve(owner)
        svc.add_item(cart, payload.product_id, payload.quantity)
        return CartOut.from_cart(cart)


@router.put("/items/{product_id}", summary="Set item quantity (0 removes)", response_model=CartOut)
def set_quantity(
    product_id: int,
    payload: SetQuantityIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    with service_errors("set_quantity", owner=owner, product_id=product_id):
        cart = svc.resolve(owner)
        svc.set_quantity(cart, product_id, payload.quantity)
        return CartOut.from_cart(cart)


@router.delete("/items/{product_id}", summary="Remove item", response_model=CartOut)
def remove_item(
    product_id: int, owner: Owner = Depends(get_owner), db: Session = Depends(get_db)
):
    svc = CartService(db)
    with service_errors("remove_item", owner=owner, product_id=product_id):
        cart = svc.resolve(owner)
        svc.remove_item(cart, product_id)
        return CartOut.from_cart(cart)


@router.post("/clear", summary="Remove every item and the coupon", response_model=CartOut)
def clear_cart(owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    svc = CartService(db)
    with service_errors("clear_cart", owner=owner):
        cart = svc.clear(owner)
        return CartOut.from_cart(cart)


@router.post("/merge", summary="Merge anonymous cart into the signed-in user's cart", response_model=CartOut)
def merge(
    payload: MergeIn,
    response: Response,
    user_id: str = Depends(require_user),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    with service_errors("merge", anonymous_id=payload.anonymous_id, user_id=user_id):
        cart = svc.merge(payload.anonymous_id, user_id)
        response.delete_cookie(settings.ANON_COOKIE_NAME)
        return CartOut.from_cart(cart)


@router.get("/coupon/preview", summary="Check a coupon without applying it", response_model=CouponPreviewOut)
def preview_coupon(
    code: str = Query(..., min_length=1, max_length=50),
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    carts = CartService(db)
    with service_errors("preview_coupon", owner=owner, code=code):
        cart = carts.resolve(owner)
        coupon, totals = CouponService(db, carts).preview(cart, code)
        return CouponPreviewOut(
            coupon=CouponSummary.from_coupon(coupon),
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            total=totals.total,
        )


@router.post("/coupon", summary="Apply coupon", response_model=ApplyCouponOut)
def apply_coupon(
    payload: ApplyCouponIn,
    owner: Owner = Depends(get_owner),
    db: Session = Depends(get_db),
):
    carts = CartService(db)
    with service_errors("apply_coupon", owner=owner, code=payload.code, cart_id=payload.cart_id):
        cart = carts.get_owned(owner, payload.cart_id)
        cart, coupon = CouponService(db, carts).apply(cart, payload.code, owner.user_id)
        return ApplyCouponOut(
            cart=CartOut.from_cart(cart), coupon=CouponSummary.from_coupon(coupon)
        )


@router.delete("/coupon", summary="Remove coupon", response_model=CartOut)
def remove_coupon(owner: Owner = Depends(get_owner), db: Session = Depends(get_db)):
    carts = CartService(db)
    with service_errors("remove_coupon", owner=owner):
        cart = carts.resolve(owner)
        CouponService(db, carts).remove(cart)
        return CartOut.from_cart(cart)
