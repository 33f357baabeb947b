from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopcart.models.cart import Cart
from shopcart.models.coupon import Coupon
from shopcart.repositories.cart_repo import CartRepository
from shopcart.repositories.coupon_repo import CouponRepository, normalize_code
from shopcart.services.cart_service import CartService
from shopcart.services.exceptions import CouponValidationError, NotFound
from shopcart.services.totals import Totals, recompute, subtotal_of
from shopcart.utils.logs import get_logger
from shopcart.utils.transactions import smart_transaction

log = get_logger("coupons")


class CouponService:
    """
    Apply/remove a coupon on a cart as an idempotent state transition.

    The CouponUsage row for (coupon, cart) is the record of "applied".
    Applying twice, or two racing applies on the same cart, end in the same
    state with used_count incremented once.
    """

    def __init__(self, db: Session, carts: Optional[CartService] = None):
        self.db = db
        self.carts = carts or CartService(db)
        self.cart_repo = CartRepository(db)
        self.coupon_repo = CouponRepository(db)

    def _lookup(self, code: str) -> Coupon:
        coupon = self.coupon_repo.get_by_code(code)
        if not coupon:
            raise NotFound("Coupon not found")
        return coupon

    def validate(self, cart: Cart, coupon: Coupon, now: Optional[datetime] = None) -> Totals:
        """
        Read-only eligibility check. Returns the totals the cart would have
        with this coupon; raises CouponValidationError otherwise.
        """
        if not coupon.is_active:
            raise CouponValidationError("Coupon is not active")
        if not coupon.is_within_window(now):
            raise CouponValidationError("Coupon is expired or not yet valid")
        if not coupon.has_remaining_uses():
            raise CouponValidationError("Coupon usage limit reached")

        items = self.cart_repo.items(cart)
        if not items:
            raise CouponValidationError("Cannot apply a coupon to an empty cart")

        subtotal = subtotal_of(items)
        if subtotal < coupon.minimum_amount:
            raise CouponValidationError(
                f"Minimum purchase of {coupon.minimum_amount} required "
                f"(cart subtotal: {subtotal})"
            )

        allowed = coupon.applicable_categories
        if allowed and not any(it.product.category in allowed for it in items):
            raise CouponValidationError(
                "Coupon does not apply to the products in this cart"
            )
        return recompute(items, coupon.discount)

    def preview(self, cart: Cart, code: str) -> Tuple[Coupon, Totals]:
        coupon = self._lookup(code)
        if self.coupon_repo.get_usage(coupon.id, cart.id):
            return coupon, recompute(self.cart_repo.items(cart), coupon.discount)
        return coupon, self.validate(cart, coupon)

    def _release_current(self, cart: Cart):
        """Unapply whatever coupon the cart holds. Caller owns the transaction."""
        coupon = self.coupon_repo.get_by_code(cart.coupon_code)
        if coupon:
            if self.coupon_repo.release(coupon, cart.id):
                log.info(f"released coupon {coupon.code} (id={coupon.id}) from cart {cart.id}")
        else:
            log.warning(f"cart {cart.id} held unknown coupon {cart.coupon_code!r}, clearing")
        cart.coupon_code = None
        self.db.flush()

    def apply(self, cart: Cart, code: str, user_id: Optional[str] = None) -> Tuple[Cart, Coupon]:
        coupon = self._lookup(code)

        if self.coupon_repo.get_usage(coupon.id, cart.id):
            log.info(f"apply(): coupon {coupon.code} already applied to cart {cart.id}")
            if cart.coupon_code != coupon.code:
                cart.coupon_code = coupon.code
            self.carts.refresh_totals(cart)
            self.db.commit()
            return cart, coupon

        self.validate(cart, coupon)

        try:
            with smart_transaction(self.db):
                if cart.coupon_code and normalize_code(cart.coupon_code) != coupon.code:
                    self._release_current(cart)
                self.coupon_repo.add_usage(coupon.id, cart.id, user_id)
                if not self.coupon_repo.increment_used(coupon):
                    # validate() saw a free slot but another cart took it since
                    raise CouponValidationError("Coupon usage limit reached")
                cart.coupon_code = coupon.code
                self.db.flush()
        except IntegrityError:
            # a racing request on this cart inserted the usage first; its
            # intent (coupon applied) is already satisfied
            log.info(
                f"apply(): usage race on coupon={coupon.id} cart={cart.id}, treating as applied"
            )
            self.db.refresh(cart)
        else:
            log.info(f"applied coupon {coupon.code} (id={coupon.id}) to cart {cart.id}")

        self.carts.refresh_totals(cart)
        self.db.commit()
        return cart, coupon

    def remove(self, cart: Cart) -> Cart:
        if not cart.coupon_code:
            log.debug(f"remove(): cart {cart.id} has no coupon, nothing to do")
            return cart
        with smart_transaction(self.db):
            self._release_current(cart)
        self.carts.refresh_totals(cart)
        self.db.commit()
        return cart
