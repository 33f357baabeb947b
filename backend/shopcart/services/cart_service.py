import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopcart.models.cart import Cart
from shopcart.repositories.cart_repo import CartRepository
from shopcart.repositories.coupon_repo import CouponRepository
from shopcart.repositories.product_repo import ProductRepository
from shopcart.services.exceptions import (
    CartValidationError,
    EmptyCart,
    InsufficientStock,
    NotFound,
    Unauthorized,
)
from shopcart.services.totals import recompute
from shopcart.utils.logs import get_logger
from shopcart.utils.transactions import smart_transaction

log = get_logger("cart")


def new_anonymous_id() -> str:
    return f"anon_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class Owner:
    """Who a cart belongs to: a signed-in user or an anonymous session token."""

    user_id: Optional[str] = None
    anonymous_id: Optional[str] = None

    def __post_init__(self):
        if bool(self.user_id) == bool(self.anonymous_id):
            raise CartValidationError(
                "Exactly one of user_id or anonymous_id is required"
            )


class CartService:
    def __init__(self, db: Session):
        self.db = db
        self.cart_repo = CartRepository(db)
        self.product_repo = ProductRepository(db)
        self.coupon_repo = CouponRepository(db)

    # ------------------------------------------------------------------
    # resolution
    # ------------------------------------------------------------------
    def _lookup(self, owner: Owner) -> Optional[Cart]:
        if owner.user_id:
            return self.cart_repo.get_by_user(owner.user_id)
        return self.cart_repo.get_by_anonymous(owner.anonymous_id)

    def resolve(self, owner: Owner) -> Cart:
        """Return the owner's cart, creating an empty one on first use."""
        cart = self._lookup(owner)
        if cart:
            return cart
        try:
            with smart_transaction(self.db):
                cart = self.cart_repo.create(
                    user_id=owner.user_id, anonymous_id=owner.anonymous_id
                )
        except IntegrityError:
            # a concurrent request created it first
            log.info(f"resolve(): lost create race for owner={owner}, re-reading")
            cart = self._lookup(owner)
            if cart is None:
                raise
        self.db.commit()
        return cart

    def get_owned(self, owner: Owner, cart_id: Optional[int] = None) -> Cart:
        """
        Resolve the owner's cart; if the caller also named a cart id it must
        be that same cart.
        """
        cart = self.resolve(owner)
        if cart_id is not None and cart.id != cart_id:
            log.warning(f"cart ownership mismatch owner={owner} cart_id={cart_id}")
            raise Unauthorized("Cart does not belong to this session")
        return cart

    # ------------------------------------------------------------------
    # totals
    # ------------------------------------------------------------------
    def refresh_totals(self, cart: Cart) -> Cart:
        """
        Recompute subtotal/discount/total from the persisted items and the
        applied coupon, then persist. An emptied cart gives its coupon back.
        """
        items = self.cart_repo.items(cart)
        code = cart.coupon_code
        coupon = self.coupon_repo.get_by_code(code) if code else None

        if code and not items:
            with smart_transaction(self.db):
                if coupon:
                    self.coupon_repo.release(coupon, cart.id)
            log.info(f"cart {cart.id} emptied, released coupon {code}")
            code, coupon = None, None
        elif code and coupon is None:
            log.warning(f"cart {cart.id} carried unknown coupon {code}, dropping it")
            code = None

        totals = recompute(items, coupon.discount if coupon else None)
        self.cart_repo.save_totals(
            cart, totals.subtotal, totals.discount_amount, totals.total, code
        )
        self.db.expire(cart, ["items"])
        return cart

    # ------------------------------------------------------------------
    # item mutation
    # ------------------------------------------------------------------
    def add_item(self, cart: Cart, product_id: int, quantity: int) -> Cart:
        if quantity < 1:
            raise CartValidationError("Quantity must be at least 1")
        product = self.product_repo.get(product_id)
        if not product:
            raise NotFound("Product not found")

        # read-then-write: two concurrent adds on the same cart can both pass
        item = self.cart_repo.get_item(cart, product_id)
        existing = item.quantity if item else 0
        if not product.is_available(existing + quantity):
            raise InsufficientStock(
                f"Not enough stock. Available={product.stock}, in cart={existing}"
            )

        if item:
            self.cart_repo.increment_item(item, quantity)
        else:
            try:
                with smart_transaction(self.db):
                    self.cart_repo.add_item(cart, product_id, quantity, product.price)
            except IntegrityError:
                item = self.cart_repo.get_item(cart, product_id)
                if item is None:
                    raise
                self.cart_repo.increment_item(item, quantity)

        self.refresh_totals(cart)
        self.db.commit()
        log.debug(f"add_item cart={cart.id} product={product_id} qty={quantity}")
        return cart

    def set_quantity(self, cart: Cart, product_id: int, quantity: int) -> Cart:
        if quantity < 0:
            raise CartValidationError("Quantity cannot be negative")
        item = self.cart_repo.get_item(cart, product_id)
        if not item:
            raise NotFound("Item not in cart")

        if quantity == 0:
            self.cart_repo.delete_item(item)
        else:
            product = self.product_repo.get(product_id)
            if not product:
                # delisted since it was added: the shopper may only go down
                if quantity > item.quantity:
                    raise NotFound("Product not found")
            elif quantity > item.quantity and not product.is_available(quantity):
                raise InsufficientStock(f"Not enough stock. Available={product.stock}")
            item.quantity = quantity
            self.db.flush()

        self.refresh_totals(cart)
        self.db.commit()
        return cart

    def remove_item(self, cart: Cart, product_id: int) -> Cart:
        item = self.cart_repo.get_item(cart, product_id)
        if not item:
            raise NotFound("Item not in cart")
        self.cart_repo.delete_item(item)
        self.refresh_totals(cart)
        self.db.commit()
        return cart

    def clear(self, owner: Owner) -> Cart:
        """Empty the owner's cart. An applied coupon gives its redemption back."""
        cart = self.resolve(owner)
        code = cart.coupon_code
        with smart_transaction(self.db):
            coupon = self.coupon_repo.get_by_code(code) if code else None
            if coupon and self.coupon_repo.release(coupon, cart.id):
                log.info(f"clear(): released coupon {coupon.code} from cart {cart.id}")
            self.cart_repo.clear(cart)
        self.db.commit()
        log.info(f"cleared cart {cart.id} owner={owner}")
        return cart

    # ------------------------------------------------------------------
    # merge
    # ------------------------------------------------------------------
    def merge(self, anonymous_id: str, user_id: str) -> Cart:
        """
        Fold an anonymous cart into the user's cart at sign-in.

        Quantities of shared products are added; other items are copied with
        their original price snapshot. The anonymous coupon is carried over
        only when the user cart has none, and its ledger row moves with it so
        used_count stays matched to live usages.
        """
        anon = self.cart_repo.get_by_anonymous(anonymous_id)
        if not anon:
            raise NotFound("Anonymous cart not found")
        target = self.resolve(Owner(user_id=user_id))

        for it in self.cart_repo.items(anon):
            found = self.cart_repo.get_item(target, it.product_id)
            if found:
                self.cart_repo.increment_item(found, it.quantity)
            else:
                self.cart_repo.add_item(target, it.product_id, it.quantity, it.price)

        if anon.coupon_code:
            coupon = self.coupon_repo.get_by_code(anon.coupon_code)
            usage = self.coupon_repo.get_usage(coupon.id, anon.id) if coupon else None
            if coupon and not target.coupon_code:
                target.coupon_code = coupon.code
                if usage and not self.coupon_repo.get_usage(coupon.id, target.id):
                    self.coupon_repo.move_usage(usage, target.id, user_id)
                elif usage:
                    self.coupon_repo.release(coupon, anon.id)
                log.info(f"merge carried coupon {coupon.code} into cart {target.id}")
            elif usage:
                # first-applied wins: the user cart keeps its own coupon
                self.coupon_repo.release(coupon, anon.id)

        self.cart_repo.delete(anon)
        self.refresh_totals(target)
        self.db.commit()
        log.info(f"merged anonymous cart {anonymous_id} into user {user_id} cart={target.id}")
        return target

    # ------------------------------------------------------------------
    # checkout
    # ------------------------------------------------------------------
    def prepare_checkout(self, owner: Owner) -> Dict:
        """
        Authoritative totals for the payment step. Always recomputed here;
        nothing the client sent about amounts is used.
        """
        cart = self.resolve(owner)
        self.refresh_totals(cart)
        self.db.commit()
        if not self.cart_repo.items(cart):
            raise EmptyCart("Cart is empty")
        return {
            "cart_id": cart.id,
            "subtotal": cart.subtotal,
            "discount_amount": cart.discount_amount,
            "total": cart.total,
            "coupon_code": cart.coupon_code,
        }
