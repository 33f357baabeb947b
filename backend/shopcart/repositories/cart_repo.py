from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from shopcart.models.cart import Cart
from shopcart.models.cart_item import CartItem


class CartRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, cart_id: int) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.id == cart_id).first()

    def get_by_user(self, user_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.user_id == user_id).first()

    def get_by_anonymous(self, anonymous_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter(Cart.anonymous_id == anonymous_id).first()

    def create(self, user_id: str = None, anonymous_id: str = None) -> Cart:
        c = Cart(user_id=user_id, anonymous_id=anonymous_id)
        self.db.add(c)
        self.db.flush()
        return c

    def items(self, cart: Cart) -> List[CartItem]:
        """
        Current persisted items. Always re-queried, never taken from a
        possibly stale relationship collection.
        """
        return (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart.id)
            .order_by(CartItem.id)
            .all()
        )

    def get_item(self, cart: Cart, product_id: int) -> Optional[CartItem]:
        return (
            self.db.query(CartItem)
            .filter(CartItem.cart_id == cart.id, CartItem.product_id == product_id)
            .first()
        )

    def add_item(self, cart: Cart, product_id: int, qty: int, price: Decimal) -> CartItem:
        item = CartItem(cart_id=cart.id, product_id=product_id, quantity=qty, price=price)
        self.db.add(item)
        self.db.flush()
        return item

    def increment_item(self, item: CartItem, qty: int) -> CartItem:
        item.quantity = item.quantity + qty
        self.db.flush()
        return item

    def delete_item(self, item: CartItem):
        self.db.delete(item)
        self.db.flush()

    def save_totals(self, cart: Cart, subtotal, discount_amount, total, coupon_code=None):
        cart.subtotal = subtotal
        cart.discount_amount = discount_amount
        cart.total = total
        cart.coupon_code = coupon_code
        self.db.flush()
        return cart

    def clear(self, cart: Cart):
        """Delete items and zero the derived fields; the cart row stays."""
        self.db.query(CartItem).filter(CartItem.cart_id == cart.id).delete(
            synchronize_session=False
        )
        self.save_totals(cart, Decimal("0.00"), Decimal("0.00"), Decimal("0.00"), None)
        self.db.expire(cart, ["items"])

    def delete(self, cart: Cart):
        self.db.delete(cart)
        self.db.flush()
