from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopcart.models.order import Order, OrderLine, OrderStatus
from shopcart.repositories.cart_repo import CartRepository
from shopcart.repositories.coupon_repo import CouponRepository
from shopcart.repositories.order_repo import OrderRepository
from shopcart.repositories.product_repo import ProductRepository
from shopcart.services.cart_service import CartService
from shopcart.services.exceptions import EmptyCart, NotFound
from shopcart.services.totals import to_cents
from shopcart.utils.logs import get_logger
from shopcart.utils.transactions import smart_transaction

log = get_logger("orders")


class OrderService:
    def __init__(self, db: Session):
        self.db = db
        self.carts = CartService(db)
        self.cart_repo = CartRepository(db)
        self.coupon_repo = CouponRepository(db)
        self.product_repo = ProductRepository(db)
        self.order_repo = OrderRepository(db)

    def _gen_order_number(self) -> str:
        return f"ORD-{uuid4().hex[:10].upper()}"

    def list_for_user(self, user_id: str) -> List[Order]:
        return self.order_repo.list_for_user(user_id)

    def materialize(
        self, payment_intent_id: str, cart_id: int, amount_cents: Optional[int] = None
    ) -> Order:
        """
        Turn a paid cart into an immutable order. Safe under webhook redelivery:
        one order per payment intent, stock decremented once.

        In one transaction: snapshot lines and totals, decrement stock, delete
        the cart's coupon usages (the redemption stays counted) and clear the cart.

        When the amount the provider charged differs from the cart's current
        total (the cart changed after checkout) the order is recorded as
        AMOUNT_MISMATCH for reconciliation only: no stock moves and the cart,
        coupon included, is left as it is.
        """
        existing = self.order_repo.get_by_payment_intent(payment_intent_id)
        if existing:
            log.info(f"materialize(): intent {payment_intent_id} already -> order {existing.order_number}")
            return existing

        cart = self.cart_repo.get(cart_id)
        if not cart:
            raise NotFound("Cart not found")
        self.carts.refresh_totals(cart)
        items = self.cart_repo.items(cart)
        if not items:
            raise EmptyCart("Cart is empty")

        paid = Decimal(amount_cents) / 100 if amount_cents is not None else None
        matched = paid is None or to_cents(cart.total) == amount_cents
        if not matched:
            log.warning(
                f"materialize(): intent {payment_intent_id} paid {amount_cents} cents "
                f"but cart {cart.id} totals {cart.total}, holding order for review"
            )

        order = Order(
            order_number=self._gen_order_number(),
            payment_intent_id=payment_intent_id,
            cart_id=cart.id,
            user_id=cart.user_id,
            status=OrderStatus.PAID if matched else OrderStatus.AMOUNT_MISMATCH,
            subtotal=cart.subtotal,
            discount_amount=cart.discount_amount,
            total=cart.total,
            amount_paid=paid,
            coupon_code=cart.coupon_code,
        )
        lines = [
            OrderLine(
                product_id=it.product_id,
                sku=it.product.sku,
                name=it.product.name,
                qty=it.quantity,
                price=it.price,
            )
            for it in items
        ]

        removed = 0
        try:
            with smart_transaction(self.db):
                self.order_repo.create(order, lines)
                if matched:
                    for it in items:
                        self.product_repo.decrement_stock(it.product_id, it.quantity)
                    removed = self.coupon_repo.delete_usages_for_cart(cart.id)
                    self.cart_repo.clear(cart)
        except IntegrityError:
            self.db.rollback()
            existing = self.order_repo.get_by_payment_intent(payment_intent_id)
            if existing:
                log.info(f"materialize(): duplicate delivery for {payment_intent_id}, returning winner")
                return existing
            log.exception(f"materialize(): failed for intent {payment_intent_id} cart {cart_id}")
            raise

        self.db.commit()
        log.info(
            f"order {order.order_number} ({order.status}) created from cart {cart_id} "
            f"intent={payment_intent_id} total={order.total} coupon={order.coupon_code} "
            f"usages_cleared={removed}"
        )
        return order

    def mark_status(self, payment_intent_id: str, status: str) -> Optional[Order]:
        """
        Move the order for a payment intent to `status` (refund, failed
        payment). Returns None when no order exists for the intent.
        """
        order = self.order_repo.get_by_payment_intent(payment_intent_id)
        if not order:
            log.info(f"mark_status(): no order for intent {payment_intent_id}, nothing to mark {status}")
            return None
        if order.status != status:
            log.info(f"order {order.order_number} {order.status} -> {status} (intent={payment_intent_id})")
            order.status = status
            self.db.commit()
        return order
