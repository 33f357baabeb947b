from typing import List, Optional

from sqlalchemy.orm import Session

from shopcart.models.order import Order, OrderLine


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        return (
            self.db.query(Order)
            .filter(Order.payment_intent_id == payment_intent_id)
            .first()
        )

    def list_for_user(self, user_id: str) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def create(self, order: Order, lines: List[OrderLine]) -> Order:
        """Insert order + lines; flushes so a payment_intent_id clash raises here."""
        self.db.add(order)
        self.db.flush()
        for ln in lines:
            ln.order_id = order.id
            self.db.add(ln)
        self.db.flush()
        return order
