from datetime import datetime, timezone

from shopcart.db import Base
from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import relationship


def _now():
    return datetime.now(timezone.utc)


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # exactly one owner kind per cart
        CheckConstraint(
            "(user_id IS NULL) != (anonymous_id IS NULL)", name="ck_carts_one_owner"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, index=True, nullable=True)
    anonymous_id = Column(
        String(64), unique=True, index=True, nullable=True
    )  # opaque client-held token
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    coupon_code = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id",
    )

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    def __repr__(self):
        owner = self.user_id or self.anonymous_id
        return f"<Cart id={self.id} owner={owner} coupon={self.coupon_code}>"
