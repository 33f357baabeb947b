from datetime import datetime, timezone

from shopcart.db import Base
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint


class CouponUsage(Base):
    """
    Ledger row proving a coupon is currently applied to a cart.

    The (coupon_id, cart_id) unique constraint is what serializes racing
    apply requests; coupons.used_count moves 1:1 with inserts/deletes here.
    """

    __tablename__ = "coupon_usages"
    __table_args__ = (
        UniqueConstraint("coupon_id", "cart_id", name="uq_coupon_usages_coupon_cart"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    coupon_id = Column(
        Integer, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cart_id = Column(
        Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(64), nullable=True)  # audit only
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
