from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from shopcart.db import Base


class OrderStatus:
    PAID = "PAID"
    AMOUNT_MISMATCH = "AMOUNT_MISMATCH"  # charged amount != cart total, held for review
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(32), unique=True, nullable=False, index=True)
    payment_intent_id = Column(
        String(128), unique=True, nullable=False, index=True
    )  # dedupes webhook redelivery
    cart_id = Column(Integer, nullable=False, index=True)
    user_id = Column(String(64), nullable=True, index=True)
    status = Column(String(32), nullable=False, default=OrderStatus.PAID)
    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    amount_paid = Column(Numeric(10, 2), nullable=True)  # as reported by the provider
    coupon_code = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    lines = relationship(
        "OrderLine", back_populates="order", cascade="all, delete-orphan"
    )


class OrderLine(Base):
    __tablename__ = "order_lines"
    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, nullable=False)
    sku = Column(String(64), nullable=False)
    name = Column(String(255), nullable=True)
    qty = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="lines")
