import enum
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import FrozenSet, Optional, Union

from shopcart.db import Base
from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Integer,
    Numeric,
    String,
    Text,
)


class DiscountType(enum.Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED = "FIXED"


@dataclass(frozen=True)
class PercentageDiscount:
    value: Decimal  # percent, e.g. Decimal("10") for 10%
    max_amount: Optional[Decimal] = None


@dataclass(frozen=True)
class FixedDiscount:
    value: Decimal
    max_amount: Optional[Decimal] = None


Discount = Union[PercentageDiscount, FixedDiscount]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses", name="ck_coupons_used_count"
        ),
        CheckConstraint("used_count >= 0", name="ck_coupons_used_count_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    discount_type = Column(Enum(DiscountType), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=False)
    minimum_amount = Column(Numeric(10, 2), nullable=False, default=0)
    max_amount = Column(Numeric(10, 2), nullable=True)  # cap on computed discount
    max_uses = Column(Integer, nullable=True)  # NULL = unlimited
    used_count = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    categories = Column(JSON, nullable=True)  # allowlist of product categories

    @property
    def discount(self) -> Discount:
        max_amount = Decimal(self.max_amount) if self.max_amount is not None else None
        if self.discount_type == DiscountType.PERCENTAGE:
            return PercentageDiscount(Decimal(self.discount_value), max_amount)
        return FixedDiscount(Decimal(self.discount_value), max_amount)

    @property
    def applicable_categories(self) -> FrozenSet[str]:
        return frozenset(self.categories or ())

    def is_within_window(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return as_utc(self.start_date) <= now <= as_utc(self.end_date)

    def has_remaining_uses(self) -> bool:
        return self.max_uses is None or self.used_count < self.max_uses

    def __repr__(self):
        return f"<Coupon code={self.code} used={self.used_count}/{self.max_uses}>"
