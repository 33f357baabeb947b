from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from shopcart.models.coupon import Coupon
from shopcart.models.coupon_usage import CouponUsage


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class CouponRepository:
    """
    Coupons plus the usage ledger. used_count is only ever touched through
    increment_used / decrement_used, which are single conditional UPDATEs.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, coupon_id: int) -> Optional[Coupon]:
        return self.db.query(Coupon).filter(Coupon.id == coupon_id).first()

    def get_by_code(self, code: str) -> Optional[Coupon]:
        normalized = normalize_code(code)
        if not normalized:
            return None
        return (
            self.db.query(Coupon)
            .filter(func.upper(Coupon.code) == normalized)
            .first()
        )

    def get_usage(self, coupon_id: int, cart_id: int) -> Optional[CouponUsage]:
        return (
            self.db.query(CouponUsage)
            .filter(CouponUsage.coupon_id == coupon_id, CouponUsage.cart_id == cart_id)
            .first()
        )

    def usages_for_cart(self, cart_id: int) -> List[CouponUsage]:
        return self.db.query(CouponUsage).filter(CouponUsage.cart_id == cart_id).all()

    def count_usages(self, coupon_id: int) -> int:
        return (
            self.db.query(func.count(CouponUsage.id))
            .filter(CouponUsage.coupon_id == coupon_id)
            .scalar()
            or 0
        )

    def add_usage(self, coupon_id: int, cart_id: int, user_id: str = None) -> CouponUsage:
        """
        Insert the ledger row and flush immediately so a (coupon_id, cart_id)
        collision raises IntegrityError here, inside the caller's transaction.
        """
        usage = CouponUsage(coupon_id=coupon_id, cart_id=cart_id, user_id=user_id)
        self.db.add(usage)
        self.db.flush()
        return usage

    def delete_usage(self, usage: CouponUsage):
        self.db.delete(usage)
        self.db.flush()

    def move_usage(self, usage: CouponUsage, cart_id: int, user_id: str = None) -> CouponUsage:
        usage.cart_id = cart_id
        if user_id:
            usage.user_id = user_id
        self.db.flush()
        return usage

    def delete_usages_for_cart(self, cart_id: int) -> int:
        return (
            self.db.query(CouponUsage)
            .filter(CouponUsage.cart_id == cart_id)
            .delete(synchronize_session=False)
        )

    def increment_used(self, coupon: Coupon) -> bool:
        """
        used_count = used_count + 1, only while a redemption slot remains.
        Returns False when the cap was already reached (nothing written).
        """
        rows = (
            self.db.query(Coupon)
            .filter(
                Coupon.id == coupon.id,
                or_(Coupon.max_uses.is_(None), Coupon.used_count < Coupon.max_uses),
            )
            .update({Coupon.used_count: Coupon.used_count + 1}, synchronize_session=False)
        )
        self.db.expire(coupon, ["used_count"])
        return rows == 1

    def decrement_used(self, coupon: Coupon) -> bool:
        rows = (
            self.db.query(Coupon)
            .filter(Coupon.id == coupon.id, Coupon.used_count > 0)
            .update({Coupon.used_count: Coupon.used_count - 1}, synchronize_session=False)
        )
        self.db.expire(coupon, ["used_count"])
        return rows == 1

    def release(self, coupon: Coupon, cart_id: int) -> bool:
        """
        Delete the (coupon, cart) ledger row and give its redemption slot back.
        Returns False if no row existed, in which case used_count is untouched.
        """
        usage = self.get_usage(coupon.id, cart_id)
        if not usage:
            return False
        self.delete_usage(usage)
        self.decrement_used(coupon)
        return True

    def create_or_update(self, code: str, **fields) -> Coupon:
        code = normalize_code(code)
        c = self.get_by_code(code)
        if c:
            for k, v in fields.items():
                setattr(c, k, v)
        else:
            c = Coupon(code=code, **fields)
            self.db.add(c)
        self.db.flush()
        return c
