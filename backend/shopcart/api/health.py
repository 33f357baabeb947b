from fastapi import APIRouter
from sqlalchemy import func

from shopcart.api.deps import get_payment_adapter
from shopcart.db import SessionLocal
from shopcart.models.coupon import Coupon
from shopcart.utils.logs import get_logger

log = get_logger("health")

router = APIRouter()


def _coupons_over_cap():
    """Number of coupons whose used_count exceeds max_uses. Must stay 0."""
    with SessionLocal() as db:
        return (
            db.query(func.count(Coupon.id))
            .filter(Coupon.max_uses.isnot(None), Coupon.used_count > Coupon.max_uses)
            .scalar()
        )


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    payment_ok = False
    over_cap = None
    try:
        over_cap = _coupons_over_cap()
        db_ok = True
    except Exception as e:
        log.warning(f"health: database check failed: {e}")
    try:
        payment_ok = get_payment_adapter().health_check()
    except Exception as e:
        log.warning(f"health: payment adapter check failed: {e}")

    return {
        "status": "ok" if db_ok and payment_ok and not over_cap else "degraded",
        "db": db_ok,
        "payment_adapter": payment_ok,
        "coupons_over_cap": over_cap,
    }
