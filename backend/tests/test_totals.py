from decimal import Decimal
from types import SimpleNamespace

from shopcart.models.coupon import FixedDiscount, PercentageDiscount
from shopcart.services.totals import recompute


def _item(price, qty):
    return SimpleNamespace(price=Decimal(price), quantity=qty)


def test_no_coupon_total_equals_subtotal():
    t = recompute([_item("10.00", 2), _item("2.50", 3)])
    assert t.subtotal == Decimal("27.50")
    assert t.discount_amount == Decimal("0.00")
    assert t.total == Decimal("27.50")


def test_percentage_discount_rounds_down_to_cent():
    t = recompute([_item("49.99", 2)], PercentageDiscount(Decimal("10")))
    assert t.subtotal == Decimal("99.98")
    assert t.discount_amount == Decimal("9.99")
    assert t.total == Decimal("89.99")


def test_fixed_discount_clamped_to_subtotal():
    t = recompute([_item("100.00", 1)], FixedDiscount(Decimal("500")))
    assert t.discount_amount == Decimal("100.00")
    assert t.total == Decimal("0.00")


def test_max_amount_caps_percentage():
    t = recompute([_item("200.00", 1)], PercentageDiscount(Decimal("50"), Decimal("20")))
    assert t.discount_amount == Decimal("20.00")
    assert t.total == Decimal("180.00")


def test_max_amount_caps_fixed():
    t = recompute([_item("200.00", 1)], FixedDiscount(Decimal("75"), Decimal("30")))
    assert t.discount_amount == Decimal("30.00")


def test_empty_items_gives_zero_even_with_coupon():
    t = recompute([], FixedDiscount(Decimal("5")))
    assert (t.subtotal, t.discount_amount, t.total) == (Decimal("0.00"),) * 3


def test_total_invariant_holds():
    items = [_item("19.90", 3), _item("0.33", 7)]
    for rule in (None, PercentageDiscount(Decimal("15")), FixedDiscount(Decimal("12.34"))):
        t = recompute(items, rule)
        assert t.subtotal == sum(i.price * i.quantity for i in items)
        assert t.total == max(Decimal("0"), t.subtotal - t.discount_amount)
