import os
import tempfile

# must be set before shopcart.config is imported anywhere
_tmpdir = tempfile.mkdtemp(prefix="shopcart-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmpdir, "test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from shopcart.db import SessionLocal, init_db
from shopcart.main import app
from shopcart.models.coupon import Coupon, DiscountType
from shopcart.models.product import Product


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    return TestClient(app)


def _persist(session, obj):
    if session is None:
        with SessionLocal() as s:
            s.add(obj)
            s.commit()
            return obj.id
    session.add(obj)
    session.commit()
    return obj.id


@pytest.fixture
def make_product():
    """make_product(session=None, **fields) -> product id"""
    counter = {"n": 0}

    def _make(session=None, price="10.00", stock=10, category="GENERAL", **fields):
        counter["n"] += 1
        sku = fields.pop("sku", f"SKU-{counter['n']:03d}")
        p = Product(
            sku=sku,
            name=fields.pop("name", f"Product {sku}"),
            price=Decimal(price),
            stock=stock,
            category=category,
            **fields,
        )
        return _persist(session, p)

    return _make


@pytest.fixture
def make_coupon():
    """make_coupon(session=None, code=..., **fields) -> coupon id"""

    def _make(
        session=None,
        code="WELCOME10",
        discount_type=DiscountType.PERCENTAGE,
        value="10",
        **fields,
    ):
        now = datetime.now(timezone.utc)
        for k in ("minimum_amount", "max_amount"):
            if fields.get(k) is not None:
                fields[k] = Decimal(fields[k])
        c = Coupon(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(value),
            minimum_amount=fields.pop("minimum_amount", Decimal("0")),
            start_date=fields.pop("start_date", now - timedelta(days=1)),
            end_date=fields.pop("end_date", now + timedelta(days=30)),
            is_active=fields.pop("is_active", True),
            used_count=fields.pop("used_count", 0),
            **fields,
        )
        return _persist(session, c)

    return _make
