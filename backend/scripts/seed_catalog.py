#!/usr/bin/env python3
"""
Seed products and coupons.

Products come from a JSON file when one is given (a list of entries, or an
object with an "items" list); a small default catalogue is used otherwise.
The WELCOME10 / SAVE50 / TECH20 coupons are always upserted, so running
this twice is harmless.

Usage:
    python scripts/seed_catalog.py
    python scripts/seed_catalog.py --file catalogue.json --coupon-days 30
"""
import argparse
import json
import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

# allow running from repo/scripts
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from shopcart.db import SessionLocal, init_db
from shopcart.models.coupon import DiscountType
from shopcart.repositories.coupon_repo import CouponRepository
from shopcart.repositories.product_repo import ProductRepository

DEFAULT_PRODUCTS = [
    {"sku": "TEE-001", "name": "Cotton T-Shirt", "price": "19.90", "stock": 50, "category": "CLOTHING"},
    {"sku": "MUG-001", "name": "Enamel Mug", "price": "12.50", "stock": 30, "category": "HOME"},
    {"sku": "HDP-001", "name": "Wireless Headphones", "price": "149.00", "stock": 10, "category": "ELECTRONICS"},
    {"sku": "CBL-001", "name": "USB-C Cable", "price": "9.99", "stock": 100, "category": "ELECTRONICS"},
    {"sku": "BKP-001", "name": "Canvas Backpack", "price": "49.99", "stock": 3, "category": "ACCESSORIES"},
]


def default_coupons(days: int):
    now = datetime.now(timezone.utc)
    return [
        {
            "code": "WELCOME10",
            "description": "10% off for new customers",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "max_uses": 100,
            "start_date": now,
            "end_date": now + timedelta(days=days),
        },
        {
            "code": "SAVE50",
            "description": "50 off orders above 200",
            "discount_type": DiscountType.FIXED,
            "discount_value": Decimal("50"),
            "minimum_amount": Decimal("200"),
            "max_uses": 50,
            "start_date": now,
            "end_date": now + timedelta(days=days),
        },
        {
            "code": "TECH20",
            "description": "20% off electronics",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("20"),
            "max_amount": Decimal("100"),
            "categories": ["ELECTRONICS"],
            "max_uses": 75,
            "start_date": now,
            "end_date": now + timedelta(days=min(days, 15)),
        },
    ]


def _normalize_entry(entry):
    """Return a dict with keys sku, name, price, stock, category, description, image."""
    sku = entry.get("sku") or entry.get("id")
    raw_price = entry.get("price", entry.get("amount", 0))
    try:
        price = Decimal(str(raw_price)).quantize(Decimal("0.01"))
    except InvalidOperation:
        price = Decimal("0.00")
    try:
        stock = int(entry.get("stock", entry.get("quantity", 0)) or 0)
    except (TypeError, ValueError):
        stock = 0
    return {
        "sku": sku,
        "name": entry.get("name") or entry.get("title") or "",
        "price": price,
        "stock": stock,
        "category": entry.get("category"),
        "description": entry.get("description") or "",
        "image": entry.get("image"),
    }


def load_products(path=None):
    if not path:
        return [_normalize_entry(e) for e in DEFAULT_PRODUCTS]
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        source = data.get("items") if isinstance(data.get("items"), list) else list(data.values())
    elif isinstance(data, list):
        source = data
    else:
        source = []
    return [_normalize_entry(e) for e in source]


def seed(path=None, coupon_days: int = 30):
    init_db()
    db = SessionLocal()
    products = ProductRepository(db)
    coupons = CouponRepository(db)
    try:
        count = 0
        for entry in load_products(path):
            if not entry["sku"]:
                continue
            products.create_or_update(**entry)
            count += 1
        for c in default_coupons(coupon_days):
            coupons.create_or_update(**c)
        db.commit()
        print(f"Seeded products: {count}, coupons: {len(default_coupons(coupon_days))}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--file", "-f", default=None, help="Path to product json")
    parser.add_argument("--coupon-days", type=int, default=30, help="Validity window for seeded coupons")
    args = parser.parse_args()
    if args.file and not os.path.exists(args.file):
        print("File not found:", args.file)
        sys.exit(1)
    seed(args.file, args.coupon_days)
