"""
Hammer apply-coupon from many anonymous carts at once against a running server
and check the coupon's cap held.

    python tools/concurrency_coupon.py --code WELCOME10 --workers 16 --product 1
    python tools/concurrency_coupon.py --code WELCOME10 --same-cart --workers 8
"""
import argparse
import concurrent.futures
import os
from uuid import uuid4

import requests

BASE = os.environ.get("SHOPCART_BASE", "http://127.0.0.1:8000")


def prepare_cart(product_id, anonymous_id=None):
    anonymous_id = anonymous_id or f"anon_load_{uuid4().hex}"
    headers = {"X-Anonymous-Id": anonymous_id}
    r = requests.post(
        f"{BASE}/api/cart/items",
        json={"product_id": product_id, "quantity": 1},
        headers=headers,
        timeout=10,
    )
    r.raise_for_status()
    return anonymous_id


def apply_task(i, anonymous_id, code):
    try:
        r = requests.post(
            f"{BASE}/api/cart/coupon",
            json={"code": code},
            headers={"X-Anonymous-Id": anonymous_id},
            timeout=20,
        )
        return (i, r.status_code, r.text[:200])
    except requests.RequestException as e:
        return (i, "ERR", str(e))


def run(workers, code, product_id, same_cart):
    shared = prepare_cart(product_id) if same_cart else None
    carts = [shared or prepare_cart(product_id) for _ in range(workers)]
    print(f"Applying {code} from {len(set(carts))} cart(s) with {workers} workers")

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as ex:
        futures = [ex.submit(apply_task, i, anon, code) for i, anon in enumerate(carts)]
        results = [f.result() for f in futures]

    for r in results:
        print(r)
    ok = sum(1 for r in results if r[1] == 200)
    print(f"succeeded={ok} failed={len(results) - ok}")
    print("Compare with used_count/max_uses: python tools/db_check.py dev.db", code)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Coupon apply concurrency check.")
    parser.add_argument("--code", default="WELCOME10")
    parser.add_argument("--product", type=int, default=1)
    parser.add_argument("--workers", type=int, default=8)
    parser.add_argument("--same-cart", action="store_true", help="all workers share one cart")
    args = parser.parse_args()
    run(args.workers, args.code, args.product, args.same_cart)
