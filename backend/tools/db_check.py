"""
Ledger consistency report for a SQLite database.

    python tools/db_check.py [dev.db] [COUPON_CODE]

Lists coupons with used_count next to the number of live coupon_usages rows
(they differ by the redemptions consumed at checkout), carts whose stored
total disagrees with subtotal - discount, and carts whose coupon_code has no
matching ledger row.
"""
import sqlite3
import sys

DB = sys.argv[1] if len(sys.argv) > 1 else "dev.db"
CODE = sys.argv[2].upper() if len(sys.argv) > 2 else None

conn = sqlite3.connect(DB)
cur = conn.cursor()

print("=== Coupons ===")
sql = (
    "SELECT c.id, c.code, c.used_count, c.max_uses, COUNT(u.id) "
    "FROM coupons c LEFT JOIN coupon_usages u ON u.coupon_id = c.id "
)
params = ()
if CODE:
    sql += "WHERE upper(c.code) = ? "
    params = (CODE,)
sql += "GROUP BY c.id ORDER BY c.code"
cur.execute(sql, params)
for cid, code, used, max_uses, live in cur.fetchall():
    flag = ""
    if max_uses is not None and used > max_uses:
        flag = "  <-- OVER CAP"
    elif live > used:
        flag = "  <-- MORE USAGES THAN used_count"
    print({"id": cid, "code": code, "used_count": used, "max_uses": max_uses, "live_usages": live}, flag)

print("\n=== Carts with inconsistent totals ===")
cur.execute(
    "SELECT c.id, c.subtotal, c.discount_amount, c.total, "
    "COALESCE((SELECT SUM(i.price * i.quantity) FROM cart_items i WHERE i.cart_id = c.id), 0) "
    "FROM carts c"
)
bad = 0
for cart_id, subtotal, discount, total, items_sum in cur.fetchall():
    expected_total = max(0.0, round(float(subtotal) - float(discount), 2))
    if abs(float(items_sum) - float(subtotal)) > 0.005 or abs(expected_total - float(total)) > 0.005:
        bad += 1
        print({"cart_id": cart_id, "subtotal": subtotal, "items_sum": items_sum, "discount": discount, "total": total})
print(f"{bad} cart(s) inconsistent")

print("\n=== Carts with a coupon code but no ledger row ===")
cur.execute(
    "SELECT ca.id, ca.coupon_code FROM carts ca "
    "LEFT JOIN coupons co ON upper(co.code) = upper(ca.coupon_code) "
    "LEFT JOIN coupon_usages u ON u.coupon_id = co.id AND u.cart_id = ca.id "
    "WHERE ca.coupon_code IS NOT NULL AND u.id IS NULL"
)
for r in cur.fetchall():
    print(r)

conn.close()
