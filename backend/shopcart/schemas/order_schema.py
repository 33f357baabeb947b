from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class CheckoutOut(BaseModel):
    cart_id: int
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None
    payment_intent_id: str
    client_secret: str
    amount_cents: int
    currency: str


class OrderLineOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    product_id: int
    sku: str
    name: Optional[str] = None
    qty: int
    price: Decimal


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    order_number: str
    payment_intent_id: str
    cart_id: int
    status: str
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_paid: Optional[Decimal] = None
    coupon_code: Optional[str] = None
    created_at: datetime
    lines: List[OrderLineOut]
