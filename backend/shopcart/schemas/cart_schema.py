from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AddItemIn(BaseModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=1000)


class SetQuantityIn(BaseModel):
    quantity: int = Field(..., ge=0, le=1000)


class MergeIn(BaseModel):
    anonymous_id: str = Field(..., min_length=1, max_length=64)


class ApplyCouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    cart_id: Optional[int] = None


class CartItemOut(BaseModel):
    product_id: int
    sku: Optional[str] = None
    name: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    price: Decimal
    line_total: Decimal


class CartOut(BaseModel):
    id: int
    user_id: Optional[str] = None
    anonymous_id: Optional[str] = None
    items: List[CartItemOut]
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None

    @classmethod
    def from_cart(cls, cart) -> "CartOut":
        items = [
            CartItemOut(
                product_id=it.product_id,
                sku=it.product.sku if it.product else None,
                name=it.product.name if it.product else None,
                category=it.product.category if it.product else None,
                quantity=it.quantity,
                price=it.price,
                line_total=Decimal(it.price) * it.quantity,
            )
            for it in cart.items
        ]
        return cls(
            id=cart.id,
            user_id=cart.user_id,
            anonymous_id=cart.anonymous_id,
            items=items,
            subtotal=cart.subtotal,
            discount_amount=cart.discount_amount,
            total=cart.total,
            coupon_code=cart.coupon_code,
        )


class CouponSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    max_amount: Optional[Decimal] = None

    @classmethod
    def from_coupon(cls, coupon) -> "CouponSummary":
        return cls(
            code=coupon.code,
            description=coupon.description,
            discount_type=coupon.discount_type.value,
            discount_value=coupon.discount_value,
            max_amount=coupon.max_amount,
        )


class ApplyCouponOut(BaseModel):
    cart: CartOut
    coupon: CouponSummary


class CouponPreviewOut(BaseModel):
    coupon: CouponSummary
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal
