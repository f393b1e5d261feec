# shopcore/domain/schemas.py
from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shopcore.domain.types import (
    AttributeMap,
    CartStatus,
    OrderStatus,
    PaymentStatus,
    ShippingStatus,
)


# ---- carts ----

class CreateCartIn(BaseModel):
    """Schema for get-or-create cart; member_id wins over session_id."""

    member_id: str | None = Field(default=None, min_length=1)
    session_id: str | None = Field(default=None, min_length=1)


class ItemIn(BaseModel):
    """Schema for adding a product to a cart."""

    product_id: str = Field(..., min_length=1)
    variation_id: str | None = None
    quantity: int = Field(..., gt=0, description="Quantity to add (must be > 0)")


class ItemUpdateIn(BaseModel):
    """Schema for setting an item quantity; 0 removes the item."""

    quantity: int = Field(..., ge=0)


class CouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=100)


class CartItemOut(BaseModel):
    item_id: str
    product_id: str
    variation_id: str | None = None
    quantity: int
    name: str | None = None
    unit_price: int | None = None
    line_total: int = 0
    available: bool = True
    added_at: str


class CartOut(BaseModel):
    cart_id: str
    member_id: str | None = None
    session_id: str | None = None
    status: CartStatus
    items: List[CartItemOut]
    items_count: int
    total_amount: int
    applied_coupon_code: str | None = None
    coupon_discount: int = 0
    last_activity_at: str
    expires_at: str | None = None
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


# ---- orders ----

class AddressIn(BaseModel):
    """Address as given by the client; required fields are checked at checkout."""

    name: str | None = None
    phone: str | None = None
    email: str | None = None
    country: str | None = None
    city: str | None = None
    district: str | None = None
    zip_code: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None


class AddressOut(AddressIn):
    model_config = ConfigDict(from_attributes=True)


class OrderItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    variation_id: str | None = None
    quantity: int


class CreateOrderIn(BaseModel):
    """Checkout request, sourced either from a cart or from an explicit item list."""

    cart_id: str | None = None
    customer_id: str | None = None
    items: List[OrderItemIn] | None = None

    shipping_address: AddressIn
    billing_address: AddressIn | None = None
    shipping_method: str = "standard"
    payment_method: str = Field(..., min_length=1)

    coupon_code: str | None = None
    points_used: int = 0
    notes: str | None = None
    source: str = "web"

    @model_validator(mode="after")
    def check_item_source(self) -> "CreateOrderIn":
        if self.cart_id and self.items:
            raise ValueError("Provide either cart_id or items, not both")
        if not self.cart_id and self.items is None:
            raise ValueError("Provide cart_id or items")
        if self.items is not None and not self.customer_id:
            raise ValueError("customer_id is required when ordering explicit items")
        return self


class OrderStatusUpdate(BaseModel):
    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None
    shipping_status: ShippingStatus | None = None
    tracking_number: str | None = None
    carrier_name: str | None = None
    internal_notes: str | None = None


class OrderItemOut(BaseModel):
    item_id: str
    product_id: str
    variation_id: str | None = None
    product_name: str
    product_sku: str
    product_image: str | None = None
    quantity: int
    unit_price: int
    total_price: int
    attributes: AttributeMap = Field(default_factory=dict)


class OrderOut(BaseModel):
    order_id: str
    order_number: str
    customer_id: str
    cart_id: str | None = None
    status: OrderStatus
    payment_status: PaymentStatus
    shipping_status: ShippingStatus

    subtotal: int
    tax_amount: int
    shipping_amount: int
    discount_amount: int
    total_amount: int
    paid_amount: int
    refund_amount: int
    currency: str

    shipping_address: AddressOut
    billing_address: AddressOut
    shipping_method: str
    payment_method: str
    tracking_number: str | None = None
    carrier_name: str | None = None
    notes: str | None = None
    internal_notes: str | None = None
    source: str

    coupon_code: str | None = None
    coupon_discount: int = 0
    points_earned: int = 0
    points_used: int = 0
    points_value: int = 0

    order_date: str
    paid_at: str | None = None
    shipped_at: str | None = None
    delivered_at: str | None = None
    cancelled_at: str | None = None
    refunded_at: str | None = None
    created_at: str
    updated_at: str

    items: List[OrderItemOut]


class OrderListQuery(BaseModel):
    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None
    shipping_status: ShippingStatus | None = None
    customer_id: str | None = None
    order_date_start: datetime | None = None
    order_date_end: datetime | None = None
    search: str | None = Field(default=None, description="Order number, recipient name or email")
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    sort_by: Literal["order_date", "total_amount", "status"] = "order_date"
    sort_order: Literal["asc", "desc"] = "desc"


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderListOut(BaseModel):
    orders: List[OrderOut]
    pagination: Pagination


class MonthlyRevenue(BaseModel):
    month: str
    revenue: int
    orders: int


class OrderStatsOut(BaseModel):
    total_orders: int
    total_revenue: int
    average_order_value: int
    orders_by_status: dict[str, int]
    revenue_by_month: List[MonthlyRevenue]
