# shopcore/domain/types.py
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from shopcore.domain.errors import ValidationError


class CartStatus(str, Enum):
    ACTIVE = "active"
    ABANDONED = "abandoned"
    CONVERTED = "converted"
    EXPIRED = "expired"


#carts in these states still accept mutations (abandoned is revived on touch)
MUTABLE_CART_STATUSES = (CartStatus.ACTIVE.value, CartStatus.ABANDONED.value)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIAL = "partial"


class ShippingStatus(str, Enum):
    PENDING = "pending"
    PREPARING = "preparing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"


class StockStatus(str, Enum):
    IN_STOCK = "instock"
    OUT_OF_STOCK = "outofstock"
    ON_BACKORDER = "onbackorder"


# ---- cart owner: exactly one of member or session ----

@dataclass(frozen=True)
class MemberOwner:
    member_id: str


@dataclass(frozen=True)
class SessionOwner:
    session_id: str


Owner = Union[MemberOwner, SessionOwner]


def owner_from_keys(member_id: str | None = None, session_id: str | None = None) -> Owner:
    """Member id wins when both keys are presented."""
    if member_id:
        return MemberOwner(member_id)
    if session_id:
        return SessionOwner(session_id)
    raise ValidationError("Cart owner requires a member_id or a session_id")


# ---- product attributes: tagged map instead of an opaque blob ----

class TextAttribute(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str


class NumberAttribute(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: float
    unit: str | None = None


class ChoiceAttribute(BaseModel):
    """Variation axis, e.g. size=M out of S/M/L."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["choice"] = "choice"
    value: str
    options: list[str] = Field(default_factory=list)


ProductAttribute = Annotated[
    Union[TextAttribute, NumberAttribute, ChoiceAttribute],
    Field(discriminator="kind"),
]
AttributeMap = dict[str, ProductAttribute]

attribute_map_adapter = TypeAdapter(AttributeMap)


class ProductSnapshot(BaseModel):
    """What the stock oracle knows about a product (or a variation) right now."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    variation_id: str | None = None
    name: str
    sku: str = ""
    image: str | None = None
    price: int = Field(..., ge=0, description="Unit price in minor currency units")
    available_stock: int = Field(..., ge=0)
    stock_status: StockStatus = StockStatus.IN_STOCK
    attributes: AttributeMap = Field(default_factory=dict)

    def can_supply(self, quantity: int) -> bool:
        if self.stock_status is StockStatus.OUT_OF_STOCK:
            return False
        return self.available_stock >= quantity

    @property
    def sellable_stock(self) -> int:
        if self.stock_status is StockStatus.OUT_OF_STOCK:
            return 0
        return self.available_stock


# ---- coupons ----

class FixedCoupon(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["fixed"] = "fixed"
    code: str
    value: int = Field(..., ge=0, description="Discount in minor currency units")


class PercentageCoupon(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["percentage"] = "percentage"
    code: str
    value: float = Field(..., gt=0, le=100, description="Percent off the subtotal")
    max_discount: int | None = Field(default=None, ge=0)


Coupon = Annotated[Union[FixedCoupon, PercentageCoupon], Field(discriminator="type")]

coupon_adapter = TypeAdapter(Coupon)


@dataclass(frozen=True)
class PriceLine:
    unit_price: int
    quantity: int
