# shopcore/services/order_factory.py
import secrets
import string
import uuid
from contextlib import nullcontext
from dataclasses import dataclass
from typing import Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel
from shopcore.domain.errors import (
    CartAlreadyConvertedError,
    CartNotFoundError,
    CartNotMutableError,
    EmptyCartError,
    InsufficientStockError,
    InvalidAddressError,
    InvalidCouponError,
    InvalidQuantityError,
    InvalidShippingMethodError,
    OrderCreationFailedError,
    ProductNotFoundError,
    ShopError,
    ValidationError,
)
from shopcore.domain.schemas import AddressIn, CreateOrderIn
from shopcore.domain.types import (
    MUTABLE_CART_STATUSES,
    CartStatus,
    OrderStatus,
    PaymentStatus,
    PriceLine,
    ProductSnapshot,
    ShippingStatus,
)
from shopcore.repos.cart_repo import CartRepo
from shopcore.repos.order_repo import OrderRepo
from shopcore.services.coupon_client import CouponResolver
from shopcore.services.lock_service import LockService
from shopcore.services.order_service import order_to_dict
from shopcore.services.pricing import PricingConfig, calculate_totals, subtotal_of
from shopcore.services.product_client import StockOracle
from shopcore.utils.timeutil import to_iso, utc_now, utc_now_iso
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

REQUIRED_ADDRESS_FIELDS = ("name", "country", "city", "address_line1")
_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class RequestedLine:
    product_id: str
    variation_id: str | None
    quantity: int


@dataclass
class SnapshotLine:
    requested: RequestedLine
    snapshot: ProductSnapshot

    @property
    def total_price(self) -> int:
        return self.snapshot.price * self.requested.quantity


def generate_order_number(now=None) -> str:
    """Date-coded, human readable: MS + YYMMDD + 6 random chars."""
    now = now or utc_now()
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(6))
    return f"MS{now:%y%m%d}{suffix}"


class OrderFactory:
    """
    Turns a cart (or an explicit item list) into an order.

    1. validate the request, nothing is written before this passes
    2. resolve items from the cart or the request
    3. lock the products, re-read price/stock from the stock oracle and snapshot them
    4. resolve the coupon and price everything with the pricing engine
    5. one transaction: order + items + cart -> converted, or nothing at all
    """

    def __init__(
        self,
        db: Session,
        stock_oracle: StockOracle,
        coupon_resolver: CouponResolver | None = None,
        lock_service: LockService | None = None,
        pricing: PricingConfig | None = None,
    ):
        self.carts = CartRepo(db)
        self.orders = OrderRepo(db)
        self.stock_oracle = stock_oracle
        self.coupon_resolver = coupon_resolver
        self.lock_service = lock_service
        self.pricing = pricing or PricingConfig.from_settings()

    def create_order(self, request: CreateOrderIn) -> Dict[str, Any]:
        shipping_address = self._validate_address("shipping", request.shipping_address)
        billing_address = (
            self._validate_address("billing", request.billing_address)
            if request.billing_address
            else shipping_address
        )
        if request.points_used < 0:
            raise ValidationError("points_used cannot be negative", {"points_used": request.points_used})
        if request.shipping_method not in self.pricing.shipping_rates:
            raise InvalidShippingMethodError(request.shipping_method, sorted(self.pricing.shipping_rates))

        cart, customer_id, requested = self._resolve_items(request)

        locks = (
            self.lock_service.acquire_many(line.product_id for line in requested)
            if self.lock_service
            else nullcontext()
        )
        with locks:
            lines = [self._snapshot(line) for line in requested]

            subtotal = subtotal_of(PriceLine(l.snapshot.price, l.requested.quantity) for l in lines)
            coupon = self._resolve_coupon(request.coupon_code, subtotal)
            breakdown = calculate_totals(
                [PriceLine(l.snapshot.price, l.requested.quantity) for l in lines],
                request.shipping_method,
                coupon=coupon,
                points_used=request.points_used,
                config=self.pricing,
            )

            now_dt = utc_now()
            now = to_iso(now_dt)
            order_id = f"order_{uuid.uuid4().hex}"

            order = OrderModel(
                id=order_id,
                order_number=generate_order_number(now_dt),
                customer_id=customer_id,
                cart_id=cart.id if cart else None,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                shipping_status=ShippingStatus.PENDING.value,
                subtotal=breakdown.subtotal,
                tax_amount=breakdown.tax,
                shipping_amount=breakdown.shipping_fee,
                discount_amount=breakdown.discount,
                total_amount=breakdown.total,
                paid_amount=0,
                refund_amount=0,
                currency=self.pricing.currency,
                **self._address_columns("shipping", shipping_address),
                **self._address_columns("billing", billing_address),
                shipping_method=request.shipping_method,
                payment_method=request.payment_method,
                notes=request.notes,
                source=request.source,
                coupon_code=coupon.code if coupon else None,
                coupon_discount=breakdown.discount,
                points_earned=breakdown.points_earned,
                points_used=request.points_used,
                points_value=breakdown.points_value,
                order_date=now,
                created_at=now,
                updated_at=now,
            )
            items = [
                OrderItemModel(
                    id=f"oitem_{uuid.uuid4().hex}",
                    order_id=order_id,
                    position=position,
                    product_id=line.requested.product_id,
                    variation_id=line.requested.variation_id,
                    product_name=line.snapshot.name,
                    product_sku=line.snapshot.sku,
                    product_image=line.snapshot.image,
                    attributes={k: v.model_dump() for k, v in line.snapshot.attributes.items()},
                    quantity=line.requested.quantity,
                    unit_price=line.snapshot.price,
                    total_price=line.total_price,
                    created_at=now,
                )
                for position, line in enumerate(lines)
            ]

            self._commit(order, items, cart, now)

        logger.info(
            f"Order {order.order_number} ({order_id}) created for {customer_id}: "
            f"{len(items)} items, total {breakdown.total}"
        )
        return order_to_dict(self.orders.get_order(order_id))

    # ---- steps ----

    @staticmethod
    def _validate_address(kind: str, address: AddressIn) -> AddressIn:
        missing = [
            field for field in REQUIRED_ADDRESS_FIELDS
            if not (getattr(address, field) or "").strip()
        ]
        if missing:
            raise InvalidAddressError(kind, missing)
        return address

    def _resolve_items(self, request: CreateOrderIn):
        if request.cart_id:
            cart = self.carts.get_cart(request.cart_id)
            if not cart:
                raise CartNotFoundError(request.cart_id)
            if cart.status == CartStatus.CONVERTED.value:
                raise CartAlreadyConvertedError(cart.id)
            if cart.status not in MUTABLE_CART_STATUSES:
                raise CartNotMutableError(cart.id, cart.status)
            if cart.expires_at and cart.expires_at < utc_now_iso():
                raise CartNotMutableError(cart.id, CartStatus.EXPIRED.value)

            cart_items = self.carts.get_cart_items(cart.id)
            if not cart_items:
                raise EmptyCartError(cart.id)

            customer_id = request.customer_id or cart.member_id
            if not customer_id:
                raise ValidationError(
                    "Guest cart checkout requires a customer_id",
                    {"cart_id": cart.id},
                )
            requested = [
                RequestedLine(i.product_id, i.variation_id, i.quantity) for i in cart_items
            ]
            return cart, customer_id, requested

        merged: dict[tuple, RequestedLine] = {}
        for item in request.items or []:
            if item.quantity <= 0:
                raise InvalidQuantityError(item.quantity)
            key = (item.product_id, item.variation_id)
            if key in merged:
                merged[key].quantity += item.quantity
            else:
                merged[key] = RequestedLine(item.product_id, item.variation_id, item.quantity)
        if not merged:
            raise ValidationError("Order must contain at least one item")
        return None, request.customer_id, list(merged.values())

    def _snapshot(self, line: RequestedLine) -> SnapshotLine:
        #authoritative price/stock at commit time, not what the cart saw
        snapshot = self.stock_oracle.lookup(line.product_id, line.variation_id)
        if snapshot is None:
            raise ProductNotFoundError(line.product_id, line.variation_id)
        if not snapshot.can_supply(line.quantity):
            logger.warning(
                f"Checkout rejected: {line.product_id} wants {line.quantity}, "
                f"{snapshot.sellable_stock} available"
            )
            raise InsufficientStockError(
                line.product_id, line.quantity, snapshot.sellable_stock, line.variation_id
            )
        return SnapshotLine(line, snapshot)

    def _resolve_coupon(self, code: str | None, subtotal: int):
        if not code:
            return None
        if self.coupon_resolver is None:
            raise InvalidCouponError(code)
        coupon = self.coupon_resolver.resolve(code, subtotal)
        if coupon is None:
            raise InvalidCouponError(code)
        return coupon

    def _commit(self, order: OrderModel, items: list[OrderItemModel], cart, now: str) -> None:
        try:
            self.orders.insert_order(order)
            self.orders.insert_items(items)
            if cart is not None:
                if self.carts.mark_converted(cart.id, now) == 0:
                    raise CartAlreadyConvertedError(cart.id)
            self.orders.commit()
        except ShopError:
            self.orders.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Order {order.id} transaction failed, rolled back: {e}")
            self.orders.rollback()
            raise OrderCreationFailedError(f"Order could not be stored: {e.__class__.__name__}") from e
        except Exception:
            self.orders.rollback()
            raise

    @staticmethod
    def _address_columns(prefix: str, address: AddressIn) -> Dict[str, Any]:
        return {
            f"{prefix}_name": address.name.strip(),
            f"{prefix}_phone": address.phone,
            f"{prefix}_email": address.email,
            f"{prefix}_country": address.country.strip(),
            f"{prefix}_city": address.city.strip(),
            f"{prefix}_district": address.district,
            f"{prefix}_zip_code": address.zip_code,
            f"{prefix}_address_line1": address.address_line1.strip(),
            f"{prefix}_address_line2": address.address_line2,
        }
