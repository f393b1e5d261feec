"""Error taxonomy shared by the cart and order services.

Every error carries a stable machine-readable ``code``, a human-readable
message and a ``kind`` that the API layer maps to a status code.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    INTERNAL = "internal"


class ShopError(Exception):
    """Base exception for all shopcore errors."""

    code = "INTERNAL_ERROR"
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


# ---- not found ----

class NotFoundError(ShopError):
    code = "NOT_FOUND"
    kind = ErrorKind.NOT_FOUND


class CartNotFoundError(NotFoundError):
    code = "CART_NOT_FOUND"

    def __init__(self, cart_id: str):
        self.cart_id = cart_id
        super().__init__(f"Cart not found: {cart_id}", {"cart_id": cart_id})


class CartItemNotFoundError(NotFoundError):
    code = "CART_ITEM_NOT_FOUND"

    def __init__(self, cart_id: str, item_id: str):
        self.cart_id = cart_id
        self.item_id = item_id
        super().__init__(
            f"Item {item_id} not found in cart {cart_id}",
            {"cart_id": cart_id, "item_id": item_id},
        )


class ProductNotFoundError(NotFoundError):
    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str, variation_id: str | None = None):
        self.product_id = product_id
        self.variation_id = variation_id
        label = product_id if not variation_id else f"{product_id}/{variation_id}"
        super().__init__(
            f"Product not found or not available: {label}",
            {"product_id": product_id, "variation_id": variation_id},
        )


class OrderNotFoundError(NotFoundError):
    code = "ORDER_NOT_FOUND"

    def __init__(self, order_ref: str):
        self.order_ref = order_ref
        super().__init__(f"Order not found: {order_ref}", {"order": order_ref})


# ---- validation ----

class ValidationError(ShopError):
    code = "VALIDATION_ERROR"
    kind = ErrorKind.VALIDATION


class InvalidQuantityError(ValidationError):
    code = "INVALID_QUANTITY"

    def __init__(self, quantity: int, reason: str = "quantity must be greater than 0"):
        self.quantity = quantity
        super().__init__(f"Invalid quantity {quantity}: {reason}", {"quantity": quantity})


class InvalidAddressError(ValidationError):
    code = "INVALID_ADDRESS"

    def __init__(self, kind: str, missing: list[str]):
        self.missing = missing
        super().__init__(
            f"{kind.capitalize()} address is missing: {', '.join(missing)}",
            {"address": kind, "missing": missing},
        )


class InvalidCouponError(ValidationError):
    code = "INVALID_COUPON"

    def __init__(self, coupon_code: str):
        self.coupon_code = coupon_code
        super().__init__(f"Coupon is not valid: {coupon_code}", {"coupon_code": coupon_code})


class InvalidShippingMethodError(ValidationError):
    code = "INVALID_SHIPPING_METHOD"

    def __init__(self, method: str, known: list[str]):
        self.method = method
        super().__init__(
            f"Unknown shipping method: {method}",
            {"method": method, "known": known},
        )


# ---- conflict ----

class ConflictError(ShopError):
    code = "CONFLICT"
    kind = ErrorKind.CONFLICT


class InsufficientStockError(ConflictError):
    code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: str,
        requested: int,
        available: int,
        variation_id: str | None = None,
    ):
        self.product_id = product_id
        self.variation_id = variation_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_id}: requested {requested}, available {available}",
            {
                "product_id": product_id,
                "variation_id": variation_id,
                "requested": requested,
                "available": available,
            },
        )


class EmptyCartError(ConflictError):
    code = "EMPTY_CART"

    def __init__(self, cart_id: str):
        self.cart_id = cart_id
        super().__init__(f"Cart {cart_id} has no items", {"cart_id": cart_id})


class CartNotMutableError(ConflictError):
    code = "CART_NOT_MUTABLE"

    def __init__(self, cart_id: str, status: str):
        self.cart_id = cart_id
        self.status = status
        super().__init__(
            f"Cart {cart_id} is {status} and can no longer be modified",
            {"cart_id": cart_id, "status": status},
        )


class CartAlreadyConvertedError(ConflictError):
    code = "CART_ALREADY_CONVERTED"

    def __init__(self, cart_id: str):
        self.cart_id = cart_id
        super().__init__(f"Cart {cart_id} was already converted", {"cart_id": cart_id})


class InvalidStatusTransitionError(ConflictError):
    code = "INVALID_STATUS_TRANSITION"

    def __init__(self, field: str, current: str, requested: str):
        self.field = field
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change {field} from {current} to {requested}",
            {"field": field, "current": current, "requested": requested},
        )


# ---- transient ----

class TransientError(ShopError):
    code = "TRANSIENT_ERROR"
    kind = ErrorKind.TRANSIENT


class CatalogUnavailableError(TransientError):
    code = "CATALOG_UNAVAILABLE"


class StorageUnavailableError(TransientError):
    code = "STORAGE_UNAVAILABLE"


class CheckoutInProgressError(TransientError):
    code = "CHECKOUT_IN_PROGRESS"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(
            f"Another checkout is holding product {product_id}",
            {"product_id": product_id},
        )


class OrderCreationFailedError(TransientError):
    code = "ORDER_CREATION_FAILED"


# ---- internal ----

class InternalError(ShopError):
    code = "INTERNAL_ERROR"
    kind = ErrorKind.INTERNAL


class CatalogProtocolError(InternalError):
    """The catalog answered with a status this service has no mapping for."""

    code = "CATALOG_PROTOCOL_ERROR"
