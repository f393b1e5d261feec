# shopcore/services/order_service.py
import math
from typing import Dict, Any

from sqlalchemy.orm import Session

from shopcore.data.models.order import OrderModel
from shopcore.domain.errors import ConflictError, InvalidStatusTransitionError, OrderNotFoundError
from shopcore.domain.schemas import OrderListQuery, OrderStatusUpdate
from shopcore.domain.types import OrderStatus, PaymentStatus, ShippingStatus
from shopcore.repos.order_repo import OrderRepo
from shopcore.utils.timeutil import to_iso, utc_now_iso
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)

O, P, S = OrderStatus, PaymentStatus, ShippingStatus

STATUS_TRANSITIONS = {
    O.PENDING: {O.PROCESSING, O.CANCELLED},
    O.PROCESSING: {O.SHIPPED, O.CANCELLED, O.REFUNDED},
    O.SHIPPED: {O.DELIVERED, O.REFUNDED},
    O.DELIVERED: {O.REFUNDED},
    O.CANCELLED: set(),
    O.REFUNDED: set(),
}

PAYMENT_TRANSITIONS = {
    P.PENDING: {P.PAID, P.FAILED, P.PARTIAL},
    P.FAILED: {P.PENDING, P.PAID},
    P.PARTIAL: {P.PAID, P.REFUNDED},
    P.PAID: {P.REFUNDED},
    P.REFUNDED: set(),
}

SHIPPING_TRANSITIONS = {
    S.PENDING: {S.PREPARING, S.SHIPPED, S.DELIVERED},
    S.PREPARING: {S.SHIPPED, S.DELIVERED},
    S.SHIPPED: {S.DELIVERED, S.RETURNED},
    S.DELIVERED: {S.RETURNED},
    S.RETURNED: set(),
}


def _step(field: str, table: dict, current, requested):
    if requested is None or requested == current:
        return current
    if requested not in table[current]:
        raise InvalidStatusTransitionError(field, current.value, requested.value)
    return requested


def plan_status_update(order: OrderModel, update: OrderStatusUpdate, now: str) -> dict:
    """
    Column values for ``update`` applied to ``order``; empty when nothing changes.

    status moves are gated by the payment/shipping families:
    processing needs a settled payment, shipped/delivered drag shipping_status along,
    refunded needs money to have been taken and drags payment_status along.
    Transition timestamps are only written while still empty.
    """
    current_status = O(order.status)
    payment = _step("payment_status", PAYMENT_TRANSITIONS, P(order.payment_status), update.payment_status)
    shipping = _step("shipping_status", SHIPPING_TRANSITIONS, S(order.shipping_status), update.shipping_status)
    status = _step("status", STATUS_TRANSITIONS, current_status, update.status)

    if status != current_status:
        if status is O.PROCESSING and payment is not P.PAID:
            raise InvalidStatusTransitionError("status", current_status.value, status.value)
        if status is O.SHIPPED and shipping in (S.PENDING, S.PREPARING):
            shipping = S.SHIPPED
        if status is O.DELIVERED and shipping is not S.DELIVERED:
            shipping = _step("shipping_status", SHIPPING_TRANSITIONS, shipping, S.DELIVERED)
        if status is O.REFUNDED:
            if P(order.payment_status) not in (P.PAID, P.PARTIAL):
                raise InvalidStatusTransitionError("status", current_status.value, status.value)
            payment = P.REFUNDED

    values = {}
    if status.value != order.status:
        values["status"] = status.value
    if payment.value != order.payment_status:
        values["payment_status"] = payment.value
    if shipping.value != order.shipping_status:
        values["shipping_status"] = shipping.value

    def stamp(column: str, condition: bool):
        if condition and getattr(order, column) is None:
            values[column] = now

    stamp("paid_at", payment is P.PAID)
    stamp("shipped_at", shipping in (S.SHIPPED, S.DELIVERED) or status is O.SHIPPED)
    stamp("delivered_at", shipping is S.DELIVERED or status is O.DELIVERED)
    stamp("cancelled_at", status is O.CANCELLED)
    stamp("refunded_at", status is O.REFUNDED or payment is P.REFUNDED)

    payment_changed = "payment_status" in values
    if payment_changed and payment is P.PAID and not order.paid_amount:
        values["paid_amount"] = order.total_amount
    if payment_changed and payment is P.REFUNDED and not order.refund_amount:
        values["refund_amount"] = order.paid_amount or order.total_amount

    for field in ("tracking_number", "carrier_name", "internal_notes"):
        value = getattr(update, field)
        if value is not None and value != getattr(order, field):
            values[field] = value

    if values:
        values["updated_at"] = now
    return values


def _address(order: OrderModel, prefix: str) -> Dict[str, Any]:
    return {
        "name": getattr(order, f"{prefix}_name"),
        "phone": getattr(order, f"{prefix}_phone"),
        "email": getattr(order, f"{prefix}_email"),
        "country": getattr(order, f"{prefix}_country"),
        "city": getattr(order, f"{prefix}_city"),
        "district": getattr(order, f"{prefix}_district"),
        "zip_code": getattr(order, f"{prefix}_zip_code"),
        "address_line1": getattr(order, f"{prefix}_address_line1"),
        "address_line2": getattr(order, f"{prefix}_address_line2"),
    }


def order_to_dict(order: OrderModel) -> Dict[str, Any]:
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "customer_id": order.customer_id,
        "cart_id": order.cart_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "shipping_status": order.shipping_status,
        "subtotal": order.subtotal,
        "tax_amount": order.tax_amount,
        "shipping_amount": order.shipping_amount,
        "discount_amount": order.discount_amount,
        "total_amount": order.total_amount,
        "paid_amount": order.paid_amount,
        "refund_amount": order.refund_amount,
        "currency": order.currency,
        "shipping_address": _address(order, "shipping"),
        "billing_address": _address(order, "billing"),
        "shipping_method": order.shipping_method,
        "payment_method": order.payment_method,
        "tracking_number": order.tracking_number,
        "carrier_name": order.carrier_name,
        "notes": order.notes,
        "internal_notes": order.internal_notes,
        "source": order.source,
        "coupon_code": order.coupon_code,
        "coupon_discount": order.coupon_discount,
        "points_earned": order.points_earned,
        "points_used": order.points_used,
        "points_value": order.points_value,
        "order_date": order.order_date,
        "paid_at": order.paid_at,
        "shipped_at": order.shipped_at,
        "delivered_at": order.delivered_at,
        "cancelled_at": order.cancelled_at,
        "refunded_at": order.refunded_at,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
        "items": [
            {
                "item_id": i.id,
                "product_id": i.product_id,
                "variation_id": i.variation_id,
                "product_name": i.product_name,
                "product_sku": i.product_sku,
                "product_image": i.product_image,
                "quantity": i.quantity,
                "unit_price": i.unit_price,
                "total_price": i.total_price,
                "attributes": i.attributes or {},
            }
            for i in order.items
        ],
    }


class OrderService:
    """
    Order queries and status updates.
    Creation lives in OrderFactory; after that only status fields,
    their timestamps and fulfilment notes change.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    def get_order(self, order_id: str) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order_to_dict(order)

    def get_order_by_number(self, order_number: str) -> Dict[str, Any]:
        order = self.repo.get_order_by_number(order_number)
        if not order:
            raise OrderNotFoundError(order_number)
        return order_to_dict(order)

    def list_orders(self, query: OrderListQuery | None = None) -> Dict[str, Any]:
        query = query or OrderListQuery()
        rows, total = self.repo.list_orders(query)
        return {
            "orders": [order_to_dict(o) for o in rows],
            "pagination": {
                "page": query.page,
                "limit": query.limit,
                "total": total,
                "total_pages": math.ceil(total / query.limit) if total else 0,
            },
        }

    def update_order_status(self, order_id: str, update: OrderStatusUpdate) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)
        if not order:
            raise OrderNotFoundError(order_id)

        values = plan_status_update(order, update, utc_now_iso())
        if not values:
            logger.info(f"Order {order_id}: status update is a no-op")
            return order_to_dict(order)

        try:
            expected = {
                "status": order.status,
                "payment_status": order.payment_status,
                "shipping_status": order.shipping_status,
            }
            rowcount = self.repo.update_order(order_id, expected, values)
            if rowcount == 0:
                raise ConflictError(
                    f"Order {order_id} was modified concurrently",
                    {"order_id": order_id},
                )
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order_id} updated: {sorted(values)}")
        return self.get_order(order_id)

    def cancel_order(self, order_id: str) -> Dict[str, Any]:
        return self.update_order_status(order_id, OrderStatusUpdate(status=OrderStatus.CANCELLED))

    def delete_order(self, order_id: str) -> None:
        try:
            if self.repo.soft_delete(order_id, utc_now_iso()) == 0:
                raise OrderNotFoundError(order_id)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise
        logger.info(f"Order {order_id} soft-deleted")

    def order_stats(self, customer_id: str | None = None, start=None, end=None) -> Dict[str, Any]:
        stats = self.repo.stats(
            customer_id=customer_id,
            start=to_iso(start) if start else None,
            end=to_iso(end) if end else None,
        )
        total_orders = stats["total_orders"]
        stats["average_order_value"] = (
            round(stats["total_revenue"] / total_orders) if total_orders else 0
        )
        return stats
