# shopcore/api/routers/orders.py
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response

from shopcore.api.deps import get_order_factory, get_order_service
from shopcore.domain.schemas import (
    CreateOrderIn,
    OrderListOut,
    OrderListQuery,
    OrderOut,
    OrderStatsOut,
    OrderStatusUpdate,
)
from shopcore.services.order_factory import OrderFactory
from shopcore.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(payload: CreateOrderIn, factory: OrderFactory = Depends(get_order_factory)):
    """
    Checkout: converts the cart (or the explicit item list) into an order.
    Price and stock are re-read at commit time.
    """
    return factory.create_order(payload)


@router.get("", response_model=OrderListOut)
def list_orders(
    query: Annotated[OrderListQuery, Query()],
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_orders(query)


@router.get("/stats", response_model=OrderStatsOut)
def order_stats(
    customer_id: str | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    svc: OrderService = Depends(get_order_service),
):
    return svc.order_stats(customer_id=customer_id, start=start, end=end)


@router.get("/by-number/{order_number}", response_model=OrderOut)
def get_order_by_number(order_number: str, svc: OrderService = Depends(get_order_service)):
    return svc.get_order_by_number(order_number)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, svc: OrderService = Depends(get_order_service)):
    return svc.get_order(order_id)


@router.patch("/{order_id}", response_model=OrderOut)
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    svc: OrderService = Depends(get_order_service),
):
    return svc.update_order_status(order_id, payload)


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: str, svc: OrderService = Depends(get_order_service)):
    svc.delete_order(order_id)
    return Response(status_code=204)
