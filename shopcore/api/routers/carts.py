# shopcore/api/routers/carts.py
from fastapi import APIRouter, Depends

from shopcore.api.deps import get_cart_service
from shopcore.domain.schemas import (
    CartOut,
    CouponIn,
    CreateCartIn,
    ItemIn,
    ItemUpdateIn,
)
from shopcore.services.cart_service import CartService

router = APIRouter(prefix="/carts", tags=["carts"])


@router.post("", response_model=CartOut)
def get_or_create_cart(payload: CreateCartIn, svc: CartService = Depends(get_cart_service)):
    """Open cart for the member or session, created on first use."""
    return svc.get_or_create(member_id=payload.member_id, session_id=payload.session_id)


@router.get("/{cart_id}", response_model=CartOut)
def get_cart(cart_id: str, svc: CartService = Depends(get_cart_service)):
    return svc.get_cart(cart_id)


@router.post("/{cart_id}/items", response_model=CartOut)
def add_item(cart_id: str, payload: ItemIn, svc: CartService = Depends(get_cart_service)):
    return svc.add_item(
        cart_id=cart_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variation_id=payload.variation_id,
    )


@router.patch("/{cart_id}/items/{item_id}", response_model=CartOut)
def update_item(
    cart_id: str,
    item_id: str,
    payload: ItemUpdateIn,
    svc: CartService = Depends(get_cart_service),
):
    return svc.update_item(cart_id, item_id, payload.quantity)


@router.delete("/{cart_id}/items/{item_id}", response_model=CartOut)
def remove_item(cart_id: str, item_id: str, svc: CartService = Depends(get_cart_service)):
    return svc.remove_item(cart_id, item_id)


@router.delete("/{cart_id}/items", response_model=CartOut)
def clear_cart(cart_id: str, svc: CartService = Depends(get_cart_service)):
    return svc.clear(cart_id)


@router.post("/{cart_id}/coupon", response_model=CartOut)
def apply_coupon(cart_id: str, payload: CouponIn, svc: CartService = Depends(get_cart_service)):
    return svc.apply_coupon(cart_id, payload.code)


@router.delete("/{cart_id}/coupon", response_model=CartOut)
def remove_coupon(cart_id: str, svc: CartService = Depends(get_cart_service)):
    return svc.remove_coupon(cart_id)
