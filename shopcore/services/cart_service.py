# shopcore/services/cart_service.py
import uuid
from datetime import timedelta
from typing import Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.domain.errors import (
    CartItemNotFoundError,
    CartNotFoundError,
    CartNotMutableError,
    InsufficientStockError,
    InvalidCouponError,
    InvalidQuantityError,
    ProductNotFoundError,
    StorageUnavailableError,
)
from shopcore.domain.types import (
    MUTABLE_CART_STATUSES,
    CartStatus,
    MemberOwner,
    PriceLine,
    ProductSnapshot,
    SessionOwner,
    owner_from_keys,
)
from shopcore.repos.cart_repo import CartRepo
from shopcore.services.coupon_client import CouponResolver
from shopcore.services.pricing import discount_for, subtotal_of
from shopcore.services.product_client import StockOracle
from shopcore.utils.settings import CART_TTL_SECONDS, CART_ABANDON_SECONDS
from shopcore.utils.timeutil import iso_after, to_iso, utc_now, utc_now_iso
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart use cases.
    commands (get_or_create, add, update, remove, clear, coupons) change state,
    every command recomputes the summary from the item rows and live prices.
    get_cart is read only.
    """

    def __init__(
        self,
        db: Session,
        stock_oracle: StockOracle,
        coupon_resolver: CouponResolver | None = None,
        cart_ttl_seconds: int = CART_TTL_SECONDS,
    ):
        self.repo = CartRepo(db)
        self.stock_oracle = stock_oracle
        self.coupon_resolver = coupon_resolver
        self.cart_ttl_seconds = cart_ttl_seconds

    #query
    def get_cart(self, cart_id: str) -> Dict[str, Any]:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            raise CartNotFoundError(cart_id)
        return self._to_dict(cart, self.repo.get_cart_items(cart_id))

    #commands
    def get_or_create(self, member_id: str | None = None, session_id: str | None = None) -> Dict[str, Any]:
        """
        Returns the owner's open cart, creating an empty one if there is none.
        With both keys the member cart wins and the session's guest cart is merged into it.
        """
        owner = owner_from_keys(member_id, session_id)
        now = utc_now_iso()

        try:
            #a cart past expires_at is never handed out, even before the sweep reaches it
            if self.repo.expire_carts(now, owner):
                logger.info(f"Expired stale cart of {owner}")
            cart = self.repo.get_open_cart_by_owner(owner)

            if cart is None:
                cart = self.repo.create_cart(
                    CartModel(
                        id=f"cart_{uuid.uuid4().hex}",
                        member_id=owner.member_id if isinstance(owner, MemberOwner) else None,
                        session_id=owner.session_id if isinstance(owner, SessionOwner) else None,
                        status=CartStatus.ACTIVE.value,
                        items_count=0,
                        total_amount=0,
                        coupon_discount=0,
                        version=1,
                        last_activity_at=now,
                        expires_at=iso_after(self.cart_ttl_seconds),
                        created_at=now,
                        updated_at=now,
                    )
                )
                logger.info(f"Created cart {cart.id} for {owner}")
            elif cart.status == CartStatus.ABANDONED.value:
                logger.info(f"Reviving abandoned cart {cart.id}")
                self.repo.update_cart(cart.id, {"status": CartStatus.ACTIVE.value, "updated_at": now})

            guest = None
            if isinstance(owner, MemberOwner) and session_id:
                self.repo.expire_carts(now, SessionOwner(session_id))
                guest = self.repo.get_open_cart_by_owner(SessionOwner(session_id))

            if guest is not None and guest.id != cart.id:
                self._merge_guest_cart(guest, cart, now)
                result = self._refresh_summary(cart.id)
            else:
                result = self._to_dict(self.repo.refresh(cart), self.repo.get_cart_items(cart.id))

            self.repo.commit()
            return result
        except Exception as e:
            self._abort(e)
            raise

    def add_item(
        self,
        cart_id: str,
        product_id: str,
        quantity: int,
        variation_id: str | None = None,
    ) -> Dict[str, Any]:

        if quantity <= 0:
            raise InvalidQuantityError(quantity)

        cart = self._get_mutable_cart(cart_id)

        #live price + stock, never the cart's cached figures
        snapshot = self._lookup(product_id, variation_id)
        existing = self.repo.get_cart_item(cart_id, product_id, variation_id)
        in_cart = existing.quantity if existing else 0

        if not snapshot.can_supply(in_cart + quantity):
            logger.warning(
                f"Rejecting add of {quantity}x {product_id} to cart {cart_id}: "
                f"{in_cart} in cart, {snapshot.sellable_stock} available"
            )
            raise InsufficientStockError(
                product_id, in_cart + quantity, snapshot.sellable_stock, variation_id
            )

        now = utc_now_iso()
        try:
            if existing:
                logger.info(
                    f"Product {product_id} already in cart {cart_id}, "
                    f"raising quantity from {existing.quantity} by {quantity}"
                )
                self.repo.increment_item_quantity(existing.id, quantity, now)
            else:
                logger.info(f"Adding product {product_id} to cart {cart.id}")
                inserted = self.repo.insert_cart_item(
                    CartItemModel(
                        id=f"item_{uuid.uuid4().hex}",
                        cart_id=cart_id,
                        product_id=product_id,
                        variation_id=variation_id,
                        variation_key=variation_id or "",
                        quantity=quantity,
                        added_at=now,
                        updated_at=now,
                    )
                )
                if not inserted:
                    #a concurrent add created the row first, fold into it
                    row = self.repo.get_cart_item(cart_id, product_id, variation_id)
                    self.repo.increment_item_quantity(row.id, quantity, now)

            result = self._refresh_summary(cart_id, known={(product_id, variation_id): snapshot})
            self.repo.commit()
        except Exception as e:
            logger.error(f"Add to cart {cart_id} failed, rolling back: {e}")
            self._abort(e)
            raise

        return result

    def update_item(self, cart_id: str, item_id: str, quantity: int) -> Dict[str, Any]:
        """
        Sets the quantity of a cart line.
        quantity == 0 removes the line instead of failing.
        """
        if quantity < 0:
            raise InvalidQuantityError(quantity, "quantity cannot be negative")

        self._get_mutable_cart(cart_id)
        item = self.repo.get_cart_item_by_id(cart_id, item_id)
        if not item:
            raise CartItemNotFoundError(cart_id, item_id)

        if quantity == 0:
            return self.remove_item(cart_id, item_id)

        snapshot = self._lookup(item.product_id, item.variation_id)
        if not snapshot.can_supply(quantity):
            raise InsufficientStockError(
                item.product_id, quantity, snapshot.sellable_stock, item.variation_id
            )

        try:
            self.repo.set_item_quantity(item.id, quantity, utc_now_iso())
            result = self._refresh_summary(
                cart_id, known={(item.product_id, item.variation_id): snapshot}
            )
            self.repo.commit()
        except Exception as e:
            self._abort(e)
            raise

        logger.info(f"Cart {cart_id} item {item_id} quantity set to {quantity}")
        return result

    def remove_item(self, cart_id: str, item_id: str) -> Dict[str, Any]:
        cart = self._get_mutable_cart(cart_id)
        item = self.repo.get_cart_item_by_id(cart_id, item_id)

        #absent item: nothing to do
        if not item:
            return self._to_dict(cart, self.repo.get_cart_items(cart_id))

        try:
            self.repo.delete_cart_item(cart_id, item_id)
            result = self._refresh_summary(cart_id)
            self.repo.commit()
        except Exception as e:
            self._abort(e)
            raise

        logger.info(f"Removed item {item_id} from cart {cart_id}")
        return result

    def clear(self, cart_id: str) -> Dict[str, Any]:
        cart = self._get_mutable_cart(cart_id)
        items = self.repo.get_cart_items(cart_id)

        if not items and not cart.applied_coupon_code:
            return self._to_dict(cart, items)

        now = utc_now_iso()
        try:
            self.repo.delete_cart_items(cart_id)
            self._write_summary(
                cart_id,
                {
                    "items_count": 0,
                    "total_amount": 0,
                    "applied_coupon_code": None,
                    "coupon_discount": 0,
                },
                now,
            )
            self.repo.commit()
        except Exception as e:
            self._abort(e)
            raise

        logger.info(f"Cleared cart {cart_id}")
        return self.get_cart(cart_id)

    def apply_coupon(self, cart_id: str, code: str) -> Dict[str, Any]:
        if self.coupon_resolver is None:
            raise InvalidCouponError(code)
        self._get_mutable_cart(cart_id)

        lines = self._price_items(self.repo.get_cart_items(cart_id))
        subtotal = subtotal_of(line for _, line in lines if line is not None)
        coupon = self.coupon_resolver.resolve(code, subtotal)
        if coupon is None:
            raise InvalidCouponError(code)

        try:
            self._write_summary(cart_id, {"applied_coupon_code": coupon.code}, utc_now_iso())
            result = self._refresh_summary(cart_id)
            self.repo.commit()
        except Exception as e:
            self._abort(e)
            raise

        logger.info(f"Applied coupon {coupon.code} to cart {cart_id}")
        return result

    def remove_coupon(self, cart_id: str) -> Dict[str, Any]:
        cart = self._get_mutable_cart(cart_id)
        if not cart.applied_coupon_code:
            return self._to_dict(cart, self.repo.get_cart_items(cart_id))

        try:
            self._write_summary(
                cart_id, {"applied_coupon_code": None, "coupon_discount": 0}, utc_now_iso()
            )
            self.repo.commit()
        except Exception as e:
            self._abort(e)
            raise
        return self.get_cart(cart_id)

    #sweep
    def expire_stale_carts(self, abandon_after_seconds: int = CART_ABANDON_SECONDS) -> Dict[str, int]:
        """Past expires_at -> expired; idle active carts -> abandoned."""
        now_dt = utc_now()
        now = to_iso(now_dt)
        idle_before = to_iso(now_dt - timedelta(seconds=abandon_after_seconds))
        try:
            expired = self.repo.expire_carts(now)
            abandoned = self.repo.abandon_idle_carts(idle_before, now)
            self.repo.commit()
        except Exception as e:
            self._abort(e)
            raise

        logger.info(f"Cart sweep: {expired} expired, {abandoned} abandoned")
        return {"expired": expired, "abandoned": abandoned}

    # ---- helpers ----

    def _abort(self, e: Exception) -> None:
        self.repo.rollback()
        if isinstance(e, SQLAlchemyError):
            logger.error(f"Cart storage failure, rolled back: {e}")
            raise StorageUnavailableError(f"Cart storage unavailable: {e.__class__.__name__}") from e

    def _get_mutable_cart(self, cart_id: str) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            raise CartNotFoundError(cart_id)

        if cart.status in MUTABLE_CART_STATUSES and cart.expires_at and cart.expires_at < utc_now_iso():
            #lazily expire, the sweep may not have run yet
            self.repo.update_cart(
                cart_id, {"status": CartStatus.EXPIRED.value, "updated_at": utc_now_iso()}
            )
            self.repo.commit()
            cart = self.repo.refresh(cart)

        if cart.status not in MUTABLE_CART_STATUSES:
            raise CartNotMutableError(cart_id, cart.status)
        return cart

    def _lookup(self, product_id: str, variation_id: str | None) -> ProductSnapshot:
        logger.info(f"Looking up product {product_id} (variation {variation_id})")
        snapshot = self.stock_oracle.lookup(product_id, variation_id)
        if snapshot is None:
            raise ProductNotFoundError(product_id, variation_id)
        return snapshot

    def _price_items(self, items, known=None):
        """(item, PriceLine | None) per item; products gone from the catalog price as None."""
        known = known or {}
        priced = []
        for item in items:
            key = (item.product_id, item.variation_id)
            snapshot = known.get(key)
            if snapshot is None:
                snapshot = self.stock_oracle.lookup(item.product_id, item.variation_id)
                known[key] = snapshot
            line = PriceLine(snapshot.price, item.quantity) if snapshot else None
            priced.append((item, line))
        return priced

    def _refresh_summary(self, cart_id: str, known=None) -> Dict[str, Any]:
        """Re-read every item, price it live and store the derived totals."""
        cart = self.repo.get_cart(cart_id)
        items = self.repo.get_cart_items(cart_id)
        known = dict(known or {})
        priced = self._price_items(items, known)
        subtotal = subtotal_of(line for _, line in priced if line is not None)

        summary = {"items_count": len(items), "total_amount": subtotal}

        if cart.applied_coupon_code:
            coupon = None
            if self.coupon_resolver is not None:
                coupon = self.coupon_resolver.resolve(cart.applied_coupon_code, subtotal)
            if coupon is None:
                logger.warning(f"Coupon {cart.applied_coupon_code} no longer valid for cart {cart_id}, dropping it")
                summary["applied_coupon_code"] = None
                summary["coupon_discount"] = 0
            else:
                summary["coupon_discount"] = discount_for(coupon, subtotal)
        else:
            summary["coupon_discount"] = 0

        self._write_summary(cart_id, summary, utc_now_iso())
        return self._to_dict(self.repo.refresh(cart), items, known)

    def _write_summary(self, cart_id: str, values: dict, now: str) -> None:
        #every touch counts as activity and pushes expiry out
        values = {
            **values,
            "status": CartStatus.ACTIVE.value,
            "last_activity_at": now,
            "expires_at": iso_after(self.cart_ttl_seconds),
            "updated_at": now,
        }
        rowcount = self.repo.update_cart(cart_id, values)
        if rowcount == 0:
            cart = self.repo.refresh(self.repo.get_cart(cart_id))
            raise CartNotMutableError(cart_id, cart.status)

    def _merge_guest_cart(self, guest: CartModel, cart: CartModel, now: str) -> None:
        logger.info(f"Merging guest cart {guest.id} into member cart {cart.id}")
        for item in self.repo.get_cart_items(guest.id):
            existing = self.repo.get_cart_item(cart.id, item.product_id, item.variation_id)
            if existing:
                self.repo.increment_item_quantity(existing.id, item.quantity, now)
            else:
                self.repo.insert_cart_item(
                    CartItemModel(
                        id=f"item_{uuid.uuid4().hex}",
                        cart_id=cart.id,
                        product_id=item.product_id,
                        variation_id=item.variation_id,
                        variation_key=item.variation_key,
                        quantity=item.quantity,
                        added_at=item.added_at,
                        updated_at=now,
                    )
                )
        #guest cart is closed for good
        self.repo.update_cart(guest.id, {"status": CartStatus.EXPIRED.value, "updated_at": now})

    @staticmethod
    def _to_dict(cart: CartModel, items, known=None) -> Dict[str, Any]:
        known = known or {}
        rendered = []
        for i in items:
            snapshot = known.get((i.product_id, i.variation_id))
            rendered.append(
                {
                    "item_id": i.id,
                    "product_id": i.product_id,
                    "variation_id": i.variation_id,
                    "quantity": i.quantity,
                    "name": snapshot.name if snapshot else None,
                    "unit_price": snapshot.price if snapshot else None,
                    "line_total": snapshot.price * i.quantity if snapshot else 0,
                    "available": snapshot is not None or (i.product_id, i.variation_id) not in known,
                    "added_at": i.added_at,
                }
            )

        return {
            "cart_id": cart.id,
            "member_id": cart.member_id,
            "session_id": cart.session_id,
            "status": cart.status,
            "items": rendered,
            "items_count": cart.items_count,
            "total_amount": cart.total_amount,
            "applied_coupon_code": cart.applied_coupon_code,
            "coupon_discount": cart.coupon_discount,
            "last_activity_at": cart.last_activity_at,
            "expires_at": cart.expires_at,
            "created_at": cart.created_at,
            "updated_at": cart.updated_at,
        }
