# shopcore/repos/cart_repo.py
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.domain.types import MUTABLE_CART_STATUSES, CartStatus, MemberOwner, Owner


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    # ---- carts ----

    def get_cart(self, cart_id: str, for_update: bool = False) -> CartModel | None:
        stmt = (
            select(CartModel)
            .where(CartModel.id == cart_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _owner_clause(owner: Owner):
        if isinstance(owner, MemberOwner):
            return CartModel.member_id == owner.member_id
        return CartModel.session_id == owner.session_id

    def get_open_cart_by_owner(self, owner: Owner) -> CartModel | None:
        return self.db.execute(
            select(CartModel)
            .where(self._owner_clause(owner), CartModel.status.in_(MUTABLE_CART_STATUSES))
            .order_by(CartModel.last_activity_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        self.db.add(cart)
        self.db.flush()
        return cart

    def update_cart(self, cart_id: str, new_data: dict, expected_statuses=MUTABLE_CART_STATUSES) -> int:
        """Write ``new_data`` only while the cart is still in one of ``expected_statuses``.

        Bumps ``version`` in the same statement; returns the affected row count.
        """
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.status.in_(expected_statuses))
            .values(version=CartModel.version + 1, **new_data)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def mark_converted(self, cart_id: str, now: str) -> int:
        return self.update_cart(
            cart_id,
            {"status": CartStatus.CONVERTED.value, "updated_at": now},
        )

    def expire_carts(self, now: str, owner: Owner | None = None) -> int:
        """Flip open carts past expires_at to expired, optionally only ``owner``'s."""
        conditions = [
            CartModel.status.in_(MUTABLE_CART_STATUSES),
            CartModel.expires_at.is_not(None),
            CartModel.expires_at < now,
        ]
        if owner is not None:
            conditions.append(self._owner_clause(owner))
        result = self.db.execute(
            update(CartModel)
            .where(*conditions)
            .values(status=CartStatus.EXPIRED.value, updated_at=now, version=CartModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def abandon_idle_carts(self, idle_before: str, now: str) -> int:
        result = self.db.execute(
            update(CartModel)
            .where(
                CartModel.status == CartStatus.ACTIVE.value,
                CartModel.last_activity_at < idle_before,
            )
            .values(status=CartStatus.ABANDONED.value, updated_at=now, version=CartModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ---- items ----

    def get_cart_items(self, cart_id: str) -> list[CartItemModel]:
        return list(
            self.db.execute(
                select(CartItemModel)
                .where(CartItemModel.cart_id == cart_id)
                .order_by(CartItemModel.added_at, CartItemModel.id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def get_cart_item(self, cart_id: str, product_id: str, variation_id: str | None) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.product_id == product_id,
                CartItemModel.variation_key == (variation_id or ""),
            ).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_cart_item_by_id(self, cart_id: str, item_id: str) -> CartItemModel | None:
        return self.db.execute(
            select(CartItemModel).where(
                CartItemModel.cart_id == cart_id,
                CartItemModel.id == item_id,
            ).execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def insert_cart_item(self, item: CartItemModel) -> bool:
        """Insert under a savepoint; False when the (cart, product, variation) row already exists."""
        try:
            with self.db.begin_nested():
                self.db.add(item)
            return True
        except IntegrityError:
            return False

    def increment_item_quantity(self, item_id: str, delta: int, now: str) -> int:
        #quantity = quantity + n keeps concurrent adds from losing updates
        result = self.db.execute(
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(quantity=CartItemModel.quantity + delta, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def set_item_quantity(self, item_id: str, quantity: int, now: str) -> int:
        result = self.db.execute(
            update(CartItemModel)
            .where(CartItemModel.id == item_id)
            .values(quantity=quantity, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_cart_item(self, cart_id: str, item_id: str) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id, CartItemModel.id == item_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def delete_cart_items(self, cart_id: str) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ---- transaction ----

    def refresh(self, cart: CartModel) -> CartModel:
        self.db.refresh(cart)
        return cart

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
