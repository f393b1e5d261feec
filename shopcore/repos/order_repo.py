# shopcore/repos/order_repo.py
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel
from shopcore.domain.schemas import OrderListQuery
from shopcore.utils.timeutil import to_iso

STAMPED_COLUMNS = ("paid_at", "shipped_at", "delivered_at", "cancelled_at", "refunded_at")

_SORT_COLUMNS = {
    "order_date": OrderModel.order_date,
    "total_amount": OrderModel.total_amount,
    "status": OrderModel.status,
}


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def insert_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def insert_items(self, items: list[OrderItemModel]) -> None:
        self.db.add_all(items)
        self.db.flush()

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.id == order_id, OrderModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_order_by_number(self, order_number: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.order_number == order_number, OrderModel.deleted_at.is_(None))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def count_orders(self) -> int:
        return self.db.execute(select(func.count()).select_from(OrderModel)).scalar_one()

    def _filters(self, query: OrderListQuery) -> list:
        conditions = [OrderModel.deleted_at.is_(None)]

        if query.status:
            conditions.append(OrderModel.status == query.status.value)
        if query.payment_status:
            conditions.append(OrderModel.payment_status == query.payment_status.value)
        if query.shipping_status:
            conditions.append(OrderModel.shipping_status == query.shipping_status.value)
        if query.customer_id:
            conditions.append(OrderModel.customer_id == query.customer_id)
        if query.order_date_start:
            conditions.append(OrderModel.order_date >= to_iso(query.order_date_start))
        if query.order_date_end:
            conditions.append(OrderModel.order_date <= to_iso(query.order_date_end))
        if query.search:
            #user text is literal, % and _ are not wildcards
            text = query.search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            pattern = f"%{text}%"
            conditions.append(
                or_(
                    OrderModel.order_number.ilike(pattern, escape="\\"),
                    OrderModel.shipping_name.ilike(pattern, escape="\\"),
                    OrderModel.shipping_email.ilike(pattern, escape="\\"),
                )
            )
        return conditions

    def list_orders(self, query: OrderListQuery) -> tuple[list[OrderModel], int]:
        conditions = self._filters(query)

        column = _SORT_COLUMNS[query.sort_by]
        ordering = column.asc() if query.sort_order == "asc" else column.desc()

        rows = self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(*conditions)
            .order_by(ordering, OrderModel.id)
            .limit(query.limit)
            .offset((query.page - 1) * query.limit)
            .execution_options(populate_existing=True)
        ).scalars().all()

        total = self.db.execute(
            select(func.count()).select_from(OrderModel).where(*conditions)
        ).scalar_one()

        return list(rows), total

    def update_order(self, order_id: str, expected: dict, values: dict) -> int:
        """Optimistic write.

        Applies only while every column in ``expected`` still holds the value the
        caller planned from, and only while each timestamp being written is still empty.
        """
        conditions = [OrderModel.id == order_id, OrderModel.deleted_at.is_(None)]
        conditions += [getattr(OrderModel, column) == value for column, value in expected.items()]
        conditions += [
            getattr(OrderModel, column).is_(None)
            for column in values
            if column in STAMPED_COLUMNS
        ]
        result = self.db.execute(
            update(OrderModel)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def soft_delete(self, order_id: str, now: str) -> int:
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.deleted_at.is_(None))
            .values(deleted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def stats(self, customer_id: str | None = None, start: str | None = None, end: str | None = None) -> dict:
        conditions = [OrderModel.deleted_at.is_(None)]
        if customer_id:
            conditions.append(OrderModel.customer_id == customer_id)
        if start:
            conditions.append(OrderModel.order_date >= start)
        if end:
            conditions.append(OrderModel.order_date <= end)

        total_orders, revenue = self.db.execute(
            select(func.count(), func.coalesce(func.sum(OrderModel.total_amount), 0)).where(*conditions)
        ).one()

        by_status = self.db.execute(
            select(OrderModel.status, func.count()).where(*conditions).group_by(OrderModel.status)
        ).all()

        #order_date is an ISO string, YYYY-MM is its first 7 chars
        month = func.substr(OrderModel.order_date, 1, 7)
        by_month = self.db.execute(
            select(month, func.sum(OrderModel.total_amount), func.count())
            .where(*conditions)
            .group_by(month)
            .order_by(month)
        ).all()

        return {
            "total_orders": total_orders,
            "total_revenue": int(revenue),
            "orders_by_status": {status: count for status, count in by_status},
            "revenue_by_month": [
                {"month": m, "revenue": int(r or 0), "orders": c} for m, r, c in by_month
            ],
        }

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
