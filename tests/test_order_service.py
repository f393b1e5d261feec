from datetime import datetime, timedelta, timezone

import pytest

from shopcore.domain.errors import ConflictError, InvalidStatusTransitionError, OrderNotFoundError
from shopcore.domain.schemas import OrderItemIn, OrderListQuery, OrderStatusUpdate
from shopcore.domain.types import OrderStatus, PaymentStatus, ShippingStatus
from shopcore.repos.order_repo import OrderRepo
from shopcore.services.order_service import OrderService, plan_status_update
from shopcore.utils.timeutil import utc_now_iso


@pytest.fixture
def place(order_factory, checkout):
    def _place(customer_id="C1", quantity=1, **overrides):
        return order_factory.create_order(
            checkout(
                customer_id=customer_id,
                items=[OrderItemIn(product_id="P1", quantity=quantity)],
                **overrides,
            )
        )

    return _place


def _update(svc, order, **fields):
    return svc.update_order_status(order["order_id"], OrderStatusUpdate(**fields))


def test_get_order_and_by_number(order_service, place):
    order = place()
    assert order_service.get_order(order["order_id"])["order_number"] == order["order_number"]
    assert order_service.get_order_by_number(order["order_number"])["order_id"] == order["order_id"]

    with pytest.raises(OrderNotFoundError):
        order_service.get_order("order_missing")
    with pytest.raises(OrderNotFoundError):
        order_service.get_order_by_number("MS000000XXXXXX")


def test_happy_path_to_delivered(order_service, place):
    order = place()

    order = _update(order_service, order, payment_status=PaymentStatus.PAID)
    assert order["payment_status"] == "paid"
    assert order["paid_amount"] == order["total_amount"]
    assert order["paid_at"] is not None

    order = _update(order_service, order, status=OrderStatus.PROCESSING)
    order = _update(
        order_service, order, status=OrderStatus.SHIPPED, tracking_number="TRK1", carrier_name="Post"
    )
    assert order["shipping_status"] == "shipped"
    assert order["shipped_at"] is not None
    assert order["tracking_number"] == "TRK1"

    order = _update(order_service, order, status=OrderStatus.DELIVERED)
    assert order["shipping_status"] == "delivered"
    assert order["delivered_at"] is not None


def test_cancel_shipped_order_is_rejected(order_service, place):
    order = place()
    _update(order_service, order, payment_status=PaymentStatus.PAID)
    _update(order_service, order, status=OrderStatus.PROCESSING)
    _update(order_service, order, status=OrderStatus.SHIPPED)

    with pytest.raises(InvalidStatusTransitionError) as exc:
        order_service.cancel_order(order["order_id"])
    assert exc.value.current == "shipped"
    assert exc.value.requested == "cancelled"
    assert order_service.get_order(order["order_id"])["status"] == "shipped"


@pytest.mark.parametrize("paid", [False, True])
def test_pending_and_processing_orders_can_cancel(order_service, place, paid):
    order = place()
    if paid:
        _update(order_service, order, payment_status=PaymentStatus.PAID)
        _update(order_service, order, status=OrderStatus.PROCESSING)

    cancelled = order_service.cancel_order(order["order_id"])
    assert cancelled["status"] == "cancelled"
    assert cancelled["cancelled_at"] is not None


def test_processing_requires_payment(order_service, place):
    order = place()
    with pytest.raises(InvalidStatusTransitionError):
        _update(order_service, order, status=OrderStatus.PROCESSING)


def test_refund_drags_payment_along(order_service, place):
    order = place()
    _update(order_service, order, payment_status=PaymentStatus.PAID)
    _update(order_service, order, status=OrderStatus.PROCESSING)

    refunded = _update(order_service, order, status=OrderStatus.REFUNDED)
    assert refunded["payment_status"] == "refunded"
    assert refunded["refund_amount"] == refunded["paid_amount"]
    assert refunded["refunded_at"] is not None


def test_terminal_states_and_illegal_payment_moves(order_service, place):
    order = place()
    order_service.cancel_order(order["order_id"])
    with pytest.raises(InvalidStatusTransitionError):
        _update(order_service, order, status=OrderStatus.PENDING)

    other = place()
    _update(order_service, other, payment_status=PaymentStatus.PAID)
    with pytest.raises(InvalidStatusTransitionError):
        _update(order_service, other, payment_status=PaymentStatus.PENDING)


def test_timestamps_are_written_once(order_service, place):
    order = place()
    _update(order_service, order, payment_status=PaymentStatus.FAILED)
    first = _update(order_service, order, payment_status=PaymentStatus.PAID)
    assert first["paid_at"] is not None

    again = _update(order_service, order, payment_status=PaymentStatus.PAID)
    assert again["paid_at"] == first["paid_at"]
    assert again["updated_at"] == first["updated_at"]


def test_shipping_status_moves_forward_only(order_service, place):
    order = place()
    order = _update(order_service, order, shipping_status=ShippingStatus.PREPARING)
    assert order["shipping_status"] == "preparing"
    with pytest.raises(InvalidStatusTransitionError):
        _update(order_service, order, shipping_status=ShippingStatus.PENDING)


def test_plan_is_empty_for_a_no_op(order_service, place, db):
    order = place()
    model = OrderRepo(db).get_order(order["order_id"])
    assert plan_status_update(model, OrderStatusUpdate(status=OrderStatus.PENDING), "now") == {}


def test_concurrent_status_change_is_a_conflict(order_service, place, monkeypatch):
    order = place()
    monkeypatch.setattr(OrderRepo, "update_order", lambda self, *args: 0)
    with pytest.raises(ConflictError):
        _update(order_service, order, payment_status=PaymentStatus.PAID)


def test_unknown_order_update(order_service):
    with pytest.raises(OrderNotFoundError):
        order_service.update_order_status("order_missing", OrderStatusUpdate(status=OrderStatus.CANCELLED))


def test_soft_delete_hides_order(order_service, place):
    order = place()
    order_service.delete_order(order["order_id"])

    with pytest.raises(OrderNotFoundError):
        order_service.get_order(order["order_id"])
    with pytest.raises(OrderNotFoundError):
        order_service.delete_order(order["order_id"])
    assert order_service.list_orders()["pagination"]["total"] == 0


def test_list_filters_search_and_pagination(order_service, place, address):
    first = place(customer_id="C1", quantity=1)
    place(customer_id="C1", quantity=3)
    third = place(
        customer_id="C2",
        quantity=2,
        shipping_address=address.model_copy(update={"name": "Chen Wei", "email": "wei@example.com"}),
    )
    _update(order_service, first, payment_status=PaymentStatus.PAID)

    result = order_service.list_orders(OrderListQuery(customer_id="C1"))
    assert result["pagination"]["total"] == 2

    result = order_service.list_orders(OrderListQuery(payment_status=PaymentStatus.PAID))
    assert [o["order_id"] for o in result["orders"]] == [first["order_id"]]

    result = order_service.list_orders(OrderListQuery(search="chen"))
    assert [o["order_id"] for o in result["orders"]] == [third["order_id"]]

    result = order_service.list_orders(OrderListQuery(search=first["order_number"]))
    assert [o["order_id"] for o in result["orders"]] == [first["order_id"]]

    result = order_service.list_orders(
        OrderListQuery(sort_by="total_amount", sort_order="asc", limit=2, page=1)
    )
    totals = [o["total_amount"] for o in result["orders"]]
    assert totals == sorted(totals)
    assert result["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}

    page_two = order_service.list_orders(
        OrderListQuery(sort_by="total_amount", sort_order="asc", limit=2, page=2)
    )
    assert len(page_two["orders"]) == 1
    assert page_two["orders"][0]["total_amount"] >= totals[-1]


def test_list_date_range(order_service, place):
    place()
    now = datetime.now(timezone.utc)

    inside = OrderListQuery(order_date_start=now - timedelta(hours=1), order_date_end=now + timedelta(hours=1))
    assert order_service.list_orders(inside)["pagination"]["total"] == 1

    before = OrderListQuery(order_date_end=now - timedelta(hours=1))
    assert order_service.list_orders(before)["pagination"]["total"] == 0


def test_order_stats(order_service, place):
    a = place(customer_id="C1", quantity=1)
    b = place(customer_id="C1", quantity=2)
    place(customer_id="C2", quantity=1)
    order_service.cancel_order(b["order_id"])

    stats = order_service.order_stats(customer_id="C1")
    assert stats["total_orders"] == 2
    assert stats["total_revenue"] == a["total_amount"] + b["total_amount"]
    assert stats["average_order_value"] == round(stats["total_revenue"] / 2)
    assert stats["orders_by_status"] == {"pending": 1, "cancelled": 1}
    assert len(stats["revenue_by_month"]) == 1
    assert stats["revenue_by_month"][0]["orders"] == 2

    assert order_service.order_stats(customer_id="nobody")["average_order_value"] == 0


def test_write_planned_from_a_stale_read_is_refused(place, db, session_factory):
    order = place()
    order_id = order["order_id"]
    db.commit()

    reader, writer = session_factory(), session_factory()
    try:
        stale = OrderRepo(reader).get_order(order_id)
        reader.commit()

        OrderService(writer).update_order_status(order_id, OrderStatusUpdate(payment_status=PaymentStatus.PAID))
        writer.commit()

        #pending -> failed is legal from the stale snapshot, but payment is paid by now
        values = plan_status_update(stale, OrderStatusUpdate(payment_status=PaymentStatus.FAILED), utc_now_iso())
        expected = {
            "status": stale.status,
            "payment_status": stale.payment_status,
            "shipping_status": stale.shipping_status,
        }
        assert OrderRepo(reader).update_order(order_id, expected, values) == 0

        #a timestamp that is already set is never rewritten
        assert OrderRepo(reader).update_order(order_id, {}, {"paid_at": "2099-01-01T00:00:00.000000Z"}) == 0
        reader.rollback()

        current = OrderRepo(writer).get_order(order_id)
        assert current.payment_status == "paid"
        assert current.paid_at is not None
        assert current.paid_at != "2099-01-01T00:00:00.000000Z"
        writer.commit()
    finally:
        reader.close()
        writer.close()


def test_search_treats_wildcards_literally(order_service, place, address):
    plain = place()
    underscored = place(shipping_address=address.model_copy(update={"name": "Mei_Lin"}))

    assert order_service.list_orders(OrderListQuery(search="%"))["pagination"]["total"] == 0

    result = order_service.list_orders(OrderListQuery(search="_"))
    assert [o["order_id"] for o in result["orders"]] == [underscored["order_id"]]
    assert plain["order_id"] not in [o["order_id"] for o in result["orders"]]
