import pytest

from shopcore.domain.errors import (
    CartItemNotFoundError,
    CartNotFoundError,
    CartNotMutableError,
    CatalogUnavailableError,
    InsufficientStockError,
    InvalidCouponError,
    InvalidQuantityError,
    ProductNotFoundError,
    ValidationError,
)
from shopcore.domain.types import StockStatus
from shopcore.repos.cart_repo import CartRepo
from shopcore.services.cart_service import CartService


def _items(cart):
    return {(i["product_id"], i["variation_id"]): i["quantity"] for i in cart["items"]}


def test_get_or_create_requires_an_owner(cart_service):
    with pytest.raises(ValidationError):
        cart_service.get_or_create()


def test_get_or_create_returns_the_same_open_cart(cart_service):
    first = cart_service.get_or_create(member_id="M1")
    second = cart_service.get_or_create(member_id="M1")
    assert first["cart_id"] == second["cart_id"]
    assert first["status"] == "active"
    assert first["items_count"] == 0
    assert first["total_amount"] == 0


def test_get_cart_unknown_id(cart_service):
    with pytest.raises(CartNotFoundError):
        cart_service.get_cart("cart_missing")


def test_add_item_twice_merges_into_one_line(cart_service):
    cart_id = cart_service.get_or_create(session_id="S1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 2)
    cart = cart_service.add_item(cart_id, "P1", 3)

    assert _items(cart) == {("P1", None): 5}
    assert cart["items_count"] == 1
    assert cart["total_amount"] == 500


def test_summary_matches_items_after_every_mutation(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]

    cart = cart_service.add_item(cart_id, "P1", 2)
    cart = cart_service.add_item(cart_id, "P2", 1)
    assert cart["items_count"] == 2
    assert cart["total_amount"] == 2 * 100 + 250

    p2 = next(i for i in cart["items"] if i["product_id"] == "P2")
    cart = cart_service.update_item(cart_id, p2["item_id"], 3)
    assert cart["total_amount"] == 2 * 100 + 3 * 250

    cart = cart_service.remove_item(cart_id, p2["item_id"])
    assert cart["items_count"] == 1
    assert cart["total_amount"] == 200

    stored = cart_service.get_cart(cart_id)
    assert stored["total_amount"] == sum(i["line_total"] for i in cart["items"])


def test_variations_are_separate_lines(cart_service, oracle):
    oracle.put("P1", price=120, stock=5, variation_id="RED")
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 1)
    cart = cart_service.add_item(cart_id, "P1", 2, variation_id="RED")

    assert _items(cart) == {("P1", None): 1, ("P1", "RED"): 2}
    assert cart["total_amount"] == 100 + 240


def test_add_exactly_available_stock_succeeds_one_more_fails(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart = cart_service.add_item(cart_id, "P2", 3)
    assert _items(cart) == {("P2", None): 3}

    with pytest.raises(InsufficientStockError) as exc:
        cart_service.add_item(cart_id, "P2", 1)
    assert exc.value.requested == 4
    assert exc.value.available == 3
    assert _items(cart_service.get_cart(cart_id)) == {("P2", None): 3}


def test_out_of_stock_status_blocks_add(cart_service, oracle):
    oracle.put("P3", price=10, stock=50, stock_status=StockStatus.OUT_OF_STOCK)
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    with pytest.raises(InsufficientStockError) as exc:
        cart_service.add_item(cart_id, "P3", 1)
    assert exc.value.available == 0


def test_add_unknown_product(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    with pytest.raises(ProductNotFoundError):
        cart_service.add_item(cart_id, "NOPE", 1)


@pytest.mark.parametrize("quantity", [0, -2])
def test_add_rejects_non_positive_quantity(cart_service, quantity):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    with pytest.raises(InvalidQuantityError):
        cart_service.add_item(cart_id, "P1", quantity)


def test_add_to_unknown_cart(cart_service):
    with pytest.raises(CartNotFoundError):
        cart_service.add_item("cart_missing", "P1", 1)


def test_catalog_outage_leaves_cart_untouched(cart_service, oracle, monkeypatch):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 1)

    def boom(*args, **kwargs):
        raise CatalogUnavailableError("catalog down")

    monkeypatch.setattr(oracle, "lookup", boom)
    with pytest.raises(CatalogUnavailableError) as exc:
        cart_service.add_item(cart_id, "P1", 1)
    assert exc.value.retryable

    monkeypatch.undo()
    assert _items(cart_service.get_cart(cart_id)) == {("P1", None): 1}


def test_update_item_to_zero_removes_it(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart = cart_service.add_item(cart_id, "P1", 2)
    item_id = cart["items"][0]["item_id"]

    cart = cart_service.update_item(cart_id, item_id, 0)
    assert cart["items"] == []
    assert cart["items_count"] == 0
    assert cart["total_amount"] == 0


def test_update_item_validation(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart = cart_service.add_item(cart_id, "P2", 1)
    item_id = cart["items"][0]["item_id"]

    with pytest.raises(InvalidQuantityError):
        cart_service.update_item(cart_id, item_id, -1)
    with pytest.raises(CartItemNotFoundError):
        cart_service.update_item(cart_id, "item_missing", 1)
    with pytest.raises(InsufficientStockError):
        cart_service.update_item(cart_id, item_id, 4)


def test_remove_and_clear_are_idempotent(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart = cart_service.add_item(cart_id, "P1", 1)
    item_id = cart["items"][0]["item_id"]

    first = cart_service.remove_item(cart_id, item_id)
    second = cart_service.remove_item(cart_id, item_id)
    assert first["items"] == second["items"] == []
    assert second["total_amount"] == 0

    cart_service.add_item(cart_id, "P2", 2)
    first = cart_service.clear(cart_id)
    second = cart_service.clear(cart_id)
    assert first["items_count"] == second["items_count"] == 0
    assert first["total_amount"] == second["total_amount"] == 0


def test_guest_cart_merges_into_member_cart(cart_service, db):
    guest_id = cart_service.get_or_create(session_id="S1")["cart_id"]
    cart_service.add_item(guest_id, "P1", 2)

    member_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(member_id, "P1", 3)
    cart_service.add_item(member_id, "P2", 1)

    merged = cart_service.get_or_create(member_id="M1", session_id="S1")
    assert merged["cart_id"] == member_id
    assert _items(merged) == {("P1", None): 5, ("P2", None): 1}
    assert merged["total_amount"] == 5 * 100 + 250

    assert cart_service.get_cart(guest_id)["status"] == "expired"
    with pytest.raises(CartNotMutableError):
        cart_service.add_item(guest_id, "P1", 1)


def test_member_with_only_a_guest_cart_gets_it_moved(cart_service):
    guest_id = cart_service.get_or_create(session_id="S2")["cart_id"]
    cart_service.add_item(guest_id, "P2", 2)

    cart = cart_service.get_or_create(member_id="M2", session_id="S2")
    assert cart["cart_id"] != guest_id
    assert cart["member_id"] == "M2"
    assert _items(cart) == {("P2", None): 2}


def test_expired_cart_rejects_mutations(db, oracle, coupons):
    service = CartService(db, stock_oracle=oracle, coupon_resolver=coupons, cart_ttl_seconds=-1)
    cart_id = service.get_or_create(member_id="M1")["cart_id"]

    with pytest.raises(CartNotMutableError) as exc:
        service.add_item(cart_id, "P1", 1)
    assert exc.value.status == "expired"
    assert service.get_cart(cart_id)["status"] == "expired"


def test_sweep_expires_and_abandons(cart_service, db):
    repo = CartRepo(db)
    stale_id = cart_service.get_or_create(member_id="OLD")["cart_id"]
    idle_id = cart_service.get_or_create(member_id="IDLE")["cart_id"]
    fresh_id = cart_service.get_or_create(member_id="NEW")["cart_id"]

    repo.update_cart(stale_id, {"expires_at": "2000-01-01T00:00:00.000000Z"})
    repo.update_cart(idle_id, {"last_activity_at": "2000-01-01T00:00:00.000000Z"})
    repo.commit()

    result = cart_service.expire_stale_carts(abandon_after_seconds=3600)
    assert result == {"expired": 1, "abandoned": 1}
    assert cart_service.get_cart(stale_id)["status"] == "expired"
    assert cart_service.get_cart(idle_id)["status"] == "abandoned"
    assert cart_service.get_cart(fresh_id)["status"] == "active"

    #abandoned carts come back on the next touch
    revived = cart_service.add_item(idle_id, "P1", 1)
    assert revived["status"] == "active"


def test_apply_and_remove_coupon(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 2)

    cart = cart_service.apply_coupon(cart_id, "MINUS50")
    assert cart["applied_coupon_code"] == "MINUS50"
    assert cart["coupon_discount"] == 50
    assert cart["total_amount"] == 200

    #percentage coupons follow the live subtotal and stay capped
    cart = cart_service.apply_coupon(cart_id, "TENOFF")
    assert cart["coupon_discount"] == 20
    cart = cart_service.add_item(cart_id, "P1", 3)
    assert cart["coupon_discount"] == 30

    cart = cart_service.remove_coupon(cart_id)
    assert cart["applied_coupon_code"] is None
    assert cart["coupon_discount"] == 0


def test_invalid_coupon_is_rejected(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 1)
    with pytest.raises(InvalidCouponError):
        cart_service.apply_coupon(cart_id, "NOPE")
    with pytest.raises(InvalidCouponError):
        cart_service.apply_coupon(cart_id, "BIGSPEND")


def test_coupon_dropped_when_subtotal_falls_below_minimum(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart = cart_service.add_item(cart_id, "P1", 10)
    cart = cart_service.apply_coupon(cart_id, "BIGSPEND")
    assert cart["coupon_discount"] == 100

    cart = cart_service.update_item(cart_id, cart["items"][0]["item_id"], 5)
    assert cart["applied_coupon_code"] is None
    assert cart["coupon_discount"] == 0


def test_clear_drops_coupon(cart_service):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 1)
    cart_service.apply_coupon(cart_id, "MINUS50")

    cart = cart_service.clear(cart_id)
    assert cart["applied_coupon_code"] is None
    assert cart["coupon_discount"] == 0


def test_product_removed_from_catalog_prices_at_zero(cart_service, oracle):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 1)
    cart = cart_service.add_item(cart_id, "P2", 1)
    assert cart["total_amount"] == 350

    oracle.remove("P2")
    p1 = next(i for i in cart["items"] if i["product_id"] == "P1")
    cart = cart_service.update_item(cart_id, p1["item_id"], 2)

    assert cart["items_count"] == 2
    assert cart["total_amount"] == 200
    gone = next(i for i in cart["items"] if i["product_id"] == "P2")
    assert gone["available"] is False


def test_get_or_create_never_returns_a_cart_past_expiry(cart_service, db):
    stale_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    CartRepo(db).update_cart(stale_id, {"expires_at": "2000-01-01T00:00:00.000000Z"})
    CartRepo(db).commit()

    cart = cart_service.get_or_create(member_id="M1")
    assert cart["cart_id"] != stale_id
    assert cart["status"] == "active"
    assert cart["expires_at"] > "2000-01-01T00:00:00.000000Z"
    assert cart_service.get_cart(stale_id)["status"] == "expired"

    cart = cart_service.add_item(cart["cart_id"], "P1", 1)
    assert cart["items_count"] == 1


def test_guest_cart_past_expiry_is_not_merged(cart_service, db):
    guest_id = cart_service.get_or_create(session_id="S1")["cart_id"]
    cart_service.add_item(guest_id, "P1", 2)
    CartRepo(db).update_cart(guest_id, {"expires_at": "2000-01-01T00:00:00.000000Z"})
    CartRepo(db).commit()

    cart = cart_service.get_or_create(member_id="M1", session_id="S1")
    assert cart["items"] == []
    assert cart_service.get_cart(guest_id)["status"] == "expired"


def test_add_racing_an_insert_of_the_same_line_sums_quantities(cart_service, monkeypatch):
    cart_id = cart_service.get_or_create(member_id="M1")["cart_id"]
    cart_service.add_item(cart_id, "P1", 2)

    #the first lookup misses the row, as if a concurrent add created it meanwhile
    original = CartRepo.get_cart_item
    calls = []

    def miss_once(self, *args):
        calls.append(args)
        if len(calls) == 1:
            return None
        return original(self, *args)

    monkeypatch.setattr(CartRepo, "get_cart_item", miss_once)
    cart = cart_service.add_item(cart_id, "P1", 3)

    assert len(calls) == 2
    assert _items(cart) == {("P1", None): 5}
    assert cart["items_count"] == 1
    assert cart["total_amount"] == 500
