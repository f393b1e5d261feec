"""Pytest configuration and fixtures."""

import os
from decimal import Decimal

#must be set before shopcore.data.database builds its module engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shopcore.data import models  # noqa: F401
from shopcore.data.database import Base, build_engine
from shopcore.domain.schemas import AddressIn, CreateOrderIn
from shopcore.domain.types import FixedCoupon, PercentageCoupon, ProductSnapshot
from shopcore.services.cart_service import CartService
from shopcore.services.lock_service import LockService
from shopcore.services.order_factory import OrderFactory
from shopcore.services.order_service import OrderService
from shopcore.services.pricing import PricingConfig


class FakeStockOracle:
    """In-memory catalog keyed by (product_id, variation_id)."""

    def __init__(self):
        self.products: dict[tuple, ProductSnapshot] = {}
        self.lookups = 0

    def put(self, product_id, price, stock, variation_id=None, **extra) -> ProductSnapshot:
        snapshot = ProductSnapshot(
            product_id=product_id,
            variation_id=variation_id,
            name=extra.pop("name", f"Product {product_id}"),
            sku=extra.pop("sku", f"SKU-{product_id}"),
            price=price,
            available_stock=stock,
            **extra,
        )
        self.products[(product_id, variation_id)] = snapshot
        return snapshot

    def remove(self, product_id, variation_id=None):
        self.products.pop((product_id, variation_id), None)

    def lookup(self, product_id, variation_id=None):
        self.lookups += 1
        return self.products.get((product_id, variation_id))


class FakeCouponResolver:
    def __init__(self):
        self.coupons = {}
        self.min_subtotal = {}

    def add(self, coupon, min_subtotal: int = 0):
        self.coupons[coupon.code] = coupon
        self.min_subtotal[coupon.code] = min_subtotal

    def resolve(self, code, subtotal):
        coupon = self.coupons.get(code)
        if coupon is None or subtotal < self.min_subtotal[code]:
            return None
        return coupon


class FakeRedis:
    """Just enough of redis.Redis for LockService."""

    def __init__(self):
        self.store = {}

    def set(self, name, value, nx=False, ex=None):
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def eval(self, script, numkeys, key, token):
        if self.store.get(key) == token:
            del self.store[key]
            return 1
        return 0


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def oracle():
    oracle = FakeStockOracle()
    oracle.put("P1", price=100, stock=10)
    oracle.put("P2", price=250, stock=3)
    return oracle


@pytest.fixture
def coupons():
    resolver = FakeCouponResolver()
    resolver.add(FixedCoupon(code="MINUS50", value=50))
    resolver.add(PercentageCoupon(code="TENOFF", value=10, max_discount=30))
    resolver.add(FixedCoupon(code="BIGSPEND", value=100), min_subtotal=1000)
    return resolver


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def pricing():
    #no tax, flat shipping; keeps totals easy to read in assertions
    return PricingConfig(
        shipping_rates={"standard": 60, "express": 120},
        free_shipping_threshold=1000,
        tax_rate=Decimal("0"),
        point_value=1,
        points_earn_rate=Decimal("0"),
        currency="TWD",
    )


@pytest.fixture
def cart_service(db, oracle, coupons):
    return CartService(db, stock_oracle=oracle, coupon_resolver=coupons)


@pytest.fixture
def order_factory(db, oracle, coupons, redis_client, pricing):
    return OrderFactory(
        db,
        stock_oracle=oracle,
        coupon_resolver=coupons,
        lock_service=LockService(client=redis_client),
        pricing=pricing,
    )


@pytest.fixture
def order_service(db):
    return OrderService(db)


@pytest.fixture
def address():
    return AddressIn(
        name="Lin Mei",
        phone="0912345678",
        email="mei@example.com",
        country="TW",
        city="Taipei",
        zip_code="100",
        address_line1="No. 1, Section 1",
    )


@pytest.fixture
def checkout(address):
    """Builds a CreateOrderIn with sensible defaults."""

    def _build(**overrides):
        data = {"shipping_address": address, "payment_method": "credit_card"}
        data.update(overrides)
        return CreateOrderIn(**data)

    return _build
