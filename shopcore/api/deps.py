# shopcore/api/deps.py
from fastapi import Depends
from sqlalchemy.orm import Session

from shopcore.data.database import get_db
from shopcore.services.cart_service import CartService
from shopcore.services.coupon_client import HttpCouponResolver
from shopcore.services.lock_service import LockService
from shopcore.services.order_factory import OrderFactory
from shopcore.services.order_service import OrderService
from shopcore.services.pricing import PricingConfig
from shopcore.services.product_client import HttpStockOracle


def get_cart_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(
        db=db,
        stock_oracle=HttpStockOracle(),
        coupon_resolver=HttpCouponResolver(),
    )


def get_order_factory(db: Session = Depends(get_db)) -> OrderFactory:
    return OrderFactory(
        db=db,
        stock_oracle=HttpStockOracle(),
        coupon_resolver=HttpCouponResolver(),
        lock_service=LockService(),
        pricing=PricingConfig.from_settings(),
    )


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)
