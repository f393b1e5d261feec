# shopcore/data/models/order.py
from sqlalchemy import Column, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from shopcore.data.database import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    order_number = Column(String(32), nullable=False, unique=True)
    customer_id = Column(String(64), nullable=False)
    cart_id = Column(String(64), nullable=True)

    status = Column(String(16), nullable=False, default="pending")
    payment_status = Column(String(16), nullable=False, default="pending")
    shipping_status = Column(String(16), nullable=False, default="pending")

    #money, minor currency units
    subtotal = Column(Integer, nullable=False)
    tax_amount = Column(Integer, nullable=False, default=0)
    shipping_amount = Column(Integer, nullable=False, default=0)
    discount_amount = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False)
    paid_amount = Column(Integer, nullable=False, default=0)
    refund_amount = Column(Integer, nullable=False, default=0)
    currency = Column(String(3), nullable=False)

    #address snapshots
    shipping_name = Column(String(200), nullable=False)
    shipping_phone = Column(String(50))
    shipping_email = Column(String(200))
    shipping_country = Column(String(64), nullable=False)
    shipping_city = Column(String(100), nullable=False)
    shipping_district = Column(String(100))
    shipping_zip_code = Column(String(20))
    shipping_address_line1 = Column(String(300), nullable=False)
    shipping_address_line2 = Column(String(300))

    billing_name = Column(String(200), nullable=False)
    billing_phone = Column(String(50))
    billing_email = Column(String(200))
    billing_country = Column(String(64), nullable=False)
    billing_city = Column(String(100), nullable=False)
    billing_district = Column(String(100))
    billing_zip_code = Column(String(20))
    billing_address_line1 = Column(String(300), nullable=False)
    billing_address_line2 = Column(String(300))

    shipping_method = Column(String(32), nullable=False)
    payment_method = Column(String(32), nullable=False)
    tracking_number = Column(String(100))
    carrier_name = Column(String(100))

    notes = Column(Text)
    internal_notes = Column(Text)
    source = Column(String(16), nullable=False, default="web")

    coupon_code = Column(String(100))
    coupon_discount = Column(Integer, nullable=False, default=0)
    points_earned = Column(Integer, nullable=False, default=0)
    points_used = Column(Integer, nullable=False, default=0)
    points_value = Column(Integer, nullable=False, default=0)

    #transition timestamps, each written once
    order_date = Column(String(32), nullable=False)
    paid_at = Column(String(32))
    shipped_at = Column(String(32))
    delivered_at = Column(String(32))
    cancelled_at = Column(String(32))
    refunded_at = Column(String(32))

    created_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)
    deleted_at = Column(String(32))

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        order_by="OrderItemModel.position",
    )

    __table_args__ = (
        Index("ix_orders_customer", "customer_id"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_payment_status", "payment_status"),
        Index("ix_orders_shipping_status", "shipping_status"),
        Index("ix_orders_order_date", "order_date"),
        Index("ix_orders_deleted_at", "deleted_at"),
    )
