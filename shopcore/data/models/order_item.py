# shopcore/data/models/order_item.py
from sqlalchemy import JSON, CheckConstraint, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from shopcore.data.database import Base


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(String(64), primary_key=True)
    order_id = Column(String(64), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    product_id = Column(String(64), nullable=False)
    variation_id = Column(String(64), nullable=True)

    #snapshot at purchase time
    product_name = Column(String(300), nullable=False)
    product_sku = Column(String(100), nullable=False, default="")
    product_image = Column(String(500))
    attributes = Column(JSON, nullable=False, default=dict)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    total_price = Column(Integer, nullable=False)

    created_at = Column(String(32), nullable=False)

    order = relationship("OrderModel", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_quantity"),
        CheckConstraint("total_price = unit_price * quantity", name="ck_order_item_total"),
    )
