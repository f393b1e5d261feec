# shopcore/data/models/cart_item.py
from sqlalchemy import Column, ForeignKey, Integer, String, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from shopcore.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(String(64), primary_key=True)
    cart_id = Column(String(64), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False)
    variation_id = Column(String(64), nullable=True)
    #NULLs never collide in a unique index, so the key column holds "" for no variation
    variation_key = Column(String(64), nullable=False, default="")

    quantity = Column(Integer, nullable=False)

    added_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variation_key", name="u_cart_product_variation"),
        CheckConstraint("quantity > 0", name="ck_cart_item_quantity"),
    )
