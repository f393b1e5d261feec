# shopcore/data/models/cart.py
from sqlalchemy import CheckConstraint, Column, Index, Integer, String
from sqlalchemy.orm import relationship

from shopcore.data.database import Base
from shopcore.domain.types import MemberOwner, Owner, SessionOwner


class CartModel(Base):
    __tablename__ = "carts"

    id = Column(String(64), primary_key=True)

    #owner: exactly one of member_id / session_id
    member_id = Column(String(64), nullable=True)
    session_id = Column(String(128), nullable=True)

    status = Column(String(16), nullable=False, default="active")
    items_count = Column(Integer, nullable=False, default=0)
    total_amount = Column(Integer, nullable=False, default=0)
    applied_coupon_code = Column(String(100), nullable=True)
    coupon_discount = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    last_activity_at = Column(String(32), nullable=False)
    expires_at = Column(String(32), nullable=True)
    created_at = Column(String(32), nullable=False)
    updated_at = Column(String(32), nullable=False)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.added_at",
    )

    __table_args__ = (
        CheckConstraint(
            "(member_id IS NULL) <> (session_id IS NULL)",
            name="ck_cart_single_owner",
        ),
        Index("ix_carts_member_status", "member_id", "status"),
        Index("ix_carts_session_status", "session_id", "status"),
        Index("ix_carts_expires_at", "expires_at"),
    )

    @property
    def owner(self) -> Owner:
        if self.member_id is not None:
            return MemberOwner(self.member_id)
        return SessionOwner(self.session_id)
