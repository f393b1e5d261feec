#import every model so Base.metadata knows all tables

from shopcore.data.models.cart import CartModel
from shopcore.data.models.cart_item import CartItemModel
from shopcore.data.models.order import OrderModel
from shopcore.data.models.order_item import OrderItemModel

__all__ = ["CartModel", "CartItemModel", "OrderModel", "OrderItemModel"]
