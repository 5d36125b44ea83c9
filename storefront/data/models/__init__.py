#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w Base.metadata

from storefront.data.models.user import UserModel
from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel

__all__ = ["UserModel", "CartModel", "CartItemModel", "OrderModel", "OrderItemModel"]
