# storefront/domain/status.py
from enum import Enum


class CartStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CHECKOUT = "CHECKOUT"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


TERMINAL_ORDER_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}
NON_CANCELLABLE_ORDER_STATUSES = {OrderStatus.SHIPPED, OrderStatus.DELIVERED}


def parse_cart_status(value: str) -> CartStatus:
    try:
        return CartStatus(value.upper())
    except ValueError:
        raise ValueError(f"Invalid cart status: {value}") from None


def parse_order_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value.upper())
    except ValueError:
        raise ValueError(f"Invalid order status: {value}") from None
