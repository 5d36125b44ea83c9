# storefront/domain/events.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field


class UserAction(str, Enum):
    REGISTERED = "REGISTERED"
    LOGGED_IN = "LOGGED_IN"
    LOGGED_OUT = "LOGGED_OUT"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    DELETED = "DELETED"


class OrderAction(str, Enum):
    CART_CREATED = "CART_CREATED"
    CART_CLEARED = "CART_CLEARED"
    CART_DELETED = "CART_DELETED"
    CART_ABANDONED = "CART_ABANDONED"
    CART_STATUS_UPDATED = "CART_STATUS_UPDATED"
    ITEM_ADDED = "ITEM_ADDED"
    ITEM_REMOVED = "ITEM_REMOVED"
    ITEM_QUANTITY_UPDATED = "ITEM_QUANTITY_UPDATED"
    CHECKOUT_STARTED = "CHECKOUT_STARTED"
    CHECKOUT_SESSION_CREATED = "CHECKOUT_SESSION_CREATED"
    CREATED = "CREATED"
    COMPLETED = "COMPLETED"
    UPDATED = "UPDATED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    PAYMENT_SUCCEEDED = "PAYMENT_SUCCEEDED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CHARGE_SUCCEEDED = "CHARGE_SUCCEEDED"
    CHARGE_REFUNDED = "CHARGE_REFUNDED"


class NotificationType(str, Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"
    PUSH = "PUSH"
    IN_APP = "IN_APP"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DomainEvent(BaseModel):
    """Niezmienny rekord zdarzenia publikowany na szyne po commicie."""

    model_config = ConfigDict(frozen=True)

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str
    timestamp: datetime = Field(default_factory=_now)
    payload: Dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> str:
        return self.model_dump_json()


class UserEvent(DomainEvent):
    user_id: int
    email: str | None = None
    action: UserAction


class OrderEvent(DomainEvent):
    user_id: int | None = None
    order_id: int | None = None
    order_number: str | None = None
    cart_id: int | None = None
    action: OrderAction
    total_amount: Decimal | None = None


class NotificationEvent(DomainEvent):
    event_type: str = "NOTIFICATION"
    user_id: int | None = None
    email: str | None = None
    notification_type: NotificationType = NotificationType.EMAIL
    subject: str
    message: str
