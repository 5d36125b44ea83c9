# storefront/services/order_service.py
import math
from datetime import datetime, timezone
from typing import Dict, Any, List

from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.domain.errors import NotFound, InvalidState, AlreadyProcessed, ConcurrentModification
from storefront.domain.events import OrderEvent, OrderAction
from storefront.domain.pricing import money, calculate_totals, generate_order_number
from storefront.domain.status import (
    CartStatus,
    OrderStatus,
    TERMINAL_ORDER_STATUSES,
    NON_CANCELLABLE_ORDER_STATUSES,
    parse_order_status,
)
from storefront.repos.cart_repo import CartRepo
from storefront.repos.order_repo import OrderRepo
from storefront.services.event_publisher import EventPublisher
from storefront.services.product_client import ProductClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_ACTIONS = {
    OrderStatus.SHIPPED: OrderAction.SHIPPED,
    OrderStatus.DELIVERED: OrderAction.DELIVERED,
    OrderStatus.CANCELLED: OrderAction.CANCELLED,
}


class OrderService:
    """
    Serwis odpowiedzialny za domene zamowien.
    Zamowienie to snapshot koszyka z chwili checkoutu: nazwy, opisy i ceny
    sa kopiowane, pozniejsze zmiany w katalogu go nie dotycza.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        publisher: EventPublisher,
    ):
        self.db = db
        self.repo = OrderRepo(db)
        self.cart_repo = CartRepo(db)
        self.product_client = product_client
        self.publisher = publisher

    def _item_to_dict(self, item: OrderItemModel) -> Dict[str, Any]:
        return {
            "id": item.id,
            "product_id": item.product_id,
            "product_name": item.product_name,
            "product_description": item.product_description,
            "unit_price": item.unit_price,
            "quantity": item.quantity,
            "subtotal": item.subtotal,
        }

    def _to_dict(self, order: OrderModel) -> Dict[str, Any]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "cart_id": order.cart_id,
            "status": order.status,
            "subtotal": order.subtotal,
            "tax": order.tax,
            "shipping_cost": order.shipping_cost,
            "total_amount": order.total_amount,
            "payment_id": order.payment_id,
            "payment_method": order.payment_method,
            "shipping_address": order.shipping_address,
            "billing_address": order.billing_address,
            "notes": order.notes,
            "items": [self._item_to_dict(i) for i in order.items],
            "created_at": order.created_at,
            "updated_at": order.updated_at,
        }

    def _to_summary(self, order: OrderModel) -> Dict[str, Any]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "total_amount": order.total_amount,
            "item_count": len(order.items),
            "created_at": order.created_at,
        }

    def _publish(self, action: OrderAction, order: OrderModel, event_type: str, **details) -> None:
        self.publisher.publish_order_event(
            OrderEvent(
                event_type=event_type,
                action=action,
                user_id=order.user_id,
                order_id=order.id,
                order_number=order.order_number,
                cart_id=order.cart_id,
                total_amount=order.total_amount,
                payload=details,
            )
        )

    def _load(self, order_id: int, for_update: bool = False) -> OrderModel:
        order = self.repo.get_order(order_id, for_update=for_update)
        if not order:
            raise NotFound(f"Order not found with id: {order_id}")
        return order

    def _load_by_number(self, order_number: str, for_update: bool = False) -> OrderModel:
        order = self.repo.get_order_by_number(order_number, for_update=for_update)
        if not order:
            raise NotFound(f"Order not found with number: {order_number}")
        return order

    def _snapshot_items(self, cart: CartModel) -> List[OrderItemModel]:
        lines = []
        for item in cart.items:
            pdata = self.product_client.fetch_product(item.product_id)
            unit_price = money(pdata["price"])
            lines.append(
                OrderItemModel(
                    product_id=item.product_id,
                    product_name=pdata["name"],
                    product_description=pdata.get("description"),
                    unit_price=unit_price,
                    quantity=item.quantity,
                    subtotal=money(unit_price * item.quantity),
                )
            )
        return lines

    def _advance_cart(self, cart: CartModel, status: CartStatus, now: datetime) -> None:
        rowcount = self.cart_repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={
                "status": status.value,
                "version": cart.version + 1,
                "updated_at": now,
            },
        )
        if rowcount == 0:
            raise ConcurrentModification(f"Cart {cart.id} was modified by another operation")

    #commands
    def checkout(
        self,
        cart_id: int,
        shipping_address: str | None = None,
        billing_address: str | None = None,
        notes: str | None = None,
        payment_method: str = "STRIPE",
    ) -> Dict[str, Any]:
        """
        Use Case: zamowienie z koszyka.

        1. Walidacja stanu koszyka
        2. Snapshot pozycji z aktualnymi cenami z katalogu
        3. Order + pozycje + koszyk -> CHECKOUT w jednej transakcji
        4. ORDER_CREATED po commicie
        """
        cart = self.cart_repo.get_cart(cart_id)
        if not cart:
            raise NotFound(f"Cart not found with id: {cart_id}")

        if not cart.items:
            raise InvalidState("Cannot create order from empty cart")
        if cart.status == CartStatus.COMPLETED.value:
            raise AlreadyProcessed(f"Cart {cart_id} has already been checked out")
        if cart.status == CartStatus.ABANDONED.value:
            raise InvalidState(f"Cart {cart_id} has been abandoned")

        if cart.status == CartStatus.CHECKOUT.value:
            pending = self.repo.get_latest_order_for_cart(cart_id, OrderStatus.PENDING.value)
            if pending:
                raise AlreadyProcessed(
                    f"Cart {cart_id} already has pending order {pending.order_number}"
                )

        # katalog pytamy zanim cokolwiek zapiszemy
        items = self._snapshot_items(cart)
        totals = calculate_totals((i.unit_price, i.quantity) for i in items)
        now = datetime.now(timezone.utc)

        order = OrderModel(
            order_number=generate_order_number(),
            user_id=cart.user_id,
            cart_id=cart.id,
            status=OrderStatus.PENDING.value,
            payment_method=payment_method,
            shipping_address=shipping_address,
            billing_address=billing_address,
            notes=notes,
            items=items,
            created_at=now,
            updated_at=now,
            **totals,
        )

        try:
            self.repo.create_order(order)
            self._advance_cart(cart, CartStatus.CHECKOUT, now)
            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(
            f"Order {order.order_number} created from cart {cart_id}, total {order.total_amount}"
        )
        self._publish(
            OrderAction.CREATED,
            order,
            "ORDER_CREATED",
            status=order.status,
            itemCount=len(order.items),
        )
        return self._to_dict(order)

    def _complete(self, order: OrderModel, payment_reference: str) -> Dict[str, Any]:
        # ponowiony webhook z tym samym platnikiem nic nie zmienia
        if order.status == OrderStatus.PAID.value and order.payment_id == payment_reference:
            logger.info(f"Order {order.order_number} already paid with {payment_reference}")
            self.repo.commit()
            return self._to_dict(order)

        if order.status != OrderStatus.PENDING.value:
            self.repo.rollback()
            raise InvalidState(
                f"Order {order.order_number} cannot be completed in status {order.status}"
            )

        now = datetime.now(timezone.utc)
        try:
            order.status = OrderStatus.PAID.value
            order.payment_id = payment_reference
            order.updated_at = now

            if order.cart_id is not None:
                cart = self.cart_repo.get_cart(order.cart_id)
            else:
                # zamowienie bez powiazania z koszykiem, zgadujemy po userze
                cart = self.cart_repo.get_cart_by_user_and_status(order.user_id, CartStatus.CHECKOUT.value)

            if cart and cart.status == CartStatus.CHECKOUT.value:
                self._advance_cart(cart, CartStatus.COMPLETED, now)

            self.repo.commit()
        except Exception:
            self.repo.rollback()
            raise

        logger.info(f"Order {order.order_number} paid with {payment_reference}")
        self._publish(OrderAction.COMPLETED, order, "ORDER_COMPLETED", paymentId=payment_reference)
        return self._to_dict(order)

    def complete_order(self, order_id: int, payment_reference: str) -> Dict[str, Any]:
        return self._complete(self._load(order_id, for_update=True), payment_reference)

    def complete_order_by_number(self, order_number: str, payment_reference: str) -> Dict[str, Any]:
        return self._complete(self._load_by_number(order_number, for_update=True), payment_reference)

    def update_order_status(self, order_id: int, status: str, notes: str | None = None) -> Dict[str, Any]:
        new_status = parse_order_status(status)
        order = self._load(order_id, for_update=True)
        current = OrderStatus(order.status)

        if current in TERMINAL_ORDER_STATUSES and new_status != current:
            self.repo.rollback()
            raise InvalidState(f"Order {order.order_number} is {current.value} and cannot change status")
        if new_status == OrderStatus.PENDING and current != OrderStatus.PENDING:
            self.repo.rollback()
            raise InvalidState(f"Order {order.order_number} cannot go back to PENDING")
        if new_status == OrderStatus.CANCELLED and current in NON_CANCELLABLE_ORDER_STATUSES:
            self.repo.rollback()
            raise InvalidState("Cannot cancel order that has been shipped or delivered")

        order.status = new_status.value
        if notes:
            order.notes = notes
        order.updated_at = datetime.now(timezone.utc)
        self.repo.commit()

        logger.info(f"Order {order.order_number} status {current.value} -> {new_status.value}")
        self._publish(
            STATUS_ACTIONS.get(new_status, OrderAction.UPDATED),
            order,
            "ORDER_STATUS_UPDATED",
            oldStatus=current.value,
            newStatus=new_status.value,
        )
        return self._to_dict(order)

    def cancel_order(self, order_id: int, reason: str | None = None) -> Dict[str, Any]:
        order = self._load(order_id, for_update=True)
        current = OrderStatus(order.status)

        if current == OrderStatus.CANCELLED:
            self.repo.commit()
            return self._to_dict(order)
        if current in NON_CANCELLABLE_ORDER_STATUSES:
            self.repo.rollback()
            raise InvalidState("Cannot cancel order that has been shipped or delivered")
        if current in TERMINAL_ORDER_STATUSES:
            self.repo.rollback()
            raise InvalidState(f"Order {order.order_number} is {current.value} and cannot be cancelled")

        order.status = OrderStatus.CANCELLED.value
        if reason:
            prefix = f"{order.notes}\n" if order.notes else ""
            order.notes = f"{prefix}Cancellation reason: {reason}"
        order.updated_at = datetime.now(timezone.utc)
        self.repo.commit()

        logger.info(f"Order {order.order_number} cancelled")
        self._publish(OrderAction.CANCELLED, order, "ORDER_CANCELLED", reason=reason)
        return self._to_dict(order)

    #query
    def get_order_by_id(self, order_id: int) -> Dict[str, Any]:
        return self._to_dict(self._load(order_id))

    def get_order_by_number(self, order_number: str) -> Dict[str, Any]:
        return self._to_dict(self._load_by_number(order_number))

    def find_pending_order_for_cart(self, cart_id: int) -> Dict[str, Any] | None:
        order = self.repo.get_latest_order_for_cart(cart_id, OrderStatus.PENDING.value)
        return self._to_dict(order) if order else None

    def get_order_history(self, user_id: int, page: int = 0, size: int = 10) -> Dict[str, Any]:
        if page < 0 or size < 1:
            raise ValueError("Page must be >= 0 and size >= 1")

        orders, total = self.repo.get_orders_page(user_id, page, size)
        return {
            "orders": [self._to_summary(o) for o in orders],
            "total_orders": total,
            "page": page,
            "page_size": size,
            "total_pages": math.ceil(total / size) if total else 0,
        }

    def get_all_orders_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return [self._to_dict(o) for o in self.repo.get_orders_for_user(user_id)]

    def get_orders_by_status(self, user_id: int, status: str) -> List[Dict[str, Any]]:
        parsed = parse_order_status(status)
        return [self._to_dict(o) for o in self.repo.get_orders_for_user(user_id, parsed.value)]
