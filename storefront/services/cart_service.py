# storefront/services/cart_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any, List

from requests import RequestException
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import NotFound, InvalidState, AlreadyProcessed, ConcurrentModification
from storefront.domain.events import OrderEvent, OrderAction
from storefront.domain.pricing import money
from storefront.domain.status import CartStatus, parse_cart_status
from storefront.repos.cart_repo import CartRepo
from storefront.repos.user_repo import UserRepo
from storefront.services.event_publisher import EventPublisher
from storefront.services.product_client import ProductClient
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cykl zycia koszyka: ACTIVE -> CHECKOUT -> COMPLETED, albo ABANDONED.
    commands modyfikuja stan, commit i dopiero potem publikacja zdarzenia
    query tylko odczyt, ceny zawsze liczone na biezaco z katalogu
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        publisher: EventPublisher,
    ):
        self.repo = CartRepo(db)
        self.user_repo = UserRepo(db)
        self.product_client = product_client
        self.publisher = publisher

    #helpers
    def _load(self, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        if not cart:
            raise NotFound(f"Cart not found with id: {cart_id}")
        return cart

    def _ensure_modifiable(self, cart: CartModel) -> None:
        if cart.status != CartStatus.ACTIVE.value:
            raise InvalidState(f"Cart {cart.id} cannot be modified in status {cart.status}")

    def _bump(self, cart: CartModel, **changes) -> None:
        """Compare-and-increment na wersji koszyka + commit."""
        old_version = cart.version
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=old_version,
            new_data={
                "version": old_version + 1,
                "updated_at": datetime.now(timezone.utc),
                **changes,
            },
        )

        # np. update carts set version 3 where id 1 and version 2
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrentModification(
                f"Cart {cart.id} was modified by another operation"
            )

        self.repo.commit()

    def _fetch_or_none(self, product_id: int) -> dict | None:
        try:
            return self.product_client.fetch_product(product_id)
        except (NotFound, RequestException) as e:
            # pozycja juz zapisana, brak w katalogu nie moze wywrocic odpowiedzi
            logger.warning(f"Product {product_id} unavailable for pricing: {e}")
            return None

    def _priced_items(self, cart: CartModel) -> List[Dict[str, Any]]:
        products: Dict[int, dict | None] = {}
        lines = []
        for item in cart.items:
            if item.product_id not in products:
                products[item.product_id] = self._fetch_or_none(item.product_id)
            pdata = products[item.product_id]
            if pdata is None:
                lines.append(
                    {
                        "id": item.id,
                        "product_id": item.product_id,
                        "product_name": None,
                        "product_price": None,
                        "quantity": item.quantity,
                        "subtotal": Decimal("0.00"),
                        "available": False,
                        "added_at": item.added_at,
                    }
                )
                continue

            price = money(pdata["price"])
            lines.append(
                {
                    "id": item.id,
                    "product_id": item.product_id,
                    "product_name": pdata.get("name"),
                    "product_price": price,
                    "quantity": item.quantity,
                    "subtotal": money(price * item.quantity),
                    "available": True,
                    "added_at": item.added_at,
                }
            )
        return lines

    def _to_dict(self, cart: CartModel) -> Dict[str, Any]:
        items = self._priced_items(cart)
        return {
            "cart_id": cart.id,
            "user_id": cart.user_id,
            "status": cart.status,
            "items": items,
            "total_items": sum(i["quantity"] for i in items),
            "total_price": sum((i["subtotal"] for i in items), Decimal("0.00")),
            "created_at": cart.created_at,
            "updated_at": cart.updated_at,
        }

    def _publish(self, action: OrderAction, cart: CartModel, total=None, event_type: str | None = None, **details) -> None:
        self.publisher.publish_order_event(
            OrderEvent(
                event_type=event_type or action.value,
                action=action,
                user_id=cart.user_id,
                cart_id=cart.id,
                total_amount=total,
                payload=details,
            )
        )

    #query
    def get_cart(self, cart_id: int) -> Dict[str, Any]:
        logger.debug(f"Fetching cart {cart_id}")
        return self._to_dict(self._load(cart_id))

    def get_active_cart_by_user(self, user_id: int) -> Dict[str, Any]:
        cart = self.repo.get_active_cart_by_user(user_id)
        if not cart:
            raise NotFound(f"No active cart found for user: {user_id}")
        return self._to_dict(cart)

    def get_cart_summary(self, cart_id: int) -> Dict[str, Any]:
        cart_dict = self.get_cart(cart_id)
        return {
            "cart_id": cart_dict["cart_id"],
            "status": cart_dict["status"],
            "item_count": len(cart_dict["items"]),
            "total_items": cart_dict["total_items"],
            "total_price": cart_dict["total_price"],
        }

    def get_owner_id(self, cart_id: int) -> int:
        return self._load(cart_id).user_id

    #commands
    def create_or_get_active_cart(self, user_id: int) -> Dict[str, Any]:
        existing = self.repo.get_active_cart_by_user(user_id)
        if existing:
            logger.info(f"User {user_id} already has active cart {existing.id}")
            return self._to_dict(existing)

        if not self.user_repo.exists(user_id):
            raise NotFound(f"User not found with id: {user_id}")

        cart = self.repo.create_cart(
            CartModel(user_id=user_id, status=CartStatus.ACTIVE.value, version=1)
        )
        self.repo.commit()

        logger.info(f"Created cart {cart.id} for user {user_id}")
        self._publish(OrderAction.CART_CREATED, cart)
        return self._to_dict(cart)

    def add_item(self, cart_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        cart = self._load(cart_id)
        self._ensure_modifiable(cart)

        # NotFound jesli produktu nie ma w katalogu
        pdata = self.product_client.fetch_product(product_id)

        existing_item = cart.find_item(product_id)
        if existing_item:
            new_quantity = existing_item.quantity + quantity
            logger.info(
                f"Product {product_id} already in cart {cart_id}, "
                f"quantity {existing_item.quantity} -> {new_quantity}"
            )
            existing_item.quantity = new_quantity
            action = OrderAction.ITEM_QUANTITY_UPDATED
        else:
            logger.info(f"Adding product {product_id} x{quantity} to cart {cart_id}")
            self.repo.add_cart_item(cart, CartItemModel(product_id=product_id, quantity=quantity))
            new_quantity = quantity
            action = OrderAction.ITEM_ADDED

        self._bump(cart)

        self._publish(
            action,
            cart,
            productId=product_id,
            productName=pdata.get("name"),
            quantity=new_quantity,
        )
        return self._to_dict(cart)

    def update_item_quantity(self, cart_id: int, product_id: int, quantity: int) -> Dict[str, Any]:
        if quantity < 1:
            raise ValueError("Quantity must be at least 1")

        cart = self._load(cart_id)
        self._ensure_modifiable(cart)

        item = cart.find_item(product_id)
        if not item:
            raise NotFound(f"Item with product {product_id} not found in cart {cart_id}")

        logger.info(f"Setting quantity of product {product_id} in cart {cart_id} to {quantity}")
        item.quantity = quantity
        self._bump(cart)

        self._publish(OrderAction.ITEM_QUANTITY_UPDATED, cart, productId=product_id, quantity=quantity)
        return self._to_dict(cart)

    def remove_item(self, cart_id: int, product_id: int) -> Dict[str, Any]:
        cart = self._load(cart_id)
        self._ensure_modifiable(cart)

        item = cart.find_item(product_id)
        if not item:
            raise NotFound(f"Item with product {product_id} not found in cart {cart_id}")

        logger.info(f"Removing product {product_id} from cart {cart_id}")
        self.repo.delete_cart_item(cart, item)
        self._bump(cart)

        self._publish(OrderAction.ITEM_REMOVED, cart, productId=product_id)
        return self._to_dict(cart)

    def clear_cart(self, cart_id: int) -> Dict[str, Any]:
        cart = self._load(cart_id)
        self._ensure_modifiable(cart)

        logger.info(f"Clearing cart {cart_id} ({len(cart.items)} items)")
        self.repo.clear_cart_items(cart)
        self._bump(cart)

        self._publish(OrderAction.CART_CLEARED, cart)
        return self._to_dict(cart)

    def delete_cart(self, cart_id: int) -> None:
        cart = self._load(cart_id)
        user_id = cart.user_id

        self.repo.delete_cart(cart)
        self.repo.commit()

        logger.info(f"Deleted cart {cart_id} of user {user_id}")
        self.publisher.publish_order_event(
            OrderEvent(
                event_type=OrderAction.CART_DELETED.value,
                action=OrderAction.CART_DELETED,
                user_id=user_id,
                cart_id=cart_id,
            )
        )

    def transition_status(self, cart_id: int, status: str | CartStatus) -> Dict[str, Any]:
        new_status = status if isinstance(status, CartStatus) else parse_cart_status(status)
        cart = self._load(cart_id)
        old_status = cart.status

        self._bump(cart, status=new_status.value)

        logger.info(f"Cart {cart_id} status {old_status} -> {new_status.value}")
        self._publish(OrderAction.CART_STATUS_UPDATED, cart, oldStatus=old_status, newStatus=new_status.value)
        return self._to_dict(cart)

    def start_checkout(self, cart_id: int) -> Dict[str, Any]:
        cart = self._load(cart_id)

        if not cart.items:
            raise InvalidState("Cannot checkout empty cart")
        if cart.status == CartStatus.COMPLETED.value:
            raise AlreadyProcessed(f"Cart {cart_id} has already been checked out")
        if cart.status == CartStatus.ABANDONED.value:
            raise InvalidState(f"Cart {cart_id} has been abandoned")

        cart_dict = self._to_dict(cart)
        self._bump(cart, status=CartStatus.CHECKOUT.value)
        cart_dict["status"] = cart.status

        logger.info(f"Checkout started for cart {cart_id}")
        self._publish(
            OrderAction.CHECKOUT_STARTED,
            cart,
            total=cart_dict["total_price"],
            itemCount=len(cart_dict["items"]),
        )
        return cart_dict

    def complete_checkout(self, cart_id: int, payment_id: str) -> Dict[str, Any]:
        cart = self._load(cart_id)

        # webhook moze przyjsc drugi raz
        if cart.status == CartStatus.COMPLETED.value:
            logger.info(f"Cart {cart_id} already completed, ignoring payment {payment_id}")
            return self._to_dict(cart)

        self._bump(cart, status=CartStatus.COMPLETED.value)

        logger.info(f"Cart {cart_id} completed with payment {payment_id}")
        self._publish(OrderAction.COMPLETED, cart, event_type="ORDER_COMPLETED", paymentId=payment_id)
        return self._to_dict(cart)
