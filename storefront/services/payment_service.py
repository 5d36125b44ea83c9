# storefront/services/payment_service.py
"""
Integracja z procesorem platnosci (Stripe).

Webhook: najpierw weryfikacja podpisu, dopiero potem parsowanie i dispatch
po typie zdarzenia. Bledy w handlerach sa logowane i polykane, procesor
dostaje 200 i nie ponawia dostarczenia.
"""
import json
from typing import Dict, Any, Callable

import stripe
from sqlalchemy.orm import Session

from storefront.domain.errors import InvalidSignature, InvalidState, Unauthorized
from storefront.domain.events import OrderEvent, OrderAction, NotificationEvent, NotificationType
from storefront.domain.pricing import from_minor_units, to_minor_units
from storefront.repos.user_repo import UserRepo
from storefront.services.cart_service import CartService
from storefront.services.event_publisher import EventPublisher
from storefront.services.order_service import OrderService
from storefront.services.product_client import ProductClient
from storefront.utils.settings import (
    STRIPE_API_KEY,
    STRIPE_WEBHOOK_SECRET,
    STRIPE_SUCCESS_URL,
    STRIPE_CANCEL_URL,
    ORDER_EVENTS_TOPIC,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _metadata_id(metadata: Dict[str, Any], key: str) -> int | None:
    value = metadata.get(key)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class PaymentService:
    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        publisher: EventPublisher,
        webhook_secret: str | None = None,
        api_key: str | None = None,
    ):
        self.cart_service = CartService(db, product_client, publisher)
        self.order_service = OrderService(db, product_client, publisher)
        self.user_repo = UserRepo(db)
        self.publisher = publisher
        self.webhook_secret = STRIPE_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.api_key = STRIPE_API_KEY if api_key is None else api_key

        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {
            "checkout.session.completed": self._on_checkout_session_completed,
            "payment_intent.succeeded": self._on_payment_intent_succeeded,
            "payment_intent.payment_failed": self._on_payment_intent_failed,
            "charge.succeeded": self._on_charge_succeeded,
            "charge.refunded": self._on_charge_refunded,
        }

    #webhook
    def verify_event(self, payload: bytes | str, signature: str | None) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise InvalidSignature("Webhook secret is not configured")
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError:
            raise InvalidSignature("Payload is not valid UTF-8") from None

        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self.webhook_secret, stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook signature verification failed: {e}")
            raise InvalidSignature("Invalid signature") from e

        return json.loads(body)

    def handle_webhook_event(self, payload: bytes | str, signature: str | None) -> str:
        event = self.verify_event(payload, signature)
        event_type = event.get("type")
        data_object = (event.get("data") or {}).get("object") or {}

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Unhandled event type: {event_type}")
            return "Event ignored"

        logger.info(f"Processing webhook event {event.get('id')} of type {event_type}")
        try:
            handler(data_object)
        except Exception as e:
            logger.exception(f"Error handling {event_type} event {event.get('id')}: {e}")
        return "Event processed"

    def _on_checkout_session_completed(self, session: Dict[str, Any]) -> None:
        metadata = session.get("metadata") or {}
        cart_id = _metadata_id(metadata, "cartId")
        user_id = _metadata_id(metadata, "userId")

        if cart_id is None or user_id is None:
            logger.warning(f"Checkout session {session.get('id')} has no cartId/userId metadata, dropped")
            return

        reference = session.get("payment_intent") or session.get("id")
        amount = from_minor_units(session.get("amount_total"))
        order = None

        try:
            order_number = metadata.get("orderNumber")
            if order_number:
                order = self.order_service.complete_order_by_number(order_number, reference)
            else:
                pending = self.order_service.find_pending_order_for_cart(cart_id)
                if pending:
                    order = self.order_service.complete_order(pending["id"], reference)
                else:
                    self.cart_service.complete_checkout(cart_id, reference)
        except Exception as e:
            logger.warning(f"Failed to complete checkout for cart {cart_id}: {e}")

        self.publisher.publish_order_event(
            OrderEvent(
                event_type="ORDER_CREATED",
                action=OrderAction.CREATED,
                user_id=user_id,
                cart_id=cart_id,
                order_id=order["id"] if order else None,
                order_number=order["order_number"] if order else None,
                total_amount=amount,
                payload={"sessionId": session.get("id"), "paymentStatus": session.get("payment_status")},
            )
        )

        user = self.user_repo.get_user(user_id)
        self.publisher.publish_notification_event(
            NotificationEvent(
                user_id=user_id,
                email=user.email if user else None,
                notification_type=NotificationType.EMAIL,
                subject="Order Confirmation",
                message=f"Your order has been confirmed! Total: ${amount}",
                payload={"cartId": cart_id, "sessionId": session.get("id")},
            )
        )
        logger.info(f"Checkout session {session.get('id')} completed for cart {cart_id}")

    def _payment_intent_event(self, intent: Dict[str, Any], action: OrderAction, **details) -> OrderEvent:
        metadata = intent.get("metadata") or {}
        return OrderEvent(
            event_type=action.value,
            action=action,
            user_id=_metadata_id(metadata, "userId"),
            cart_id=_metadata_id(metadata, "cartId"),
            order_number=metadata.get("orderNumber"),
            total_amount=from_minor_units(intent.get("amount")),
            payload={"paymentIntentId": intent.get("id"), **details},
        )

    def _on_payment_intent_succeeded(self, intent: Dict[str, Any]) -> None:
        logger.info(f"Payment intent {intent.get('id')} succeeded")
        self.publisher.publish_order_event(
            self._payment_intent_event(intent, OrderAction.PAYMENT_SUCCEEDED)
        )

    def _on_payment_intent_failed(self, intent: Dict[str, Any]) -> None:
        # zamowienie zostaje PENDING, user moze ponowic platnosc
        error = (intent.get("last_payment_error") or {}).get("message")
        logger.warning(f"Payment intent {intent.get('id')} failed: {error}")
        self.publisher.publish_order_event(
            self._payment_intent_event(intent, OrderAction.PAYMENT_FAILED, error=error)
        )

    def _on_charge_succeeded(self, charge: Dict[str, Any]) -> None:
        logger.info(f"Charge {charge.get('id')} succeeded")
        message = {
            "type": OrderAction.CHARGE_SUCCEEDED.value,
            "chargeId": charge.get("id"),
            "paymentIntentId": charge.get("payment_intent"),
            "amount": str(from_minor_units(charge.get("amount"))),
        }
        self.publisher.publish_message(ORDER_EVENTS_TOPIC, "charge", json.dumps(message))

    def _on_charge_refunded(self, charge: Dict[str, Any]) -> None:
        logger.info(f"Charge {charge.get('id')} refunded")
        message = {
            "type": OrderAction.CHARGE_REFUNDED.value,
            "chargeId": charge.get("id"),
            "paymentIntentId": charge.get("payment_intent"),
            "amountRefunded": str(from_minor_units(charge.get("amount_refunded"))),
        }
        self.publisher.publish_message(ORDER_EVENTS_TOPIC, "refund", json.dumps(message))

    #checkout session
    def _line_item(self, name: str, unit_price, quantity: int, currency: str) -> Dict[str, Any]:
        return {
            "price_data": {
                "currency": currency,
                "product_data": {"name": name},
                "unit_amount": to_minor_units(unit_price),
            },
            "quantity": quantity,
        }

    def create_checkout_session(self, cart_id: int, user_id: int, currency: str = "usd") -> Dict[str, Any]:
        cart = self.cart_service.get_cart(cart_id)
        if cart["user_id"] != user_id:
            raise Unauthorized(f"Cart {cart_id} does not belong to user {user_id}")
        if not cart["items"]:
            raise InvalidState("Cannot checkout empty cart")

        metadata = {"cartId": str(cart_id), "userId": str(user_id)}
        pending = self.order_service.find_pending_order_for_cart(cart_id)

        if pending:
            # placimy za snapshot zamowienia, razem z podatkiem i wysylka
            metadata["orderNumber"] = pending["order_number"]
            amount = pending["total_amount"]
            line_items = [
                self._line_item(i["product_name"], i["unit_price"], i["quantity"], currency)
                for i in pending["items"]
            ]
            line_items.append(self._line_item("Tax", pending["tax"], 1, currency))
            if pending["shipping_cost"] > 0:
                line_items.append(self._line_item("Shipping", pending["shipping_cost"], 1, currency))
        else:
            # pozycje bez ceny w katalogu nie ida do platnosci
            available = [i for i in cart["items"] if i["available"]]
            if not available:
                raise InvalidState(f"Cart {cart_id} has no items available for purchase")
            amount = cart["total_price"]
            line_items = [
                self._line_item(i["product_name"], i["product_price"], i["quantity"], currency)
                for i in available
            ]

        session = stripe.checkout.Session.create(
            api_key=self.api_key,
            mode="payment",
            payment_method_types=["card"],
            line_items=line_items,
            success_url=f"{STRIPE_SUCCESS_URL}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=STRIPE_CANCEL_URL,
            client_reference_id=str(cart_id),
            metadata=metadata,
        )

        logger.info(f"Created checkout session {session.id} for cart {cart_id}, amount {amount}")
        self.publisher.publish_order_event(
            OrderEvent(
                event_type=OrderAction.CHECKOUT_SESSION_CREATED.value,
                action=OrderAction.CHECKOUT_SESSION_CREATED,
                user_id=user_id,
                cart_id=cart_id,
                order_number=metadata.get("orderNumber"),
                total_amount=amount,
                payload={"sessionId": session.id},
            )
        )
        return {"session_id": session.id, "checkout_url": session.url, "amount": amount}
