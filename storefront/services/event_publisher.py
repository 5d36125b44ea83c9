# storefront/services/event_publisher.py
"""
Publikacja zdarzen domenowych na RabbitMQ (topic exchange).

Best-effort: brak retry, kazdy blad jest logowany i polykany,
operacja biznesowa ktora juz zrobila commit nie moze przez to poleciec.
"""
import threading
from typing import Callable, Optional

import pika

from storefront.domain.events import DomainEvent, UserEvent, OrderEvent, NotificationEvent
from storefront.utils.settings import (
    EVENT_BUS_URL,
    EVENT_EXCHANGE,
    USER_EVENTS_TOPIC,
    ORDER_EVENTS_TOPIC,
    NOTIFICATION_EVENTS_TOPIC,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def _partition_key(*candidates) -> str:
    """Pierwszy niepusty identyfikator, np. user_id, potem cart_id."""
    for value in candidates:
        if value is not None:
            return str(value)
    return ""


class EventPublisher:
    def __init__(self, url: str | None = None, exchange: str | None = None):
        self.url = EVENT_BUS_URL if url is None else url
        self.exchange = exchange or EVENT_EXCHANGE
        self.connection: Optional[pika.BlockingConnection] = None
        self.channel = None
        # BlockingConnection nie jest thread-safe, a FastAPI odpala sync endpointy w threadpoolu
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def _connect(self) -> None:
        parameters = pika.URLParameters(self.url)
        parameters.heartbeat = 30
        parameters.blocked_connection_timeout = 300

        self.connection = pika.BlockingConnection(parameters)
        self.channel = self.connection.channel()
        self.channel.exchange_declare(
            exchange=self.exchange,
            exchange_type="topic",
            durable=True,
        )
        logger.info(f"Connected to event bus, exchange {self.exchange}")

    def _is_open(self) -> bool:
        return (
            self.connection is not None
            and self.connection.is_open
            and self.channel is not None
            and self.channel.is_open
        )

    def _send(
        self,
        topic: str,
        key: str,
        render: Callable[[], str],
        message_id: str | None,
        event_type: str | None,
    ) -> None:
        if not self.enabled:
            logger.debug(f"Event bus disabled, skipping {event_type or 'message'} for topic {topic}")
            return

        try:
            body = render()
        except Exception as e:
            # polaczenie zostaje, zepsute jest tylko to jedno zdarzenie
            logger.warning(f"Failed to serialize {event_type or 'message'} for {topic}: {e}")
            return

        with self._lock:
            try:
                if not self._is_open():
                    self._connect()

                self.channel.basic_publish(
                    exchange=self.exchange,
                    routing_key=topic,
                    body=body,
                    properties=pika.BasicProperties(
                        content_type="application/json",
                        delivery_mode=2,
                        message_id=message_id,
                        headers={"key": key, "event_type": event_type},
                    ),
                )
                logger.info(f"Published {event_type or 'message'} to {topic} with key {key}")
            except Exception as e:
                logger.warning(f"Failed to publish {event_type or 'message'} to {topic}: {e}")
                # nastepny publish zbuduje polaczenie od nowa
                self.connection = None
                self.channel = None

    def publish(self, topic: str, key: str, event: DomainEvent) -> None:
        self._send(topic, key, event.to_json, event.event_id, event.event_type)

    def publish_user_event(self, event: UserEvent) -> None:
        self.publish(USER_EVENTS_TOPIC, _partition_key(event.user_id), event)

    def publish_order_event(self, event: OrderEvent) -> None:
        self.publish(ORDER_EVENTS_TOPIC, _partition_key(event.user_id, event.cart_id), event)

    def publish_notification_event(self, event: NotificationEvent) -> None:
        self.publish(NOTIFICATION_EVENTS_TOPIC, _partition_key(event.user_id), event)

    def publish_message(self, topic: str, key: str, message: str) -> None:
        self._send(topic, key, lambda: message, None, None)

    def close(self) -> None:
        with self._lock:
            try:
                if self.connection is not None and self.connection.is_open:
                    self.connection.close()
            except Exception as e:
                logger.warning(f"Error closing event bus connection: {e}")
            finally:
                self.connection = None
                self.channel = None


_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    #jeden publisher na proces
    global _publisher
    if _publisher is None:
        _publisher = EventPublisher()
    return _publisher
