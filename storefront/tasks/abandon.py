# storefront/tasks/abandon.py
from datetime import datetime, timezone, timedelta

from sqlalchemy.orm import Session

from storefront.celery_worker import celery_app
from storefront.data.database import SessionLocal
from storefront.domain.events import OrderEvent, OrderAction
from storefront.domain.status import CartStatus
from storefront.repos.cart_repo import CartRepo
from storefront.services.event_publisher import EventPublisher, get_event_publisher
from storefront.utils.settings import CART_ABANDON_AFTER_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


def abandon_stale_carts(
    db: Session,
    publisher: EventPublisher,
    max_age_seconds: int = CART_ABANDON_AFTER_SECONDS,
    now: datetime | None = None,
) -> int:
    """ACTIVE koszyki bez zmian dluzej niz max_age_seconds -> ABANDONED."""
    repo = CartRepo(db)
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(seconds=max_age_seconds)

    carts = repo.get_stale_carts(CartStatus.ACTIVE.value, cutoff)
    logger.info(f"Found {len(carts)} stale carts to abandon")

    abandoned = []
    for cart in carts:
        rowcount = repo.update_cart_version(
            cart_id=cart.id,
            old_version=cart.version,
            new_data={
                "status": CartStatus.ABANDONED.value,
                "version": cart.version + 1,
                "updated_at": now,
            },
        )
        # ktos wlasnie zmodyfikowal koszyk, nie jest juz porzucony
        if rowcount == 0:
            logger.info(f"Cart {cart.id} changed concurrently, skipping")
            continue
        abandoned.append(cart)

    repo.commit()

    for cart in abandoned:
        publisher.publish_order_event(
            OrderEvent(
                event_type=OrderAction.CART_ABANDONED.value,
                action=OrderAction.CART_ABANDONED,
                user_id=cart.user_id,
                cart_id=cart.id,
            )
        )

    return len(abandoned)


@celery_app.task(name="storefront.tasks.abandon.abandon_stale_carts_task")
def abandon_stale_carts_task():
    logger.info("Abandon stale carts task started")

    db = SessionLocal()
    try:
        count = abandon_stale_carts(db, get_event_publisher())
        logger.info(f"Abandoned {count} carts")
        return count
    finally:
        db.close()
