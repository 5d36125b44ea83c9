# storefront/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.schemas import (
    CheckoutIn,
    CompleteOrderIn,
    OrderStatusIn,
    CancelOrderIn,
    OrderOut,
    OrderHistoryOut,
)
from storefront.services.event_publisher import EventPublisher, get_event_publisher
from storefront.services.order_service import OrderService
from storefront.services.product_client import ProductClient, get_product_client

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> OrderService:
    return OrderService(db=db, product_client=product_client, publisher=publisher)


@router.post("/checkout", response_model=OrderOut, status_code=201)
def checkout(payload: CheckoutIn, svc: OrderService = Depends(get_service)):
    return svc.checkout(
        cart_id=payload.cart_id,
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address,
        notes=payload.notes,
        payment_method=payload.payment_method,
    )


@router.post("/{order_id}/complete", response_model=OrderOut)
def complete_order(order_id: int, payload: CompleteOrderIn, svc: OrderService = Depends(get_service)):
    return svc.complete_order(order_id, payload.payment_id)


@router.get("/number/{order_number}", response_model=OrderOut)
def get_order_by_number(order_number: str, svc: OrderService = Depends(get_service)):
    return svc.get_order_by_number(order_number)


@router.get("/user/{user_id}", response_model=OrderHistoryOut)
def get_order_history(
    user_id: int,
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    svc: OrderService = Depends(get_service),
):
    return svc.get_order_history(user_id, page, size)


@router.get("/user/{user_id}/all", response_model=List[OrderOut])
def get_all_orders(user_id: int, svc: OrderService = Depends(get_service)):
    return svc.get_all_orders_for_user(user_id)


@router.get("/user/{user_id}/status/{status}", response_model=List[OrderOut])
def get_orders_by_status(user_id: int, status: str, svc: OrderService = Depends(get_service)):
    return svc.get_orders_by_status(user_id, status)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, svc: OrderService = Depends(get_service)):
    return svc.get_order_by_id(order_id)


@router.put("/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: int, payload: OrderStatusIn, svc: OrderService = Depends(get_service)):
    return svc.update_order_status(order_id, payload.status, payload.notes)


@router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: int, payload: CancelOrderIn | None = None, svc: OrderService = Depends(get_service)):
    return svc.cancel_order(order_id, payload.reason if payload else None)
